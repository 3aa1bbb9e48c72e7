from typing import Any, Optional
from enum import Enum


class ErrorCode(Enum):
    """Error codes"""
    UNKNOWN_ERROR = 10000
    CONFIG_ERROR = 10001
    NETWORK_ERROR = 10003
    INVALID_ADDRESS = 10010
    CONNECTION_FAILURE = 10011


class BaseError(Exception):
    """Base class for all resilient_socket errors"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Any] = None
    ):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)


class ConfigError(BaseError):
    """Invalid options or configuration file"""

    def __init__(self, message: str, details: Any = None):
        super().__init__(ErrorCode.CONFIG_ERROR, message, details)


class InvalidAddressError(BaseError):
    """Raised at construction when the target address is missing"""

    def __init__(self, message: str = "A connection address is required", details: Any = None):
        super().__init__(ErrorCode.INVALID_ADDRESS, message, details)


class NetworkError(BaseError):
    """Network related errors"""

    def __init__(self, message: str, details: Any = None):
        super().__init__(ErrorCode.NETWORK_ERROR, message, details)


class ConnectionFailure(NetworkError):
    """Failure of the underlying connection.

    Never raised to callers of the manager; it travels inside an
    ``ErrorEvent`` and feeds the reconnect decision.
    """

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, details)
        self.code = ErrorCode.CONNECTION_FAILURE
