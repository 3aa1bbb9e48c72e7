"""Resilient client socket: one durable connection over an unreliable transport."""

from .config import ClientSettings, ConfigLoader, SocketOptions
from .events import CloseEvent, ErrorEvent, EventManager, MessageEvent, OpenEvent
from .exceptions import (
    BaseError,
    ConfigError,
    ConnectionFailure,
    ErrorCode,
    InvalidAddressError,
    NetworkError,
)
from .manager import ConnectionManager
from .state import ConnectionState, ConnectionStats
from .transport import ReadyState, Transport, WebSocketTransport, websocket_transport_factory
from .utils import parse_message, serialize_message

__version__ = "0.1.0"

__all__ = [
    'ConnectionManager',
    'ConnectionState',
    'ConnectionStats',
    'SocketOptions',
    'ClientSettings',
    'ConfigLoader',
    'EventManager',
    'OpenEvent',
    'CloseEvent',
    'MessageEvent',
    'ErrorEvent',
    'ReadyState',
    'Transport',
    'WebSocketTransport',
    'websocket_transport_factory',
    'BaseError',
    'ErrorCode',
    'ConfigError',
    'InvalidAddressError',
    'NetworkError',
    'ConnectionFailure',
    'parse_message',
    'serialize_message',
]
