from enum import Enum
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class ConnectionState(Enum):
    """Connection manager state"""
    CONNECTING = "connecting"                       # A resource is connecting
    OPEN = "open"                                   # The resource is open
    CLOSED_RETRY_PENDING = "closed_retry_pending"   # Closed, a reconnect is due
    CLOSED_EXHAUSTED = "closed_exhausted"           # Reconnect cap reached
    CLOSED = "closed"                               # Closed with reconnection disabled
    MANUALLY_CLOSED = "manually_closed"             # Closed by the caller

    @property
    def is_terminal(self) -> bool:
        return self in (ConnectionState.CLOSED_EXHAUSTED,
                        ConnectionState.CLOSED,
                        ConnectionState.MANUALLY_CLOSED)


@dataclass
class ConnectionStats:
    """Connection statistics information"""
    created_at: float = field(default_factory=time.time)
    connection_time: Optional[float] = None
    last_activity: float = field(default_factory=time.time)
    connects: int = 0
    opens: int = 0
    reconnects: int = 0
    errors: int = 0
    messages_sent: int = 0
    messages_received: int = 0
    heartbeats_sent: int = 0
    dropped_messages: int = 0
    superseded_messages: int = 0

    def update_activity(self) -> None:
        """Update the most recent activity time"""
        self.last_activity = time.time()

    def get_uptime(self) -> Optional[float]:
        """Get uptime of the current connection (seconds)"""
        if self.connection_time is None:
            return None
        return time.time() - self.connection_time

    def to_dict(self) -> Dict[str, Any]:
        """Convert statistics to dictionary"""
        return {
            "created_at": self.created_at,
            "connection_time": self.connection_time,
            "last_activity": self.last_activity,
            "connects": self.connects,
            "opens": self.opens,
            "reconnects": self.reconnects,
            "errors": self.errors,
            "messages_sent": self.messages_sent,
            "messages_received": self.messages_received,
            "heartbeats_sent": self.heartbeats_sent,
            "dropped_messages": self.dropped_messages,
            "superseded_messages": self.superseded_messages,
            "uptime": self.get_uptime(),
        }
