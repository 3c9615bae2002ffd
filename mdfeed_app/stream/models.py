"""Connection state and statistics models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from ..data.messages import InboundMessage
    from ..errors import FeedUnavailableError


class ConnectionState(str, Enum):
    """Lifecycle states of the streaming connection."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


@dataclass(frozen=True)
class ConnectionStats:
    """Point-in-time snapshot of connection statistics."""
    state: ConnectionState
    connected: bool
    reconnect_attempts: int
    messages_received: int
    messages_sent: int
    queued_messages: int
    last_message_time: Optional[datetime] = None
    connection_time: Optional[datetime] = None
    feed_unavailable: bool = False


@dataclass(frozen=True)
class StreamCallbacks:
    """Consumer hooks invoked by the connection manager."""
    on_connect: Optional[Callable[[], None]] = None
    on_disconnect: Optional[Callable[[], None]] = None
    on_error: Optional[Callable[[Exception], None]] = None
    on_message: Optional[Callable[["InboundMessage"], None]] = None
    on_feed_unavailable: Optional[Callable[["FeedUnavailableError"], None]] = None
