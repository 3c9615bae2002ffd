"""
Typed wire messages exchanged with the market data feed.

Every frame is a JSON object ``{type, data, timestamp}``. Inbound frames are
decoded into an InboundMessage whose payload is one of the frozen payload
classes below; types the feed sends that this package does not know are kept
as an explicit UNKNOWN variant rather than raised.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

import orjson

from ..utils.time import now_ms


class MessageType(str, Enum):
    """Inbound message kinds."""
    STOCK_UPDATE = "stock_update"
    INDEX_UPDATE = "index_update"
    MARKET_UPDATE = "market_update"
    HEARTBEAT = "heartbeat"
    SUBSCRIPTION_ACK = "subscription_ack"
    ERROR = "error"
    UNKNOWN = "unknown"


class OutboundType(str, Enum):
    """Outbound message kinds."""
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    HEARTBEAT = "heartbeat"


@dataclass(frozen=True)
class StockUpdate:
    """Real-time stock quote."""
    code: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0
    volume: float = 0.0                 # Cumulative session volume
    amount: float = 0.0
    high: Optional[float] = None
    low: Optional[float] = None
    open: Optional[float] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class IndexUpdate:
    """Real-time index snapshot."""
    code: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0
    volume: float = 0.0
    amount: float = 0.0
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class MarketUpdate:
    """Market-wide update (sentiment, capital flow, market status, ...)."""
    update_type: str
    data: Any = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class HeartbeatPayload:
    server_time: Optional[datetime] = None


@dataclass(frozen=True)
class SubscriptionAck:
    subscription_id: str
    success: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class ServerError:
    message: str
    code: Optional[str] = None
    details: Any = None


@dataclass(frozen=True)
class UnknownPayload:
    raw_type: str
    data: Any = None


Payload = Union[
    StockUpdate, IndexUpdate, MarketUpdate, HeartbeatPayload,
    SubscriptionAck, ServerError, UnknownPayload,
]


@dataclass(frozen=True)
class InboundMessage:
    """Decoded inbound frame. Transient: consumed immediately, never retained."""
    type: MessageType
    payload: Payload
    timestamp: datetime                 # Market time from the frame
    received_at: datetime               # Wall-clock receive time


@dataclass(frozen=True)
class OutboundMessage:
    """Frame sent to the feed."""
    type: OutboundType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=now_ms)

    def encode(self) -> str:
        """Serialize to the JSON text frame."""
        return orjson.dumps({
            "type": self.type.value,
            "data": self.data,
            "timestamp": self.timestamp,
        }).decode("utf-8")


def subscribe_message(subscription_id: str, kind: str, codes: list[str],
                      filters: Optional[dict[str, Any]] = None) -> OutboundMessage:
    return OutboundMessage(
        type=OutboundType.SUBSCRIBE,
        data={
            "subscriptionId": subscription_id,
            "type": kind,
            "codes": codes,
            "filters": filters,
        },
    )


def unsubscribe_message(subscription_id: str) -> OutboundMessage:
    return OutboundMessage(
        type=OutboundType.UNSUBSCRIBE,
        data={"subscriptionId": subscription_id},
    )


def heartbeat_message() -> OutboundMessage:
    ts = now_ms()
    return OutboundMessage(type=OutboundType.HEARTBEAT, data={"timestamp": ts}, timestamp=ts)
