"""Streaming connection, transport and subscription management."""

from .connection import StreamConnectionManager
from .models import ConnectionState, ConnectionStats, StreamCallbacks
from .scheduler import AsyncioScheduler, Scheduler
from .subscriptions import Subscription, SubscriptionKind, SubscriptionRegistry
from .transport import Transport, TransportHandlers, WebSocketTransport

__all__ = [
    "AsyncioScheduler",
    "ConnectionState",
    "ConnectionStats",
    "Scheduler",
    "StreamCallbacks",
    "StreamConnectionManager",
    "Subscription",
    "SubscriptionKind",
    "SubscriptionRegistry",
    "Transport",
    "TransportHandlers",
    "WebSocketTransport",
]
