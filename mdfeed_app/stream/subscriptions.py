"""
Subscription registry.

Keeps every live subscription in creation order and replays the active ones
whenever the connection (re)opens, so callers subscribe once and survive
reconnects without tracking connection state themselves.
"""

import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterator, Optional

import structlog

from ..data.messages import OutboundMessage, SubscriptionAck, subscribe_message, unsubscribe_message
from ..errors import SubscriptionRejectedError
from .connection import StreamConnectionManager

logger = structlog.get_logger(__name__)

_subscription_ids = itertools.count(1)


class SubscriptionKind(str, Enum):
    STOCK = "stock"
    INDEX = "index"
    MARKET = "market"


def new_subscription_id(kind: SubscriptionKind) -> str:
    """Process-unique subscription id, e.g. ``stock_7``."""
    return f"{kind.value}_{next(_subscription_ids)}"


@dataclass
class Subscription:
    """
    One subscription held by the registry.

    ``filters`` travel to the server with the subscribe frame; ``predicate``
    is evaluated locally against each update before callbacks run.
    """
    id: str
    kind: SubscriptionKind
    codes: tuple[str, ...]
    filters: Optional[dict[str, Any]] = None
    predicate: Optional[Callable[[Any], bool]] = None
    active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def matches(self, payload: Any) -> bool:
        return self.predicate is None or bool(self.predicate(payload))

    def to_message(self) -> OutboundMessage:
        return subscribe_message(self.id, self.kind.value, list(self.codes), self.filters)


class SubscriptionRegistry:
    """Subscription bookkeeping on top of a StreamConnectionManager."""

    def __init__(self, connection: StreamConnectionManager):
        self._connection = connection
        self._subscriptions: dict[str, Subscription] = {}
        connection.add_open_listener(self.resubscribe_all)

    def subscribe(
        self,
        kind: SubscriptionKind,
        codes: list[str],
        filters: Optional[dict[str, Any]] = None,
        predicate: Optional[Callable[[Any], bool]] = None,
    ) -> str:
        """
        Record a new subscription and return its id.

        The subscribe frame is sent immediately when the connection is open;
        otherwise it goes out on the next open via resubscribe_all.
        """
        kind = SubscriptionKind(kind)
        if not codes and kind != SubscriptionKind.MARKET:
            raise ValueError(f"{kind.value} subscription requires at least one code")

        subscription = Subscription(
            id=new_subscription_id(kind),
            kind=kind,
            codes=tuple(codes),
            filters=dict(filters) if filters else None,
            predicate=predicate,
        )
        self._subscriptions[subscription.id] = subscription

        logger.info(
            "Subscription created",
            subscription_id=subscription.id,
            kind=kind.value,
            codes=list(subscription.codes),
        )

        if self._connection.is_open:
            self._connection.send(subscription.to_message())
        return subscription.id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Remove a subscription. Unknown ids are a no-op returning False."""
        subscription = self._subscriptions.pop(subscription_id, None)
        if subscription is None:
            logger.debug("Unsubscribe for unknown id ignored", subscription_id=subscription_id)
            return False

        if self._connection.is_open:
            self._connection.send(unsubscribe_message(subscription_id))

        logger.info("Subscription removed", subscription_id=subscription_id)
        return True

    def resubscribe_all(self) -> int:
        """Send subscribe frames for every active subscription, in creation order."""
        count = 0
        for subscription in self._subscriptions.values():
            if not subscription.active:
                continue
            self._connection.send(subscription.to_message())
            count += 1

        if count:
            logger.info("Resubscribed", count=count)
        return count

    def handle_ack(self, ack: SubscriptionAck) -> None:
        """Apply a server acknowledgement; a rejection deactivates the subscription."""
        subscription = self._subscriptions.get(ack.subscription_id)
        if subscription is None:
            logger.debug("Ack for unknown subscription", subscription_id=ack.subscription_id)
            return

        if ack.success:
            subscription.active = True
            logger.debug("Subscription confirmed", subscription_id=ack.subscription_id)
            return

        subscription.active = False
        error = SubscriptionRejectedError(
            f"Subscription {ack.subscription_id} rejected",
            subscription_id=ack.subscription_id,
            reason=ack.error,
        )
        logger.error(
            "Subscription rejected",
            subscription_id=ack.subscription_id,
            reason=ack.error,
        )
        self._connection.report_error(error)

    def get(self, subscription_id: str) -> Optional[Subscription]:
        return self._subscriptions.get(subscription_id)

    def active(self) -> list[Subscription]:
        return [s for s in self._subscriptions.values() if s.active]

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __contains__(self, subscription_id: object) -> bool:
        return subscription_id in self._subscriptions

    def __iter__(self) -> Iterator[Subscription]:
        return iter(list(self._subscriptions.values()))
