"""
Price alerts evaluated on every stock update.

Alerts are level-triggered: an alert fires on each update whose price
satisfies its condition, not only when the condition first becomes true.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, NamedTuple, Optional

import structlog

from .data.messages import StockUpdate

logger = structlog.get_logger(__name__)

EQUALS_TOLERANCE = 0.01


class AlertCondition(str, Enum):
    ABOVE = "above"
    BELOW = "below"
    EQUALS = "equals"


class AlertKey(NamedTuple):
    code: str
    condition: AlertCondition
    target_price: float


@dataclass(frozen=True)
class AlertEvent:
    code: str
    price: float
    target_price: float
    condition: AlertCondition
    timestamp: datetime


AlertCallback = Callable[[AlertEvent], None]


def is_triggered(condition: AlertCondition, price: float, target_price: float,
                 tolerance: float = EQUALS_TOLERANCE) -> bool:
    """Whether price satisfies condition against target_price."""
    if condition == AlertCondition.ABOVE:
        return price > target_price
    if condition == AlertCondition.BELOW:
        return price < target_price
    return abs(price - target_price) <= tolerance


class AlertBook:
    """Registered alerts grouped by stock code."""

    def __init__(self):
        self._alerts: dict[str, dict[AlertKey, AlertCallback]] = {}

    def add(self, code: str, condition: AlertCondition, target_price: float,
            callback: AlertCallback) -> AlertKey:
        """Register an alert; an existing alert with the same key is replaced."""
        key = AlertKey(code, AlertCondition(condition), float(target_price))
        self._alerts.setdefault(code, {})[key] = callback
        logger.info(
            "Price alert set",
            code=code,
            condition=key.condition.value,
            target_price=key.target_price
        )
        return key

    def remove(self, key: AlertKey) -> bool:
        alerts = self._alerts.get(key.code)
        if not alerts or key not in alerts:
            return False
        del alerts[key]
        if not alerts:
            del self._alerts[key.code]
        logger.info("Price alert removed", code=key.code, condition=key.condition.value,
                    target_price=key.target_price)
        return True

    def has_alerts(self, code: str) -> bool:
        return code in self._alerts

    def evaluate(self, update: StockUpdate,
                 now: Optional[datetime] = None) -> list[tuple[AlertCallback, AlertEvent]]:
        """Return (callback, event) for every alert on update.code that fires."""
        alerts = self._alerts.get(update.code)
        if not alerts:
            return []

        timestamp = update.timestamp or now or datetime.now(timezone.utc)
        fired = []
        for key, callback in list(alerts.items()):
            if is_triggered(key.condition, update.price, key.target_price):
                fired.append((callback, AlertEvent(
                    code=key.code,
                    price=update.price,
                    target_price=key.target_price,
                    condition=key.condition,
                    timestamp=timestamp,
                )))
        return fired

    def clear(self) -> None:
        self._alerts.clear()

    def __len__(self) -> int:
        return sum(len(alerts) for alerts in self._alerts.values())
