"""Moving averages over price windows"""

from typing import Iterable

from ..data.models import Bar
from ..errors import InsufficientDataError


def closes_of(window: Iterable[Bar]) -> list[float]:
    """Close prices of a window or bar sequence, oldest first"""
    return [bar.close for bar in window]


def require_bars(available: int, required: int, indicator: str) -> None:
    """
    Raise InsufficientDataError unless at least `required` bars are available
    """
    if available < required:
        raise InsufficientDataError(
            f"{indicator} requires {required} bars, got {available}",
            required_count=required,
            available_count=available,
            indicator=indicator
        )


def ema_series(values: list[float], period: int) -> list[float]:
    """
    Exponential moving average seeded with the simple mean of the first
    `period` values.

    The first element corresponds to values[period - 1]; an empty list is
    returned when fewer than `period` values are given.
    """
    if period < 1:
        raise ValueError(f"EMA period must be positive, got {period}")
    if len(values) < period:
        return []

    multiplier = 2.0 / (period + 1)
    ema = [sum(values[:period]) / period]
    for price in values[period:]:
        ema.append((price - ema[-1]) * multiplier + ema[-1])
    return ema


def calculate_sma(window: Iterable[Bar], period: int = 20) -> list[float]:
    """
    Rolling simple moving average of closes

    The first value averages closes[0:period]; the last one is the SMA of
    the trailing `period` closes.

    Raises:
        InsufficientDataError: If the window holds fewer than `period` bars
    """
    if period < 1:
        raise ValueError(f"SMA period must be positive, got {period}")
    closes = closes_of(window)
    require_bars(len(closes), period, "SMA")
    return [
        sum(closes[i - period + 1:i + 1]) / period
        for i in range(period - 1, len(closes))
    ]
