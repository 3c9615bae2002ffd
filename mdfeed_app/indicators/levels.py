"""Support and resistance level detection"""

from typing import Iterable

from ..data.models import Bar
from .models import SupportResistanceLevels

LEVEL_MERGE_TOLERANCE = 0.02


def collapse_levels(levels: Iterable[float], tolerance: float = LEVEL_MERGE_TOLERANCE) -> list[float]:
    """
    Sort ascending and drop levels within `tolerance` (relative) of the
    previously kept level
    """
    kept: list[float] = []
    for level in sorted(levels):
        if not kept:
            kept.append(level)
            continue
        previous = kept[-1]
        if previous == 0:
            if level != 0:
                kept.append(level)
        elif abs(level - previous) / abs(previous) > tolerance:
            kept.append(level)
    return kept


def find_support_resistance(window: Iterable[Bar], lookback: int = 20) -> SupportResistanceLevels:
    """
    Find local support (lows) and resistance (highs) levels

    A bar qualifies only with at least `lookback` bars on both sides; its low
    must be <= every low in that neighbourhood to be support, its high >=
    every high to be resistance. A window too short for any candidate yields
    empty lists.
    """
    if lookback < 1:
        raise ValueError(f"lookback must be positive, got {lookback}")

    bars = list(window)
    support: list[float] = []
    resistance: list[float] = []

    for i in range(lookback, len(bars) - lookback):
        neighbourhood = bars[i - lookback:i + lookback + 1]
        bar = bars[i]
        if bar.low <= min(b.low for b in neighbourhood):
            support.append(bar.low)
        if bar.high >= max(b.high for b in neighbourhood):
            resistance.append(bar.high)

    return SupportResistanceLevels(
        support=collapse_levels(support),
        resistance=collapse_levels(resistance),
    )
