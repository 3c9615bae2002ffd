"""Bollinger Bands"""

import math
from typing import Iterable

from ..data.models import Bar
from .averages import require_bars
from .models import BollingerBandsResult, BollingerSignal

SQUEEZE_BANDWIDTH = 0.04
EXPANSION_BANDWIDTH = 0.10


def calculate_bollinger_bands(window: Iterable[Bar], period: int = 20,
                              standard_deviations: float = 2.0) -> BollingerBandsResult:
    """
    Calculate Bollinger Bands over the trailing `period` closes

    Uses the population standard deviation. Bandwidth is
    (upper - lower) / middle; below 0.04 is a squeeze, above 0.10 an
    expansion.

    Raises:
        InsufficientDataError: If the window holds fewer than `period` bars
    """
    if period < 1:
        raise ValueError(f"Bollinger period must be positive, got {period}")

    bars = list(window)
    require_bars(len(bars), period, "BollingerBands")

    recent = [bar.close for bar in bars[-period:]]
    if max(recent) == min(recent):
        # Flat window: bands collapse onto the close exactly
        middle = recent[0]
        stddev = 0.0
    else:
        middle = math.fsum(recent) / period
        stddev = math.sqrt(math.fsum((price - middle) ** 2 for price in recent) / period)

    upper = middle + standard_deviations * stddev
    lower = middle - standard_deviations * stddev
    bandwidth = (upper - lower) / middle if middle != 0 else 0.0

    if bandwidth < SQUEEZE_BANDWIDTH:
        signal = BollingerSignal.SQUEEZE
    elif bandwidth > EXPANSION_BANDWIDTH:
        signal = BollingerSignal.EXPANSION
    else:
        signal = BollingerSignal.NORMAL

    return BollingerBandsResult(
        upper=upper,
        middle=middle,
        lower=lower,
        bandwidth=bandwidth,
        signal=signal,
        timestamp=bars[-1].ts,
    )
