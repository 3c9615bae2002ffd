"""MACD (Moving Average Convergence Divergence)"""

from typing import Iterable

from ..data.models import Bar
from .averages import ema_series, require_bars
from .models import MACDResult, MACDSignal


def macd_line(closes: list[float], fast_period: int, slow_period: int) -> list[float]:
    """
    Fast EMA minus slow EMA, from the first bar where both are defined
    """
    fast_ema = ema_series(closes, fast_period)
    slow_ema = ema_series(closes, slow_period)
    if not slow_ema:
        return []
    # Both series end at the last close; align on their tails
    aligned_fast = fast_ema[-len(slow_ema):]
    return [fast - slow for fast, slow in zip(aligned_fast, slow_ema)]


def calculate_macd(window: Iterable[Bar], fast_period: int = 12,
                   slow_period: int = 26, signal_period: int = 9) -> MACDResult:
    """
    Calculate MACD over a price window

    Raises:
        InsufficientDataError: If the window holds fewer than
            slow_period + signal_period bars
    """
    if fast_period >= slow_period:
        raise ValueError(
            f"MACD fast period ({fast_period}) must be shorter than slow period ({slow_period})"
        )

    bars = list(window)
    require_bars(len(bars), slow_period + signal_period, "MACD")

    line = macd_line([bar.close for bar in bars], fast_period, slow_period)
    signal = ema_series(line, signal_period)

    macd_value = line[-1]
    signal_value = signal[-1]
    histogram = macd_value - signal_value

    if histogram > 0:
        signal_type = MACDSignal.BULLISH
    elif histogram < 0:
        signal_type = MACDSignal.BEARISH
    else:
        signal_type = MACDSignal.NEUTRAL

    return MACDResult(
        macd=macd_value,
        signal=signal_value,
        histogram=histogram,
        signal_type=signal_type,
        timestamp=bars[-1].ts,
    )
