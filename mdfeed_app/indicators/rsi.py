"""RSI (Relative Strength Index) with Wilder smoothing"""

from typing import Iterable

from ..data.models import Bar
from .averages import require_bars
from .models import RSIResult, RSISignal


def wilder_rsi(closes: list[float], period: int = 14) -> float:
    """
    RSI of the last close.

    Average gain/loss are seeded with the simple mean of the first `period`
    changes, then smoothed as avg = (avg * (period - 1) + current) / period
    for every later change.
    """
    changes = [closes[i] - closes[i - 1] for i in range(1, len(closes))]
    gains = [max(change, 0.0) for change in changes]
    losses = [max(-change, 0.0) for change in changes]

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period

    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def classify_rsi(value: float, overbought: float = 70.0, oversold: float = 30.0) -> RSISignal:
    if value <= oversold:
        return RSISignal.OVERSOLD
    if value >= overbought:
        return RSISignal.OVERBOUGHT
    return RSISignal.NEUTRAL


def calculate_rsi(window: Iterable[Bar], period: int = 14,
                  overbought: float = 70.0, oversold: float = 30.0) -> RSIResult:
    """
    Calculate RSI over a price window

    Args:
        window: Bars in chronological order
        period: RSI period (default 14)
        overbought: Overbought threshold
        oversold: Oversold threshold

    Returns:
        RSIResult stamped with the last bar's timestamp

    Raises:
        InsufficientDataError: If the window holds fewer than period + 1 bars
    """
    if period < 1:
        raise ValueError(f"RSI period must be positive, got {period}")

    bars = list(window)
    require_bars(len(bars), period + 1, "RSI")

    value = wilder_rsi([bar.close for bar in bars], period)
    return RSIResult(
        value=value,
        signal=classify_rsi(value, overbought, oversold),
        timestamp=bars[-1].ts,
    )
