"""
Composite technical analysis over a price window.

Each indicator is computed independently; one that cannot be computed is
left out of the result and the remaining ones still produce a composite
signal.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

from ..config.defaults import IndicatorConfig
from ..data.models import Bar
from ..errors import InsufficientDataError
from ..logging import get_indicator_logger
from .bollinger import calculate_bollinger_bands
from .macd import calculate_macd
from .models import (
    BollingerBandsResult,
    BollingerSignal,
    MACDResult,
    MACDSignal,
    OverallSignal,
    RSIResult,
    RSISignal,
    TechnicalAnalysisResult,
)
from .rsi import calculate_rsi

logger = get_indicator_logger(__name__)

STRONG_RATIO = 0.67
WEAK_RATIO = 0.34


def composite_signal(rsi: Optional[RSIResult], macd: Optional[MACDResult],
                     bollinger_bands: Optional[BollingerBandsResult]) -> OverallSignal:
    """
    Vote-based overall signal.

    RSI oversold/overbought and MACD bullish/bearish vote buy/sell; a
    Bollinger squeeze casts a neutral vote.
    """
    votes: list[str] = []

    if rsi is not None:
        if rsi.signal == RSISignal.OVERSOLD:
            votes.append("buy")
        elif rsi.signal == RSISignal.OVERBOUGHT:
            votes.append("sell")

    if macd is not None:
        if macd.signal_type == MACDSignal.BULLISH:
            votes.append("buy")
        elif macd.signal_type == MACDSignal.BEARISH:
            votes.append("sell")

    if bollinger_bands is not None and bollinger_bands.signal == BollingerSignal.SQUEEZE:
        votes.append("neutral")

    if not votes:
        return OverallSignal.NEUTRAL

    buy_ratio = votes.count("buy") / len(votes)
    sell_ratio = votes.count("sell") / len(votes)

    if buy_ratio >= STRONG_RATIO:
        return OverallSignal.STRONG_BUY
    if buy_ratio >= WEAK_RATIO:
        return OverallSignal.BUY
    if sell_ratio >= STRONG_RATIO:
        return OverallSignal.STRONG_SELL
    if sell_ratio >= WEAK_RATIO:
        return OverallSignal.SELL
    return OverallSignal.NEUTRAL


def confidence_score(rsi: Optional[RSIResult], macd: Optional[MACDResult],
                     bollinger_bands: Optional[BollingerBandsResult]) -> float:
    """Availability-weighted confidence with bonuses for extreme readings, capped at 1.0"""
    available = sum(x is not None for x in (rsi, macd, bollinger_bands))
    confidence = (available / 3) * 0.7

    if rsi is not None and (rsi.value <= 20 or rsi.value >= 80):
        confidence += 0.1
    if macd is not None and abs(macd.histogram) > 0.5:
        confidence += 0.1
    if bollinger_bands is not None and (
        bollinger_bands.bandwidth <= 0.02 or bollinger_bands.bandwidth >= 0.15
    ):
        confidence += 0.1

    return min(confidence, 1.0)


def _attempt(indicator: str, symbol: str, timeframe: str, compute):
    try:
        return compute()
    except InsufficientDataError as e:
        logger.debug(
            "Indicator skipped: insufficient data",
            indicator=indicator,
            symbol=symbol,
            timeframe=timeframe,
            required=e.required_count,
            available=e.available_count
        )
    except (ArithmeticError, ValueError) as e:
        logger.warning(
            "Indicator calculation failed",
            indicator=indicator,
            symbol=symbol,
            timeframe=timeframe,
            error=str(e),
            exc_info=True
        )
    return None


def analyze(symbol: str, window: Iterable[Bar], timeframe: str = "1m",
            config: Optional[IndicatorConfig] = None) -> TechnicalAnalysisResult:
    """
    Run every enabled indicator over the window and combine them

    Args:
        symbol: Instrument code
        window: Bars in chronological order; not mutated
        timeframe: Timeframe label of the window
        config: Indicator parameters; a group set to None is skipped

    Returns:
        TechnicalAnalysisResult stamped with the last bar's timestamp
    """
    config = config or IndicatorConfig()
    bars = list(window)

    rsi = macd = bollinger_bands = None

    if config.rsi is not None:
        params = config.rsi
        rsi = _attempt("RSI", symbol, timeframe, lambda: calculate_rsi(
            bars, params.period, params.overbought, params.oversold
        ))

    if config.macd is not None:
        params_macd = config.macd
        macd = _attempt("MACD", symbol, timeframe, lambda: calculate_macd(
            bars, params_macd.fast_period, params_macd.slow_period, params_macd.signal_period
        ))

    if config.bollinger_bands is not None:
        params_bb = config.bollinger_bands
        bollinger_bands = _attempt("BollingerBands", symbol, timeframe, lambda: calculate_bollinger_bands(
            bars, params_bb.period, params_bb.standard_deviations
        ))

    result = TechnicalAnalysisResult(
        symbol=symbol,
        timeframe=timeframe,
        overall_signal=composite_signal(rsi, macd, bollinger_bands),
        confidence=confidence_score(rsi, macd, bollinger_bands),
        timestamp=bars[-1].ts if bars else datetime.now(timezone.utc),
        rsi=rsi,
        macd=macd,
        bollinger_bands=bollinger_bands,
    )

    logger.debug(
        "Analysis complete",
        symbol=symbol,
        timeframe=timeframe,
        overall_signal=result.overall_signal.value,
        confidence=round(result.confidence, 3),
        indicators=result.available_indicators
    )
    return result
