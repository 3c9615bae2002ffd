"""Technical indicator calculations"""

from .averages import calculate_sma, ema_series
from .bollinger import calculate_bollinger_bands
from .engine import analyze, composite_signal, confidence_score
from .levels import collapse_levels, find_support_resistance
from .macd import calculate_macd
from .models import (
    BollingerBandsResult,
    BollingerSignal,
    MACDResult,
    MACDSignal,
    OverallSignal,
    RSIResult,
    RSISignal,
    SupportResistanceLevels,
    TechnicalAnalysisResult,
)
from .rsi import calculate_rsi, wilder_rsi

__all__ = [
    "BollingerBandsResult",
    "BollingerSignal",
    "MACDResult",
    "MACDSignal",
    "OverallSignal",
    "RSIResult",
    "RSISignal",
    "SupportResistanceLevels",
    "TechnicalAnalysisResult",
    "analyze",
    "calculate_bollinger_bands",
    "calculate_macd",
    "calculate_rsi",
    "calculate_sma",
    "collapse_levels",
    "composite_signal",
    "confidence_score",
    "ema_series",
    "find_support_resistance",
    "wilder_rsi",
]
