"""Result models for technical indicator calculations"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class RSISignal(str, Enum):
    OVERSOLD = "oversold"
    OVERBOUGHT = "overbought"
    NEUTRAL = "neutral"


class MACDSignal(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class BollingerSignal(str, Enum):
    SQUEEZE = "squeeze"
    EXPANSION = "expansion"
    NORMAL = "normal"


class OverallSignal(str, Enum):
    STRONG_BUY = "strong_buy"
    BUY = "buy"
    NEUTRAL = "neutral"
    SELL = "sell"
    STRONG_SELL = "strong_sell"


@dataclass(frozen=True)
class RSIResult:
    value: float
    signal: RSISignal
    timestamp: datetime


@dataclass(frozen=True)
class MACDResult:
    macd: float
    signal: float
    histogram: float
    signal_type: MACDSignal
    timestamp: datetime


@dataclass(frozen=True)
class BollingerBandsResult:
    upper: float
    middle: float
    lower: float
    bandwidth: float
    signal: BollingerSignal
    timestamp: datetime


@dataclass(frozen=True)
class SupportResistanceLevels:
    """Distinct support and resistance prices, each sorted ascending"""
    support: list[float] = field(default_factory=list)
    resistance: list[float] = field(default_factory=list)


@dataclass(frozen=True)
class TechnicalAnalysisResult:
    """
    Composite analysis for one (symbol, timeframe).

    An indicator whose preconditions were not met is left as None and does
    not contribute to the overall signal.
    """
    symbol: str
    timeframe: str
    overall_signal: OverallSignal
    confidence: float
    timestamp: datetime
    rsi: Optional[RSIResult] = None
    macd: Optional[MACDResult] = None
    bollinger_bands: Optional[BollingerBandsResult] = None

    @property
    def available_indicators(self) -> int:
        return sum(x is not None for x in (self.rsi, self.macd, self.bollinger_bands))

    def get_signal_strength(self) -> float:
        """Signed strength in [-1, 1]: confidence weighted by direction"""
        direction = {
            OverallSignal.STRONG_BUY: 1.0,
            OverallSignal.BUY: 0.5,
            OverallSignal.NEUTRAL: 0.0,
            OverallSignal.SELL: -0.5,
            OverallSignal.STRONG_SELL: -1.0,
        }[self.overall_signal]
        return direction * self.confidence
