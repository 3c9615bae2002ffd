"""
Technical analysis state per (symbol, timeframe).

Holds the rolling price windows fed by the coordinator's tick path and the
latest analysis result computed from each. Results are always recomputed
from the window; they are never edited in place.
"""

from datetime import datetime
from typing import Any, Iterable, Optional, Union

import structlog

from ..config.defaults import IndicatorConfig, WindowParams
from ..data.models import Bar, PriceSeriesWindow, SeriesKey
from ..indicators import (
    BollingerBandsResult,
    BollingerSignal,
    MACDResult,
    MACDSignal,
    OverallSignal,
    RSIResult,
    RSISignal,
    SupportResistanceLevels,
    TechnicalAnalysisResult,
    analyze,
    calculate_sma,
    find_support_resistance,
)
from ..utils.time import normalize_timeframe

logger = structlog.get_logger(__name__)

ConfigOverride = Union[IndicatorConfig, dict[str, Any], None]


class TechnicalStateStore:
    """Windows and latest analysis results keyed by SeriesKey."""

    def __init__(self, config: Optional[IndicatorConfig] = None,
                 window_params: Optional[WindowParams] = None):
        self.window_params = window_params or WindowParams()
        self._default_config = config or IndicatorConfig()
        self.config = self._default_config

        self._windows: dict[SeriesKey, PriceSeriesWindow] = {}
        self._timeframes: dict[str, list[str]] = {}
        self._results: dict[SeriesKey, TechnicalAnalysisResult] = {}
        self._last_volume: dict[str, float] = {}

    # Windows

    def track(self, symbol: str, timeframes: Optional[Iterable[str]] = None) -> list[PriceSeriesWindow]:
        """Ensure a window exists for each timeframe of symbol; returns those windows."""
        windows = []
        for timeframe in (timeframes or self.window_params.timeframes):
            key = SeriesKey(symbol, normalize_timeframe(timeframe))
            window = self._windows.get(key)
            if window is None:
                window = PriceSeriesWindow(symbol, key.timeframe, max_bars=self.window_params.max_bars)
                self._windows[key] = window
                self._timeframes.setdefault(symbol, []).append(key.timeframe)
                logger.debug("Tracking series", symbol=symbol, timeframe=key.timeframe)
            windows.append(window)
        return windows

    def is_tracked(self, symbol: str) -> bool:
        return symbol in self._timeframes

    def tracked_timeframes(self, symbol: str) -> list[str]:
        return list(self._timeframes.get(symbol, []))

    def get_window(self, symbol: str, timeframe: str = "1m") -> Optional[PriceSeriesWindow]:
        return self._windows.get(SeriesKey(symbol, normalize_timeframe(timeframe)))

    def load_history(self, symbol: str, timeframe: str, bars: Iterable[Bar]) -> PriceSeriesWindow:
        """Seed a window with historical bars, replacing its contents."""
        window = self.track(symbol, [timeframe])[0]
        window.load(bars)
        self._results.pop(window.key, None)
        logger.info("Loaded history", symbol=symbol, timeframe=window.timeframe, bars=len(window))
        return window

    def record_tick(self, symbol: str, price: float, ts: datetime,
                    cumulative_volume: Optional[float] = None) -> list[PriceSeriesWindow]:
        """
        Fold a tick into every tracked window of symbol.

        Quote volume is a cumulative session figure; bars receive the
        non-negative difference from the previous reading.

        Returns:
            Windows whose last bar changed
        """
        volume = self._volume_delta(symbol, cumulative_volume)
        updated = []
        for timeframe in self._timeframes.get(symbol, []):
            window = self._windows[SeriesKey(symbol, timeframe)]
            if window.apply_tick(price, ts, volume) is not None:
                updated.append(window)
        return updated

    def _volume_delta(self, symbol: str, cumulative_volume: Optional[float]) -> float:
        if cumulative_volume is None:
            return 0.0
        previous = self._last_volume.get(symbol)
        self._last_volume[symbol] = cumulative_volume
        if previous is None:
            return 0.0
        return max(cumulative_volume - previous, 0.0)

    # Analysis

    def _resolve_config(self, config: ConfigOverride) -> IndicatorConfig:
        if config is None:
            return self.config
        if isinstance(config, IndicatorConfig):
            return config
        return self.config.with_overrides(config)

    def analyze(self, symbol: str, timeframe: str = "1m",
                config: ConfigOverride = None) -> Optional[TechnicalAnalysisResult]:
        """
        Recompute and store the analysis for one series.

        Returns None when the series is not tracked or holds no bars.
        """
        window = self.get_window(symbol, timeframe)
        if window is None or len(window) == 0:
            return None

        result = analyze(symbol, window.snapshot(), window.timeframe, self._resolve_config(config))
        self._results[window.key] = result
        return result

    def get_result(self, symbol: str, timeframe: str = "1m") -> Optional[TechnicalAnalysisResult]:
        return self._results.get(SeriesKey(symbol, normalize_timeframe(timeframe)))

    def all_results(self) -> list[TechnicalAnalysisResult]:
        return list(self._results.values())

    def get_rsi(self, symbol: str, timeframe: str = "1m") -> Optional[RSIResult]:
        result = self.get_result(symbol, timeframe)
        return result.rsi if result else None

    def get_macd(self, symbol: str, timeframe: str = "1m") -> Optional[MACDResult]:
        result = self.get_result(symbol, timeframe)
        return result.macd if result else None

    def get_bollinger_bands(self, symbol: str, timeframe: str = "1m") -> Optional[BollingerBandsResult]:
        result = self.get_result(symbol, timeframe)
        return result.bollinger_bands if result else None

    def get_overall_signal(self, symbol: str, timeframe: str = "1m") -> Optional[OverallSignal]:
        result = self.get_result(symbol, timeframe)
        return result.overall_signal if result else None

    def get_signal_strength(self, symbol: str, timeframe: str = "1m") -> float:
        result = self.get_result(symbol, timeframe)
        return result.get_signal_strength() if result else 0.0

    def is_overbought(self, symbol: str, timeframe: str = "1m") -> bool:
        rsi = self.get_rsi(symbol, timeframe)
        return rsi is not None and rsi.signal == RSISignal.OVERBOUGHT

    def is_oversold(self, symbol: str, timeframe: str = "1m") -> bool:
        rsi = self.get_rsi(symbol, timeframe)
        return rsi is not None and rsi.signal == RSISignal.OVERSOLD

    def is_bullish_macd(self, symbol: str, timeframe: str = "1m") -> bool:
        macd = self.get_macd(symbol, timeframe)
        return macd is not None and macd.signal_type == MACDSignal.BULLISH

    def is_bearish_macd(self, symbol: str, timeframe: str = "1m") -> bool:
        macd = self.get_macd(symbol, timeframe)
        return macd is not None and macd.signal_type == MACDSignal.BEARISH

    def is_bollinger_squeeze(self, symbol: str, timeframe: str = "1m") -> bool:
        bands = self.get_bollinger_bands(symbol, timeframe)
        return bands is not None and bands.signal == BollingerSignal.SQUEEZE

    def support_resistance(self, symbol: str, timeframe: str = "1m",
                           lookback: Optional[int] = None) -> SupportResistanceLevels:
        window = self.get_window(symbol, timeframe)
        if window is None:
            return SupportResistanceLevels()
        return find_support_resistance(
            window.snapshot(), lookback or self.window_params.support_resistance_lookback
        )

    def sma(self, symbol: str, timeframe: str = "1m", period: int = 20) -> list[float]:
        """
        Raises:
            InsufficientDataError: If the series holds fewer than `period` bars
        """
        window = self.get_window(symbol, timeframe)
        return calculate_sma(window.snapshot() if window else [], period)

    # Configuration and housekeeping

    def update_config(self, overrides: ConfigOverride) -> IndicatorConfig:
        """Replace the store-wide indicator config; stored results are kept until recomputed."""
        self.config = self._resolve_config(overrides)
        logger.info("Indicator config updated", config=repr(self.config))
        return self.config

    def reset_config(self) -> IndicatorConfig:
        self.config = self._default_config
        return self.config

    def clear(self, symbol: Optional[str] = None, timeframe: Optional[str] = None) -> int:
        """
        Drop bars and results of matching series while keeping them tracked.

        With no arguments every series is cleared. Returns the number of
        series cleared.
        """
        wanted_tf = normalize_timeframe(timeframe) if timeframe else None
        cleared = 0
        for key, window in self._windows.items():
            if symbol is not None and key.symbol != symbol:
                continue
            if wanted_tf is not None and key.timeframe != wanted_tf:
                continue
            window.clear()
            self._results.pop(key, None)
            cleared += 1
        if symbol is None:
            self._last_volume.clear()
        else:
            self._last_volume.pop(symbol, None)
        return cleared

    def reset(self) -> None:
        """Forget every series, result and config override."""
        self._windows.clear()
        self._timeframes.clear()
        self._results.clear()
        self._last_volume.clear()
        self.config = self._default_config
