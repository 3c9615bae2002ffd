"""Default configuration parameters for the market data distribution layer."""

from dataclasses import dataclass, field, fields, replace
from typing import Any, Optional


@dataclass(frozen=True)
class StreamParams:
    """Streaming connection parameters."""
    url: str = "ws://localhost:3001/ws"               # Feed endpoint
    reconnect_interval_ms: int = 3000                 # Fixed delay between attempts
    max_reconnect_attempts: int = 10                  # Attempts before FeedUnavailable
    heartbeat_interval_ms: int = 30000                # Outbound heartbeat period
    enable_logging: bool = False                      # Per-message debug events
    max_queue_size: Optional[int] = None              # None keeps the queue unbounded


@dataclass(frozen=True)
class DefaultSubscriptionParams:
    """Subscriptions established when the coordinator starts."""
    indices: tuple[str, ...] = ("000001", "000002", "000300", "399001", "399006")
    hot_stocks: bool = True
    user_positions: bool = True


@dataclass(frozen=True)
class RSIParams:
    """RSI calculation parameters."""
    period: int = 14
    overbought: float = 70.0
    oversold: float = 30.0


@dataclass(frozen=True)
class MACDParams:
    """MACD calculation parameters."""
    fast_period: int = 12
    slow_period: int = 26
    signal_period: int = 9


@dataclass(frozen=True)
class BollingerParams:
    """Bollinger Bands calculation parameters."""
    period: int = 20
    standard_deviations: float = 2.0


_INDICATOR_GROUPS = {
    "rsi": RSIParams,
    "macd": MACDParams,
    "bollinger_bands": BollingerParams,
}


@dataclass(frozen=True)
class IndicatorConfig:
    """
    Indicator parameter set used for one analysis call.

    A group set to None disables that indicator.
    """
    rsi: Optional[RSIParams] = field(default_factory=RSIParams)
    macd: Optional[MACDParams] = field(default_factory=MACDParams)
    bollinger_bands: Optional[BollingerParams] = field(default_factory=BollingerParams)

    def with_overrides(self, overrides: Optional[dict[str, Any]]) -> "IndicatorConfig":
        """Return a copy with per-group overrides applied; self is unchanged."""
        if not overrides:
            return self

        updates: dict[str, Any] = {}
        for group_name, group_cls in _INDICATOR_GROUPS.items():
            if group_name not in overrides:
                continue
            value = overrides[group_name]
            if value is None or isinstance(value, group_cls):
                updates[group_name] = value
                continue
            current = getattr(self, group_name) or group_cls()
            updates[group_name] = replace(current, **value)

        return replace(self, **updates)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "IndicatorConfig":
        """Build from a plain mapping, filling missing fields with defaults."""
        return cls().with_overrides(data)


@dataclass(frozen=True)
class WindowParams:
    """Rolling price-series window parameters."""
    max_bars: int = 500                               # Bars kept per (symbol, timeframe)
    timeframes: tuple[str, ...] = ("1m",)             # Timeframes tracked for every symbol
    support_resistance_lookback: int = 20


@dataclass(frozen=True)
class FeedConfig:
    """Complete configuration for one coordinator instance."""
    stream: StreamParams
    subscriptions: DefaultSubscriptionParams
    indicators: IndicatorConfig
    windows: WindowParams
    enabled: bool = True


def get_default_config() -> FeedConfig:
    """Get the default configuration instance."""
    return FeedConfig(
        stream=StreamParams(),
        subscriptions=DefaultSubscriptionParams(),
        indicators=IndicatorConfig(),
        windows=WindowParams(),
    )


def field_names(cls: type) -> set[str]:
    """Names of the dataclass fields declared on cls."""
    return {f.name for f in fields(cls)}
