"""Configuration management for the market data distribution layer."""

from .defaults import (
    BollingerParams,
    DefaultSubscriptionParams,
    FeedConfig,
    IndicatorConfig,
    MACDParams,
    RSIParams,
    StreamParams,
    WindowParams,
    get_default_config,
)
from .loader import ConfigLoader
from .validation import ConfigValidator, ValidationError

__all__ = [
    "BollingerParams",
    "ConfigLoader",
    "ConfigValidator",
    "DefaultSubscriptionParams",
    "FeedConfig",
    "IndicatorConfig",
    "MACDParams",
    "RSIParams",
    "StreamParams",
    "ValidationError",
    "WindowParams",
    "get_default_config",
]
