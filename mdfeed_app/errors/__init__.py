"""
Error classification system for the market data distribution layer.

This module provides a structured exception hierarchy for the failure modes
encountered while streaming market data and computing technical indicators.
"""

from .data_quality import (
    DataQualityError,
    InsufficientDataError,
    MalformedMessageError,
)
from .recovery import (
    FeedServerError,
    GracefulDegradationError,
    RecoverableError,
    SubscriptionRejectedError,
    TransportError,
)
from .system_failures import (
    ConfigurationError,
    FeedUnavailableError,
    SystemFailureError,
)

__all__ = [
    # Data Quality Errors
    "DataQualityError",
    "MalformedMessageError",
    "InsufficientDataError",
    # Recovery Categories
    "RecoverableError",
    "TransportError",
    "GracefulDegradationError",
    "SubscriptionRejectedError",
    "FeedServerError",
    # System Failures
    "SystemFailureError",
    "FeedUnavailableError",
    "ConfigurationError",
]
