"""
Recovery strategy classifications for error handling.

These classes categorize errors by their recovery characteristics and guide
how the stream layer reacts: retry through the reconnect policy, or keep
running with reduced functionality.
"""

from typing import Any, Optional


class RecoverableError(Exception):
    """Errors that can be recovered from automatically."""

    def __init__(self, message: str, retry_count: int = 0,
                 max_retries: int = 3, **kwargs):
        super().__init__(message)
        self.retry_count = retry_count
        self.max_retries = max_retries
        self.recoverable = True


class TransportError(RecoverableError):
    """Connect or send failure at the transport layer, retried by reconnect."""

    def __init__(self, message: str, url: Optional[str] = None,
                 operation: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.url = url
        self.operation = operation


class GracefulDegradationError(Exception):
    """Errors that allow continued operation with reduced functionality."""

    def __init__(self, message: str, degraded_functionality: Optional[str] = None,
                 fallback_strategy: Optional[str] = None, **kwargs):
        super().__init__(message)
        self.degraded_functionality = degraded_functionality
        self.fallback_strategy = fallback_strategy
        self.allows_degradation = True


class SubscriptionRejectedError(GracefulDegradationError):
    """Server refused a subscription; it is deactivated and not retried."""

    def __init__(self, message: str, subscription_id: Optional[str] = None,
                 reason: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            degraded_functionality="subscription",
            fallback_strategy="deactivate",
            **kwargs
        )
        self.subscription_id = subscription_id
        self.reason = reason


class FeedServerError(GracefulDegradationError):
    """Error frame reported by the feed server; the connection stays open."""

    def __init__(self, message: str, code: Optional[str] = None,
                 details: Optional[Any] = None, **kwargs):
        super().__init__(
            message,
            degraded_functionality="server",
            fallback_strategy="log_and_continue",
            **kwargs
        )
        self.code = code
        self.details = details
