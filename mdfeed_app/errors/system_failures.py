"""
System failure error classifications for unrecoverable errors.

These exceptions represent failures that the stream layer cannot fix on its
own and that need an explicit action from the owner to resolve.
"""

from typing import Any, Optional


class SystemFailureError(Exception):
    """Base class for unrecoverable system failures."""

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = False


class FeedUnavailableError(SystemFailureError):
    """Reconnect attempts exhausted; terminal until an explicit connect()."""

    def __init__(self, message: str, attempts: Optional[int] = None,
                 url: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.attempts = attempts
        self.url = url


class ConfigurationError(SystemFailureError):
    """Configuration failed validation at load time."""

    def __init__(self, message: str, errors: Optional[list] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.errors = errors or []
