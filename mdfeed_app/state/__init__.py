"""In-memory technical analysis state."""

from .technical import TechnicalStateStore

__all__ = ["TechnicalStateStore"]
