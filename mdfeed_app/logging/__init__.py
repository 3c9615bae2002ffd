"""
Logging configuration and utilities for the market data distribution layer.
"""
from .config import (
    configure_logging,
    get_indicator_logger,
    get_logger,
    get_stream_logger,
    log_connection_transition,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "get_stream_logger",
    "get_indicator_logger",
    "log_connection_transition",
]
