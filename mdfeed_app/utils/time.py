"""
Time semantics utilities for market vs wall-clock time handling.

Market timestamps carried by the feed are authoritative for bar bucketing
and indicator results; wall-clock time is only used for operational
bookkeeping such as receive timestamps and connection statistics.
"""

import math
import re
import time
from datetime import datetime, timezone
from typing import Optional

_TIMEFRAME_PATTERN = re.compile(r"^(\d+)(s|m|h|d|w)$")

_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
}

# Names used by the quote service for kline periods
_TIMEFRAME_ALIASES = {
    "1min": "1m",
    "5min": "5m",
    "15min": "15m",
    "30min": "30m",
    "1hour": "1h",
    "1day": "1d",
    "1week": "1w",
}


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def ms_to_datetime(epoch_ms: float) -> datetime:
    """Convert epoch milliseconds to a UTC datetime."""
    return datetime.fromtimestamp(epoch_ms / 1000.0, tz=timezone.utc)


def datetime_to_ms(ts: datetime) -> int:
    """Convert a datetime to epoch milliseconds (naive values are treated as UTC)."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return int(ts.timestamp() * 1000)


def get_market_time(market_ts: Optional[datetime] = None) -> datetime:
    """
    Get the current market time, preferring market timestamp over wall-clock time.

    Args:
        market_ts: Optional market timestamp from data feed

    Returns:
        Market time as UTC datetime, falling back to wall-clock time if unavailable
    """
    if market_ts is not None:
        return market_ts

    return datetime.now(timezone.utc)


def normalize_timeframe(timeframe: str) -> str:
    """Map quote-service period names ('5min', '1hour') onto compact names ('5m', '1h')."""
    return _TIMEFRAME_ALIASES.get(timeframe, timeframe)


def is_valid_timeframe(timeframe: object) -> bool:
    """True if timeframe is a string such as '30s', '1m', '4h', '1d', '1w'."""
    if not isinstance(timeframe, str):
        return False
    match = _TIMEFRAME_PATTERN.match(normalize_timeframe(timeframe))
    return match is not None and int(match.group(1)) > 0


def timeframe_to_seconds(timeframe: str) -> int:
    """
    Convert a timeframe name to its bucket size in seconds.

    Raises:
        ValueError: If the timeframe is not recognized
    """
    match = _TIMEFRAME_PATTERN.match(normalize_timeframe(timeframe))
    if match is None or int(match.group(1)) == 0:
        raise ValueError(f"Unrecognized timeframe: {timeframe!r}")
    return int(match.group(1)) * _UNIT_SECONDS[match.group(2)]


def bucket_start(ts: datetime, timeframe_seconds: int) -> datetime:
    """Align a timestamp to the start of its timeframe bucket (UTC epoch aligned)."""
    epoch = ts.timestamp()
    aligned = math.floor(epoch / timeframe_seconds) * timeframe_seconds
    return datetime.fromtimestamp(aligned, tz=timezone.utc)
