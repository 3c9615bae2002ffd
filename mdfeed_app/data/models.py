"""
Canonical data models for price series.

Bars are immutable; a PriceSeriesWindow holds the bounded, ordered bars of
one (symbol, timeframe) pair and folds incoming ticks into them.
"""

from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Iterable, Iterator, NamedTuple, Optional

import structlog

from ..utils.time import bucket_start, normalize_timeframe, timeframe_to_seconds

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Bar:
    """OHLCV bar with a UTC bucket-start timestamp."""
    ts: datetime        # UTC bucket start (market time)
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


class SeriesKey(NamedTuple):
    """Composite key for one price series."""
    symbol: str
    timeframe: str


@dataclass
class PriceSeriesWindow:
    """
    Bounded OHLCV window for one (symbol, timeframe) pair.

    A tick inside the current bucket updates the in-progress last bar; a
    tick in a later bucket appends a new bar. Ticks older than the last
    bucket are ignored so closed bars are never rewritten.
    """

    symbol: str
    timeframe: str
    max_bars: int = 500
    _bars: deque = field(default=None, init=False, repr=False)  # deque[Bar]

    def __post_init__(self):
        self.timeframe = normalize_timeframe(self.timeframe)
        self.timeframe_seconds = timeframe_to_seconds(self.timeframe)
        self._bars = deque(maxlen=self.max_bars)

    @property
    def key(self) -> SeriesKey:
        return SeriesKey(self.symbol, self.timeframe)

    @property
    def last(self) -> Optional[Bar]:
        return self._bars[-1] if self._bars else None

    def __len__(self) -> int:
        return len(self._bars)

    def __iter__(self) -> Iterator[Bar]:
        return iter(self._bars)

    def snapshot(self) -> list[Bar]:
        """Copy of the current bars, oldest first."""
        return list(self._bars)

    def closes(self) -> list[float]:
        return [bar.close for bar in self._bars]

    def apply_tick(self, price: float, ts: datetime, volume: float = 0.0) -> Optional[Bar]:
        """
        Fold a tick into the window.

        Args:
            price: Trade/quote price
            ts: Market timestamp of the tick
            volume: Volume traded since the previous tick

        Returns:
            The new or updated last bar, None if the tick was out of order
        """
        bucket = bucket_start(ts, self.timeframe_seconds)
        last = self.last

        if last is None or bucket > last.ts:
            bar = Bar(ts=bucket, open=price, high=price, low=price, close=price, volume=volume)
            self._bars.append(bar)
            return bar

        if bucket == last.ts:
            bar = replace(
                last,
                high=max(last.high, price),
                low=min(last.low, price),
                close=price,
                volume=last.volume + volume,
            )
            self._bars[-1] = bar
            return bar

        logger.debug(
            "Ignoring out-of-order tick",
            symbol=self.symbol,
            timeframe=self.timeframe,
            tick_ts=ts.isoformat(),
            last_bar_ts=last.ts.isoformat()
        )
        return None

    def load(self, bars: Iterable[Bar]) -> None:
        """Replace the window contents with historical bars (sorted by timestamp)."""
        self._bars.clear()
        for bar in sorted(bars, key=lambda b: b.ts):
            if self._bars and bar.ts == self._bars[-1].ts:
                self._bars[-1] = bar
            else:
                self._bars.append(bar)

    def clear(self) -> None:
        self._bars.clear()
