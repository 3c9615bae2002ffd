"""Tests for bars and price series windows."""

from datetime import datetime, timedelta, timezone

import pytest

from mdfeed_app.data.models import Bar, PriceSeriesWindow, SeriesKey

T0 = datetime(2024, 3, 1, 1, 30, tzinfo=timezone.utc)


class TestPriceSeriesWindow:
    """Test tick aggregation into bars."""

    def test_first_tick_opens_bar(self):
        window = PriceSeriesWindow("600519", "1m")
        bar = window.apply_tick(100.0, T0 + timedelta(seconds=12), volume=5)

        assert bar == Bar(ts=T0, open=100.0, high=100.0, low=100.0, close=100.0, volume=5)
        assert len(window) == 1

    def test_tick_in_same_bucket_updates_last_bar(self):
        window = PriceSeriesWindow("600519", "1m")
        window.apply_tick(100.0, T0, volume=5)
        window.apply_tick(103.0, T0 + timedelta(seconds=20), volume=2)
        bar = window.apply_tick(99.0, T0 + timedelta(seconds=40), volume=1)

        assert len(window) == 1
        assert (bar.open, bar.high, bar.low, bar.close, bar.volume) == (100.0, 103.0, 99.0, 99.0, 8)

    def test_tick_in_next_bucket_appends(self):
        window = PriceSeriesWindow("600519", "5m")
        window.apply_tick(100.0, T0)
        window.apply_tick(101.0, T0 + timedelta(minutes=5, seconds=1))

        assert [bar.close for bar in window] == [100.0, 101.0]
        assert window.last.ts == T0 + timedelta(minutes=5)

    def test_out_of_order_tick_ignored(self):
        window = PriceSeriesWindow("600519", "1m")
        window.apply_tick(100.0, T0 + timedelta(minutes=2))

        assert window.apply_tick(90.0, T0) is None
        assert window.closes() == [100.0]

    def test_bounded_length(self):
        window = PriceSeriesWindow("600519", "1m", max_bars=3)
        for i in range(5):
            window.apply_tick(100.0 + i, T0 + timedelta(minutes=i))

        assert window.closes() == [102.0, 103.0, 104.0]

    def test_timeframe_alias_normalized(self):
        window = PriceSeriesWindow("600519", "5min")
        assert window.key == SeriesKey("600519", "5m")
        assert window.timeframe_seconds == 300

    def test_unknown_timeframe_rejected(self):
        with pytest.raises(ValueError):
            PriceSeriesWindow("600519", "fortnight")

    def test_load_sorts_and_deduplicates(self):
        window = PriceSeriesWindow("600519", "1m")
        later = Bar(ts=T0 + timedelta(minutes=1), open=2, high=2, low=2, close=2)
        first = Bar(ts=T0, open=1, high=1, low=1, close=1)
        revised = Bar(ts=T0, open=1, high=1.5, low=1, close=1.5)

        window.load([later, first, revised])

        assert window.closes() == [1.5, 2]

    def test_snapshot_is_a_copy(self):
        window = PriceSeriesWindow("600519", "1m")
        window.apply_tick(100.0, T0)
        snapshot = window.snapshot()
        window.apply_tick(101.0, T0 + timedelta(minutes=1))

        assert len(snapshot) == 1
