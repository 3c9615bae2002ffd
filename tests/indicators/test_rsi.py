"""Tests for RSI calculation"""

import pytest

from mdfeed_app.errors import InsufficientDataError
from mdfeed_app.indicators.models import RSISignal
from mdfeed_app.indicators.rsi import calculate_rsi, classify_rsi

REFERENCE_CLOSES = [
    44.0, 44.25, 44.5, 43.75, 44.65, 45.12, 45.34, 45.09,
    44.15, 43.61, 44.33, 44.83, 45.10, 45.42, 45.84,
]


def expected_wilder_rsi(closes, period):
    """Reference RSI: SMA seed over the first `period` changes, Wilder smoothing after"""
    changes = [b - a for a, b in zip(closes, closes[1:])]
    gains = [max(c, 0.0) for c in changes]
    losses = [max(-c, 0.0) for c in changes]
    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period
    if avg_loss == 0:
        return 100.0
    return 100 - 100 / (1 + avg_gain / avg_loss)


class TestRSIPreconditions:
    """Test RSI input requirements"""

    def test_requires_period_plus_one_bars(self, make_bars):
        with pytest.raises(InsufficientDataError) as exc_info:
            calculate_rsi(make_bars([100.0 + i for i in range(14)]), period=14)

        assert exc_info.value.required_count == 15
        assert exc_info.value.available_count == 14
        assert exc_info.value.indicator == "RSI"

    def test_exact_minimum_is_enough(self, make_bars):
        result = calculate_rsi(make_bars([100.0 + i for i in range(15)]), period=14)
        assert result.value == 100.0

    def test_rejects_non_positive_period(self, make_bars):
        with pytest.raises(ValueError):
            calculate_rsi(make_bars([1.0, 2.0, 3.0]), period=0)


class TestRSIValues:
    """Test RSI values against the Wilder formula"""

    def test_strictly_rising_closes_give_100(self, make_bars):
        result = calculate_rsi(make_bars([10.0 + 0.5 * i for i in range(30)]))
        assert result.value == 100.0
        assert result.signal == RSISignal.OVERBOUGHT

    def test_strictly_falling_closes_give_0(self, make_bars):
        result = calculate_rsi(make_bars([50.0 - 0.5 * i for i in range(30)]))
        assert result.value == 0.0
        assert result.signal == RSISignal.OVERSOLD

    def test_flat_closes_have_no_loss(self, make_bars):
        result = calculate_rsi(make_bars([20.0] * 20))
        assert result.value == 100.0

    def test_reference_series_matches_seed_average(self, make_bars):
        result = calculate_rsi(make_bars(REFERENCE_CLOSES), period=14)

        assert result.value == pytest.approx(expected_wilder_rsi(REFERENCE_CLOSES, 14))
        # 10 gains summing 4.32 vs 4 losses summing 2.48
        assert result.value == pytest.approx(100 - 100 / (1 + 4.32 / 2.48))
        assert result.signal == RSISignal.NEUTRAL

    def test_wilder_smoothing_applies_after_seed(self, make_bars):
        closes = REFERENCE_CLOSES + [46.08, 45.89, 46.03, 45.61, 46.28, 46.28, 46.0]
        result = calculate_rsi(make_bars(closes), period=14)

        assert result.value == pytest.approx(expected_wilder_rsi(closes, 14))
        # Smoothing differs from a plain average of the last 14 changes
        assert result.value != pytest.approx(expected_wilder_rsi(closes[-15:], 14))

    def test_result_uses_last_bar_timestamp(self, make_bars):
        bars = make_bars(REFERENCE_CLOSES)
        assert calculate_rsi(bars).timestamp == bars[-1].ts

    def test_window_is_not_mutated(self, make_bars):
        bars = make_bars(REFERENCE_CLOSES)
        snapshot = list(bars)
        calculate_rsi(bars)
        assert bars == snapshot


class TestRSISignal:
    """Test RSI threshold classification"""

    @pytest.mark.parametrize("value,expected", [
        (30.0, RSISignal.OVERSOLD),
        (29.9, RSISignal.OVERSOLD),
        (30.1, RSISignal.NEUTRAL),
        (69.9, RSISignal.NEUTRAL),
        (70.0, RSISignal.OVERBOUGHT),
    ])
    def test_default_thresholds(self, value, expected):
        assert classify_rsi(value) == expected

    def test_custom_thresholds(self, make_bars):
        result = calculate_rsi(make_bars(REFERENCE_CLOSES), overbought=60.0, oversold=20.0)
        assert result.signal == RSISignal.OVERBOUGHT
