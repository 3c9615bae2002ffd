"""Unit tests for price alerts."""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from mdfeed_app.alerts import AlertBook, AlertCondition, AlertKey, is_triggered
from mdfeed_app.data.messages import StockUpdate

TS = datetime(2024, 3, 1, 1, 30, tzinfo=timezone.utc)


def quote(code: str, price: float) -> StockUpdate:
    return StockUpdate(code=code, price=price, timestamp=TS)


class TestIsTriggered:
    """Test condition evaluation."""

    def test_above_is_strict(self):
        assert is_triggered(AlertCondition.ABOVE, 10.01, 10.0)
        assert not is_triggered(AlertCondition.ABOVE, 10.0, 10.0)

    def test_below_is_strict(self):
        assert is_triggered(AlertCondition.BELOW, 9.99, 10.0)
        assert not is_triggered(AlertCondition.BELOW, 10.0, 10.0)

    @pytest.mark.parametrize("price,expected", [
        (10.0, True),
        (10.005, True),
        (9.995, True),
        (10.02, False),
        (9.98, False),
    ])
    def test_equals_within_tolerance(self, price, expected):
        assert is_triggered(AlertCondition.EQUALS, price, 10.0) is expected


class TestAlertBook:
    """Test alert registration and evaluation."""

    def test_add_returns_key(self):
        book = AlertBook()
        key = book.add("600519", "above", 1700, Mock())
        assert key == AlertKey("600519", AlertCondition.ABOVE, 1700.0)
        assert len(book) == 1
        assert book.has_alerts("600519")

    def test_same_key_replaces_callback(self):
        book = AlertBook()
        first, second = Mock(), Mock()
        book.add("600519", AlertCondition.ABOVE, 1700.0, first)
        book.add("600519", AlertCondition.ABOVE, 1700.0, second)

        fired = book.evaluate(quote("600519", 1701.0))

        assert len(book) == 1
        assert [callback for callback, _ in fired] == [second]

    def test_evaluate_is_level_triggered(self):
        book = AlertBook()
        book.add("600519", AlertCondition.ABOVE, 1700.0, Mock())

        assert len(book.evaluate(quote("600519", 1701.0))) == 1
        assert len(book.evaluate(quote("600519", 1702.0))) == 1
        assert book.evaluate(quote("600519", 1699.0)) == []

    def test_event_fields(self):
        book = AlertBook()
        book.add("600519", AlertCondition.BELOW, 1600.0, Mock())

        (_, event), = book.evaluate(quote("600519", 1590.0))

        assert event.code == "600519"
        assert event.price == 1590.0
        assert event.target_price == 1600.0
        assert event.condition == AlertCondition.BELOW
        assert event.timestamp == TS

    def test_other_codes_not_evaluated(self):
        book = AlertBook()
        book.add("600519", AlertCondition.ABOVE, 1.0, Mock())
        assert book.evaluate(quote("000858", 500.0)) == []

    def test_remove(self):
        book = AlertBook()
        key = book.add("600519", AlertCondition.ABOVE, 1700.0, Mock())

        assert book.remove(key) is True
        assert book.remove(key) is False
        assert not book.has_alerts("600519")

    def test_clear(self):
        book = AlertBook()
        book.add("600519", AlertCondition.ABOVE, 1700.0, Mock())
        book.add("000858", AlertCondition.BELOW, 100.0, Mock())
        book.clear()
        assert len(book) == 0
