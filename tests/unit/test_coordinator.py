"""Unit tests for the market data coordinator."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from mdfeed_app.alerts import AlertCondition
from mdfeed_app.config.defaults import DefaultSubscriptionParams, get_default_config
from mdfeed_app.coordinator import MarketDataCoordinator
from mdfeed_app.data.messages import IndexUpdate, MarketUpdate, StockUpdate
from mdfeed_app.sinks import InMemoryMarketState, InMemoryPositions, InMemoryPriceState, Position
from mdfeed_app.stream import ConnectionState

BASE_TIME = datetime(2024, 3, 1, 1, 30, tzinfo=timezone.utc)


@pytest.fixture
def feed_config(stream_params):
    return replace(
        get_default_config(),
        stream=stream_params,
        subscriptions=DefaultSubscriptionParams(indices=("000300",)),
    )


@pytest.fixture
def price_state():
    return InMemoryPriceState()


@pytest.fixture
def positions():
    return InMemoryPositions([Position("600519", quantity=100, cost_price=1600.0)])


@pytest.fixture
def market_state():
    return InMemoryMarketState()


@pytest.fixture
def coordinator(feed_config, price_state, positions, market_state, transport_factory, scheduler):
    return MarketDataCoordinator(
        config=feed_config,
        price_sink=price_state,
        position_sink=positions,
        market_sink=market_state,
        transport_factory=transport_factory,
        scheduler=scheduler,
        hot_stock_codes=lambda: ["000858"],
    )


@pytest.fixture
def live(coordinator, transports):
    """Coordinator started with an open transport; returns that transport."""
    coordinator.start()
    transports[0].simulate_open()
    return transports[0]


def stock(code, price, **extra):
    return {"code": code, "price": price, **extra}


class TestLifecycle:
    """Test start, connect and default subscriptions."""

    def test_default_subscriptions_sent_on_open(self, coordinator, live):
        subscribes = [f["data"] for f in live.frames() if f["type"] == "subscribe"]

        assert [(s["type"], s["codes"]) for s in subscribes] == [
            ("index", ["000300"]),
            ("stock", ["000858"]),
            ("stock", ["600519"]),
        ]
        assert set(coordinator.get_subscription_status()["defaults"]) == {
            "indices", "hot_stocks", "user_positions"
        }

    def test_defaults_registered_once(self, coordinator, transports):
        coordinator.start()
        transports[0].simulate_open()
        coordinator.disconnect()
        coordinator.start()
        transports[1].simulate_open()

        assert len(coordinator.registry) == 3
        assert len(transports[1].frames()) == 3

    def test_disabled_feed_does_not_connect(self, feed_config, transport_factory, scheduler, transports):
        coordinator = MarketDataCoordinator(
            config=replace(feed_config, enabled=False),
            transport_factory=transport_factory,
            scheduler=scheduler,
        )
        coordinator.start()

        assert transports == []
        assert len(coordinator.registry) == 0

    def test_no_hot_stock_provider(self, feed_config, transport_factory, scheduler):
        coordinator = MarketDataCoordinator(
            config=feed_config, transport_factory=transport_factory, scheduler=scheduler
        )
        coordinator.start()
        assert coordinator.get_subscription_status()["defaults"].keys() == {"indices"}

    def test_is_connected(self, coordinator, live):
        assert coordinator.is_connected
        coordinator.disconnect()
        assert not coordinator.is_connected
        assert coordinator.get_stats().state == ConnectionState.DISCONNECTED


class TestStockUpdates:
    """Test the stock update path."""

    def test_sinks_updated(self, coordinator, live, frame, price_state, positions):
        live.simulate_message(frame("stock_update", stock("600519", 1688.0, change=8.0, changePercent=0.48)))

        quote = price_state.stocks["600519"]
        assert (quote.price, quote.change, quote.change_percent) == (1688.0, 8.0, 0.48)
        assert positions.positions[0].current_price == 1688.0
        assert positions.positions[0].unrealized_pnl == pytest.approx(8800.0)
        assert positions.positions[0].market_value == pytest.approx(168800.0)

    def test_position_sink_skips_unheld_codes(self, coordinator, live, frame, positions):
        positions.update_position_price = Mock()
        live.simulate_message(frame("stock_update", stock("000858", 150.0)))
        positions.update_position_price.assert_not_called()

    def test_callback_receives_update(self, coordinator, live, frame):
        callback = Mock()
        coordinator.subscribe_to_stocks(["600519"], callback)

        live.simulate_message(frame("stock_update", stock("600519", 1688.0)))

        update = callback.call_args[0][0]
        assert isinstance(update, StockUpdate)
        assert update.price == 1688.0

    def test_predicate_filters_callbacks(self, coordinator, live, frame):
        callback = Mock()
        coordinator.subscribe_to_stocks(["600519"], callback, predicate=lambda u: u.price > 1700)

        live.simulate_message(frame("stock_update", stock("600519", 1688.0)))
        live.simulate_message(frame("stock_update", stock("600519", 1701.0)))

        assert [c.args[0].price for c in callback.call_args_list] == [1701.0]

    def test_predicate_error_skips_callback(self, coordinator, live, frame):
        callback = Mock()
        coordinator.subscribe_to_stocks(["600519"], callback, predicate=Mock(side_effect=KeyError("x")))
        live.simulate_message(frame("stock_update", stock("600519", 1688.0)))
        callback.assert_not_called()

    def test_unsubscribe_removes_only_own_callbacks(self, coordinator, live, frame):
        first, second = Mock(), Mock()
        first_id = coordinator.subscribe_to_stocks(["600519"], first)
        coordinator.subscribe_to_stocks(["600519"], second)

        assert coordinator.unsubscribe(first_id) is True
        live.simulate_message(frame("stock_update", stock("600519", 1688.0)))

        first.assert_not_called()
        second.assert_called_once()
        assert live.frames()[-1] == {
            "type": "unsubscribe",
            "data": {"subscriptionId": first_id},
            "timestamp": live.frames()[-1]["timestamp"],
        }

    def test_unsubscribe_unknown_id(self, coordinator):
        assert coordinator.unsubscribe("stock_does_not_exist") is False

    def test_sink_exception_contained(self, feed_config, transport_factory, scheduler, transports, frame):
        price_sink = Mock()
        price_sink.update_stock_price.side_effect = RuntimeError("db down")
        coordinator = MarketDataCoordinator(
            config=feed_config, price_sink=price_sink,
            transport_factory=transport_factory, scheduler=scheduler,
        )
        callback = Mock()
        coordinator.subscribe_to_stocks(["600519"], callback)
        coordinator.start()
        transports[0].simulate_open()

        transports[0].simulate_message(frame("stock_update", stock("600519", 1688.0)))

        callback.assert_called_once()
        assert coordinator.is_connected

    def test_rejected_subscription_stops_callbacks(self, coordinator, live, frame):
        callback = Mock()
        subscription_id = coordinator.subscribe_to_stocks(["600519"], callback)

        live.simulate_message(frame("subscription_ack", {
            "subscriptionId": subscription_id, "success": False, "error": "no entitlement",
        }))
        live.simulate_message(frame("stock_update", stock("600519", 1688.0)))

        callback.assert_not_called()
        assert coordinator.registry.get(subscription_id).active is False


class TestIndexAndMarketUpdates:
    """Test index and market-wide update routing."""

    def test_index_update(self, coordinator, live, frame, price_state):
        callback = Mock()
        coordinator.subscribe_to_indices(["000300"], callback)

        live.simulate_message(frame("index_update", stock("000300", 3550.1, changePercent=-0.2)))

        assert isinstance(price_state.indices["000300"], IndexUpdate)
        callback.assert_called_once()

    def test_index_update_not_tracked_technically(self, coordinator, live, frame):
        live.simulate_message(frame("index_update", stock("000001", 3050.0)))
        assert not coordinator.technical.is_tracked("000001")

    @pytest.mark.parametrize("update_type,attribute", [
        ("sentiment", "sentiment"),
        ("capital_flow", "capital_flow"),
        ("market_status", "market_status"),
    ])
    def test_market_update_routed_to_sink(self, coordinator, live, frame, market_state,
                                          update_type, attribute):
        live.simulate_message(frame("market_update", {"type": update_type, "data": {"v": 1}}))
        assert getattr(market_state, attribute) == {"v": 1}

    def test_market_callbacks_by_type(self, coordinator, live, frame):
        callback = Mock()
        coordinator.subscribe_to_market_data(["sentiment"], callback)

        live.simulate_message(frame("market_update", {"type": "capital_flow", "data": {}}))
        live.simulate_message(frame("market_update", {"type": "sentiment", "data": {"score": 55}}))

        update = callback.call_args[0][0]
        assert isinstance(update, MarketUpdate)
        assert update.data == {"score": 55}
        assert callback.call_count == 1

    def test_unknown_market_type_ignored(self, coordinator, live, frame, market_state):
        live.simulate_message(frame("market_update", {"type": "margin_balance", "data": 1}))
        assert market_state.updated_at is None


class TestPriceAlerts:
    """Test alerts through the coordinator."""

    @pytest.mark.parametrize("price,fires", [
        (10.00, True),
        (10.005, True),
        (9.995, True),
        (10.02, False),
    ])
    def test_equals_alert(self, coordinator, live, frame, price, fires):
        callback = Mock()
        coordinator.set_price_alert("601398", AlertCondition.EQUALS, 10.0, callback)

        live.simulate_message(frame("stock_update", stock("601398", price)))

        assert callback.called is fires

    def test_alert_is_level_triggered(self, coordinator, live, frame):
        callback = Mock()
        coordinator.set_price_alert("600519", AlertCondition.ABOVE, 1700.0, callback)

        for price in (1701.0, 1705.0, 1690.0, 1710.0):
            live.simulate_message(frame("stock_update", stock("600519", price)))

        assert [c.args[0].price for c in callback.call_args_list] == [1701.0, 1705.0, 1710.0]

    def test_alert_subscribes_uncovered_code(self, coordinator, live):
        remove = coordinator.set_price_alert("601398", AlertCondition.BELOW, 5.0, Mock())

        subscribes = [f["data"] for f in live.frames() if f["type"] == "subscribe"]
        assert subscribes[-1]["codes"] == ["601398"]

        assert remove() is True
        assert live.frames()[-1]["type"] == "unsubscribe"
        assert remove() is False

    def test_alert_reuses_existing_subscription(self, coordinator, live):
        before = len(coordinator.registry)
        coordinator.set_price_alert("600519", AlertCondition.ABOVE, 1700.0, Mock())
        assert len(coordinator.registry) == before

    def test_alert_survives_unsubscribe_of_covering_subscription(self, coordinator, live, frame):
        callback = Mock()
        user_id = coordinator.subscribe_to_stocks(["601398"])
        coordinator.set_price_alert("601398", AlertCondition.BELOW, 5.0, callback)

        coordinator.unsubscribe(user_id)

        assert live.frames()[-2]["type"] == "unsubscribe"
        assert live.frames()[-1]["type"] == "subscribe"
        assert live.frames()[-1]["data"]["codes"] == ["601398"]
        live.simulate_message(frame("stock_update", stock("601398", 4.9)))
        callback.assert_called_once()

    def test_auto_subscription_kept_while_alerts_remain(self, coordinator, live):
        remove_first = coordinator.set_price_alert("601398", AlertCondition.BELOW, 5.0, Mock())
        coordinator.set_price_alert("601398", AlertCondition.ABOVE, 6.0, Mock())
        count = len(coordinator.registry)

        remove_first()

        assert len(coordinator.registry) == count

    def test_alert_callback_exception_contained(self, coordinator, live, frame):
        coordinator.set_price_alert("600519", AlertCondition.ABOVE, 1.0, Mock(side_effect=ValueError))
        live.simulate_message(frame("stock_update", stock("600519", 1688.0)))
        assert coordinator.is_connected


class TestTechnicalFeed:
    """Test the stock update to technical analysis path."""

    def test_symbol_tracked_on_first_update(self, coordinator, live, frame):
        live.simulate_message(frame("stock_update", stock("600519", 1688.0)))
        assert coordinator.technical.tracked_timeframes("600519") == ["1m"]

    def test_volume_is_cumulative_delta(self, coordinator, live, frame):
        live.simulate_message(frame("stock_update", stock("600519", 1688.0, volume=1000)))
        live.simulate_message(frame("stock_update", stock("600519", 1689.0, volume=1500),
                                    ts=BASE_TIME + timedelta(seconds=10)))

        bar = coordinator.technical.get_window("600519").last
        assert bar.volume == 500
        assert bar.close == 1689.0

    def test_analysis_listener(self, coordinator, live, frame):
        listener = Mock()
        remove = coordinator.on_analysis(listener)

        for i in range(30):
            live.simulate_message(frame("stock_update", stock("600519", 1600.0 + i),
                                        ts=BASE_TIME + timedelta(minutes=i)))

        assert listener.call_count == 30
        result = listener.call_args[0][0]
        assert result.symbol == "600519"
        assert result.rsi is not None
        assert result.rsi.value == 100.0
        assert coordinator.technical.get_result("600519") == result

        remove()
        live.simulate_message(frame("stock_update", stock("600519", 1700.0),
                                    ts=BASE_TIME + timedelta(minutes=30)))
        assert listener.call_count == 30


class TestStatusAndCleanup:
    """Test status reporting and cleanup."""

    def test_subscription_status(self, coordinator, live):
        coordinator.subscribe_to_stocks(["600519"], Mock())
        coordinator.set_price_alert("600519", AlertCondition.ABOVE, 1700.0, Mock())

        status = coordinator.get_subscription_status()

        assert status["total"] == 4
        assert status["active"] == 4
        assert status["callbacks"] == 1
        assert status["alerts"] == 1
        assert status["connection"].connected is True
        assert {s["kind"] for s in status["subscriptions"]} == {"index", "stock"}

    def test_cleanup(self, coordinator, live, frame):
        callback = Mock()
        coordinator.subscribe_to_stocks(["600519"], callback)
        sent_before = len(live.sent)

        coordinator.cleanup()

        unsubscribes = [f for f in live.frames()[sent_before:] if f["type"] == "unsubscribe"]
        assert len(unsubscribes) == 4
        assert len(coordinator.registry) == 0
        assert coordinator.get_subscription_status()["callbacks"] == 0
        assert coordinator.get_stats().state == ConnectionState.DISCONNECTED
        assert live.closed
