"""
Market data coordinator.

Composes one StreamConnectionManager with a SubscriptionRegistry and fans
every inbound update out to the external sinks, custom subscription
callbacks, price alerts and the technical state store. All work happens
synchronously on the event loop that delivers the frames, so sinks and
callbacks must be fast or hand work off themselves.
"""

from datetime import datetime
from typing import Any, Callable, Iterable, NamedTuple, Optional

import structlog

from .alerts import AlertBook, AlertCallback, AlertCondition
from .config.defaults import FeedConfig, get_default_config
from .data.messages import (
    IndexUpdate,
    InboundMessage,
    MarketUpdate,
    MessageType,
    StockUpdate,
)
from .indicators import TechnicalAnalysisResult
from .sinks import MarketStateSink, PositionSink, PriceStateSink
from .state import TechnicalStateStore
from .stream import (
    AsyncioScheduler,
    ConnectionStats,
    Scheduler,
    StreamCallbacks,
    StreamConnectionManager,
    SubscriptionKind,
    SubscriptionRegistry,
    WebSocketTransport,
)
from .stream.transport import TransportFactory
from .utils.time import get_market_time

logger = structlog.get_logger(__name__)

UpdateCallback = Callable[[Any], None]
AnalysisListener = Callable[[TechnicalAnalysisResult], None]


class CallbackKey(NamedTuple):
    """Routing key for custom callbacks: (kind, stock/index code or market update type)."""
    kind: SubscriptionKind
    code: str


class MarketDataCoordinator:
    """
    Single owner of the market data stream for one process.

    Do not reuse an instance after cleanup().
    """

    def __init__(
        self,
        config: Optional[FeedConfig] = None,
        price_sink: Optional[PriceStateSink] = None,
        position_sink: Optional[PositionSink] = None,
        market_sink: Optional[MarketStateSink] = None,
        transport_factory: Optional[TransportFactory] = None,
        scheduler: Optional[Scheduler] = None,
        technical_store: Optional[TechnicalStateStore] = None,
        hot_stock_codes: Optional[Callable[[], Iterable[str]]] = None,
        callbacks: Optional[StreamCallbacks] = None,
    ):
        self.config = config or get_default_config()
        self.price_sink = price_sink
        self.position_sink = position_sink
        self.market_sink = market_sink
        self.technical = technical_store or TechnicalStateStore(
            self.config.indicators, self.config.windows
        )
        self._hot_stock_codes = hot_stock_codes

        self.connection = StreamConnectionManager(
            self.config.stream,
            transport_factory or WebSocketTransport,
            scheduler or AsyncioScheduler(),
            callbacks,
        )
        self.registry = SubscriptionRegistry(self.connection)
        self.alerts = AlertBook()

        self._callbacks: dict[CallbackKey, dict[str, UpdateCallback]] = {}
        self._default_subscriptions: dict[str, str] = {}
        self._alert_subscriptions: dict[str, str] = {}
        self._analysis_listeners: list[AnalysisListener] = []
        self._started = False

        self.connection.register_handler(MessageType.STOCK_UPDATE, self._handle_stock_update)
        self.connection.register_handler(MessageType.INDEX_UPDATE, self._handle_index_update)
        self.connection.register_handler(MessageType.MARKET_UPDATE, self._handle_market_update)
        self.connection.register_handler(MessageType.HEARTBEAT, self._handle_heartbeat)
        self.connection.register_handler(MessageType.SUBSCRIPTION_ACK, self._handle_subscription_ack)

        self._market_dispatch: dict[str, Callable[[Any], None]] = {}
        if market_sink is not None:
            self._market_dispatch = {
                "sentiment": market_sink.update_sentiment,
                "capital_flow": market_sink.update_capital_flow,
                "market_status": market_sink.update_market_status,
            }

    # Lifecycle

    def start(self) -> None:
        """Register default subscriptions once, then connect."""
        if not self.config.enabled:
            logger.info("Market data feed disabled by configuration")
            return

        if not self._started:
            self._started = True
            self._setup_default_subscriptions()
        self.connection.connect()

    def _setup_default_subscriptions(self) -> None:
        defaults = self.config.subscriptions

        if defaults.indices:
            self._default_subscriptions["indices"] = self.registry.subscribe(
                SubscriptionKind.INDEX, list(defaults.indices)
            )

        if defaults.hot_stocks and self._hot_stock_codes is not None:
            codes = list(self._hot_stock_codes())
            if codes:
                self._default_subscriptions["hot_stocks"] = self.registry.subscribe(
                    SubscriptionKind.STOCK, codes
                )

        if defaults.user_positions and self.position_sink is not None:
            codes = _unique(p.code for p in self.position_sink.positions)
            if codes:
                self._default_subscriptions["user_positions"] = self.registry.subscribe(
                    SubscriptionKind.STOCK, codes
                )

        logger.info("Default subscriptions registered", subscriptions=dict(self._default_subscriptions))

    def connect(self) -> None:
        self.connection.connect()

    def disconnect(self) -> None:
        self.connection.disconnect()

    @property
    def is_connected(self) -> bool:
        return self.connection.is_open

    @property
    def feed_unavailable(self) -> bool:
        return self.connection.feed_unavailable

    def get_stats(self) -> ConnectionStats:
        return self.connection.get_stats()

    # Subscriptions

    def _subscribe(self, kind: SubscriptionKind, codes: list[str],
                   callback: Optional[UpdateCallback],
                   filters: Optional[dict[str, Any]],
                   predicate: Optional[Callable[[Any], bool]]) -> str:
        subscription_id = self.registry.subscribe(kind, codes, filters=filters, predicate=predicate)
        if callback is not None:
            for code in codes:
                self._callbacks.setdefault(CallbackKey(kind, code), {})[subscription_id] = callback
        return subscription_id

    def subscribe_to_stocks(self, codes: list[str], callback: Optional[UpdateCallback] = None,
                            filters: Optional[dict[str, Any]] = None,
                            predicate: Optional[Callable[[StockUpdate], bool]] = None) -> str:
        """Subscribe to stock quotes; callback receives each StockUpdate for these codes."""
        return self._subscribe(SubscriptionKind.STOCK, codes, callback, filters, predicate)

    def subscribe_to_indices(self, codes: list[str], callback: Optional[UpdateCallback] = None,
                             filters: Optional[dict[str, Any]] = None,
                             predicate: Optional[Callable[[IndexUpdate], bool]] = None) -> str:
        return self._subscribe(SubscriptionKind.INDEX, codes, callback, filters, predicate)

    def subscribe_to_market_data(self, types: list[str], callback: Optional[UpdateCallback] = None,
                                 filters: Optional[dict[str, Any]] = None,
                                 predicate: Optional[Callable[[MarketUpdate], bool]] = None) -> str:
        """Subscribe to market-wide updates by type tag (sentiment, capital_flow, ...)."""
        return self._subscribe(SubscriptionKind.MARKET, types, callback, filters, predicate)

    def unsubscribe(self, subscription_id: str) -> bool:
        """
        Remove a subscription and the callbacks registered with it. Unknown ids are a no-op.

        Codes that still carry price alerts get an alert-owned subscription
        when no other active subscription covers them.
        """
        subscription = self.registry.get(subscription_id)

        for key in list(self._callbacks):
            owners = self._callbacks[key]
            owners.pop(subscription_id, None)
            if not owners:
                del self._callbacks[key]

        for mapping in (self._default_subscriptions, self._alert_subscriptions):
            for name, sid in list(mapping.items()):
                if sid == subscription_id:
                    del mapping[name]

        removed = self.registry.unsubscribe(subscription_id)
        if removed and subscription.kind == SubscriptionKind.STOCK:
            for code in subscription.codes:
                if self.alerts.has_alerts(code):
                    self._ensure_alert_subscription(code)
        return removed

    def _is_stock_subscribed(self, code: str) -> bool:
        return any(
            s.kind == SubscriptionKind.STOCK and code in s.codes
            for s in self.registry.active()
        )

    def _ensure_alert_subscription(self, code: str) -> None:
        if code in self._alert_subscriptions or self._is_stock_subscribed(code):
            return
        self._alert_subscriptions[code] = self.registry.subscribe(SubscriptionKind.STOCK, [code])
        logger.info("Alert subscription created", code=code)

    # Alerts

    def set_price_alert(self, code: str, condition: AlertCondition, target_price: float,
                        callback: AlertCallback) -> Callable[[], bool]:
        """
        Register a level-triggered price alert for code.

        The stock is subscribed if no active subscription covers it yet.

        Returns:
            Function removing the alert
        """
        key = self.alerts.add(code, condition, target_price, callback)
        self._ensure_alert_subscription(code)

        def remove_alert() -> bool:
            removed = self.alerts.remove(key)
            if removed and not self.alerts.has_alerts(code):
                subscription_id = self._alert_subscriptions.pop(code, None)
                if subscription_id is not None:
                    self.registry.unsubscribe(subscription_id)
            return removed

        return remove_alert

    # Analysis

    def on_analysis(self, listener: AnalysisListener) -> Callable[[], None]:
        """Receive every recomputed analysis result; returns a function removing the listener."""
        self._analysis_listeners.append(listener)

        def remove_listener() -> None:
            if listener in self._analysis_listeners:
                self._analysis_listeners.remove(listener)

        return remove_listener

    # Inbound handlers

    def _handle_stock_update(self, message: InboundMessage) -> None:
        update: StockUpdate = message.payload

        if self.price_sink is not None:
            self._safe_call(
                "price_sink.update_stock_price",
                self.price_sink.update_stock_price,
                update.code, update.price, update.change, update.change_percent,
            )

        if self.position_sink is not None and any(
            p.code == update.code for p in self.position_sink.positions
        ):
            self._safe_call(
                "position_sink.update_position_price",
                self.position_sink.update_position_price,
                update.code, update.price,
            )

        self._dispatch_callbacks(CallbackKey(SubscriptionKind.STOCK, update.code), update)

        for callback, event in self.alerts.evaluate(update):
            logger.info(
                "Price alert triggered",
                code=event.code,
                condition=event.condition.value,
                price=event.price,
                target_price=event.target_price
            )
            self._safe_call("price alert", callback, event)

        self._update_technical(update, message.timestamp)

    def _handle_index_update(self, message: InboundMessage) -> None:
        update: IndexUpdate = message.payload

        if self.price_sink is not None:
            self._safe_call("price_sink.update_index", self.price_sink.update_index, update.code, update)

        self._dispatch_callbacks(CallbackKey(SubscriptionKind.INDEX, update.code), update)

    def _handle_market_update(self, message: InboundMessage) -> None:
        update: MarketUpdate = message.payload

        sink_method = self._market_dispatch.get(update.update_type)
        if sink_method is not None:
            self._safe_call(f"market_sink.{update.update_type}", sink_method, update.data)
        elif self.market_sink is not None:
            logger.warning("Ignoring unknown market update type", update_type=update.update_type)

        self._dispatch_callbacks(CallbackKey(SubscriptionKind.MARKET, update.update_type), update)

    def _handle_heartbeat(self, message: InboundMessage) -> None:
        logger.debug("Heartbeat received", server_time=message.payload.server_time)

    def _handle_subscription_ack(self, message: InboundMessage) -> None:
        self.registry.handle_ack(message.payload)

    def _dispatch_callbacks(self, key: CallbackKey, update: Any) -> None:
        owners = self._callbacks.get(key)
        if not owners:
            return

        for subscription_id, callback in list(owners.items()):
            subscription = self.registry.get(subscription_id)
            if subscription is None or not subscription.active:
                continue
            try:
                if not subscription.matches(update):
                    continue
            except Exception as e:
                logger.error(
                    "Subscription predicate raised",
                    subscription_id=subscription_id,
                    error=str(e),
                    exc_info=True
                )
                continue
            self._safe_call(f"subscription {subscription_id}", callback, update)

    def _update_technical(self, update: StockUpdate, frame_ts: datetime) -> None:
        if not self.technical.is_tracked(update.code):
            self.technical.track(update.code)

        ts = get_market_time(update.timestamp or frame_ts)
        windows = self.technical.record_tick(update.code, update.price, ts, update.volume)

        for window in windows:
            result = self.technical.analyze(update.code, window.timeframe)
            if result is None:
                continue
            for listener in list(self._analysis_listeners):
                self._safe_call("analysis listener", listener, result)

    def _safe_call(self, name: str, fn: Callable[..., Any], *args: Any) -> None:
        try:
            fn(*args)
        except Exception as e:
            logger.error("Consumer callback raised", callback=name, error=str(e), exc_info=True)

    # Status and shutdown

    def get_subscription_status(self) -> dict[str, Any]:
        return {
            "total": len(self.registry),
            "active": len(self.registry.active()),
            "subscriptions": [
                {
                    "id": s.id,
                    "kind": s.kind.value,
                    "codes": list(s.codes),
                    "active": s.active,
                    "created_at": s.created_at.isoformat(),
                }
                for s in self.registry
            ],
            "defaults": dict(self._default_subscriptions),
            "callbacks": sum(len(owners) for owners in self._callbacks.values()),
            "alerts": len(self.alerts),
            "connection": self.connection.get_stats(),
        }

    def cleanup(self) -> None:
        """Unsubscribe everything, drop all callbacks and disconnect."""
        self.alerts.clear()
        for subscription in list(self.registry):
            self.unsubscribe(subscription.id)

        self._callbacks.clear()
        self._alert_subscriptions.clear()
        self._default_subscriptions.clear()
        self._analysis_listeners.clear()
        self.connection.disconnect()
        logger.info("Market data coordinator cleaned up")


def _unique(codes: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for code in codes:
        seen.setdefault(code, None)
    return list(seen)
