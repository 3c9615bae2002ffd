#!/usr/bin/env python3
"""
Basic Usage Example - MDFeed market data coordinator

Connects to a quote feed, subscribes to a few stocks, sets a price alert and
prints every technical analysis result until interrupted. It shows how to:
- Load configuration and configure logging
- Wire the coordinator to in-memory price/position/market sinks
- Register custom subscriptions, alerts and analysis listeners
- Shut down cleanly

Run: python examples/basic_usage.py [ws://host:port/ws]
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from mdfeed_app.alerts import AlertCondition, AlertEvent
from mdfeed_app.config.loader import ConfigLoader
from mdfeed_app.coordinator import MarketDataCoordinator
from mdfeed_app.data.messages import StockUpdate
from mdfeed_app.indicators import TechnicalAnalysisResult
from mdfeed_app.logging import configure_logging
from mdfeed_app.sinks import InMemoryMarketState, InMemoryPositions, InMemoryPriceState, Position
from mdfeed_app.stream import StreamCallbacks

WATCHLIST = ["600519", "000858", "300750"]


def print_quote(update: StockUpdate) -> None:
    print(f"📈 {update.code} {update.price:.2f} ({update.change_percent:+.2f}%)")


def print_alert(event: AlertEvent) -> None:
    print(f"🔔 {event.code} {event.condition.value} {event.target_price:.2f}: now {event.price:.2f}")


def print_analysis(result: TechnicalAnalysisResult) -> None:
    rsi = f"{result.rsi.value:.1f}" if result.rsi else "-"
    print(
        f"📊 {result.symbol}/{result.timeframe} signal={result.overall_signal.value} "
        f"confidence={result.confidence:.2f} rsi={rsi}"
    )


async def main() -> None:
    configure_logging(level="INFO")

    overrides = {"url": sys.argv[1]} if len(sys.argv) > 1 else None
    config = ConfigLoader.create().load_feed_config(overrides)

    prices = InMemoryPriceState()
    positions = InMemoryPositions([Position(code="600519", quantity=100, cost_price=1650.0)])
    market = InMemoryMarketState()
    stopped = asyncio.Event()

    coordinator = MarketDataCoordinator(
        config,
        price_sink=prices,
        position_sink=positions,
        market_sink=market,
        hot_stock_codes=lambda: WATCHLIST,
        callbacks=StreamCallbacks(
            on_connect=lambda: print("✅ Connected"),
            on_disconnect=lambda: print("⚠️ Disconnected"),
            on_feed_unavailable=lambda error: (print(f"❌ {error}"), stopped.set()),
        ),
    )

    coordinator.subscribe_to_stocks(WATCHLIST, callback=print_quote)
    coordinator.set_price_alert("600519", AlertCondition.ABOVE, 1700.0, print_alert)
    coordinator.on_analysis(print_analysis)
    coordinator.start()

    try:
        await stopped.wait()
    finally:
        coordinator.cleanup()
        print(f"📋 Final stats: {coordinator.get_stats()}")
        for position in positions.positions:
            print(f"💼 {position.code}: price={position.current_price} pnl={position.unrealized_pnl}")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n👋 Stopped")
