"""
External state sinks fed by the coordinator.

The coordinator only writes to these; it never reads prices back. The
protocols describe what it calls, and the in-memory classes are simple
implementations for scripts and tests.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from .data.messages import IndexUpdate


@runtime_checkable
class PriceStateSink(Protocol):
    def update_stock_price(self, code: str, price: float, change: float,
                           change_percent: float) -> None:
        ...

    def update_index(self, code: str, snapshot: IndexUpdate) -> None:
        ...


@runtime_checkable
class PositionSink(Protocol):
    """Held positions; each item exposes a ``code`` attribute."""

    @property
    def positions(self) -> Sequence[Any]:
        ...

    def update_position_price(self, code: str, price: float) -> None:
        ...


@runtime_checkable
class MarketStateSink(Protocol):
    def update_sentiment(self, data: Any) -> None:
        ...

    def update_capital_flow(self, data: Any) -> None:
        ...

    def update_market_status(self, data: Any) -> None:
        ...


@dataclass
class StockQuote:
    code: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryPriceState:
    """Latest stock quotes and index snapshots by code."""

    def __init__(self):
        self.stocks: dict[str, StockQuote] = {}
        self.indices: dict[str, IndexUpdate] = {}

    def update_stock_price(self, code: str, price: float, change: float,
                           change_percent: float) -> None:
        self.stocks[code] = StockQuote(code, price, change, change_percent)

    def update_index(self, code: str, snapshot: IndexUpdate) -> None:
        self.indices[code] = snapshot

    def get_price(self, code: str) -> Optional[float]:
        quote = self.stocks.get(code)
        return quote.price if quote else None


@dataclass
class Position:
    code: str
    quantity: float
    cost_price: float
    current_price: Optional[float] = None

    @property
    def market_value(self) -> Optional[float]:
        if self.current_price is None:
            return None
        return self.current_price * self.quantity

    @property
    def unrealized_pnl(self) -> Optional[float]:
        if self.current_price is None:
            return None
        return (self.current_price - self.cost_price) * self.quantity


class InMemoryPositions:
    """Position book whose prices follow the stream."""

    def __init__(self, positions: Optional[Sequence[Position]] = None):
        self._positions: list[Position] = list(positions or [])

    @property
    def positions(self) -> list[Position]:
        return self._positions

    def update_position_price(self, code: str, price: float) -> None:
        for position in self._positions:
            if position.code == code:
                position.current_price = price


class InMemoryMarketState:
    """Latest market-wide sentiment, capital flow and trading status."""

    def __init__(self):
        self.sentiment: Any = None
        self.capital_flow: Any = None
        self.market_status: Any = None
        self.updated_at: Optional[datetime] = None

    def _touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    def update_sentiment(self, data: Any) -> None:
        self.sentiment = data
        self._touch()

    def update_capital_flow(self, data: Any) -> None:
        self.capital_flow = data
        self._touch()

    def update_market_status(self, data: Any) -> None:
        self.market_status = data
        self._touch()
