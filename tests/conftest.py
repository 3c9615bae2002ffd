"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Union
from unittest.mock import Mock

import orjson
import pytest

from mdfeed_app.config.defaults import StreamParams
from mdfeed_app.data.models import Bar
from mdfeed_app.errors import TransportError
from mdfeed_app.stream import StreamCallbacks, StreamConnectionManager
from mdfeed_app.stream.scheduler import Scheduler
from mdfeed_app.stream.transport import Transport, TransportHandlers
from mdfeed_app.utils.time import datetime_to_ms

BASE_TIME = datetime(2024, 3, 1, 1, 30, tzinfo=timezone.utc)


class FakeTimer:
    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler(Scheduler):
    """Manual clock: timers fire only when advance() passes their due time."""

    def __init__(self):
        self.now = 0.0
        self.timers: list[FakeTimer] = []

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.now + delay_seconds, callback)
        self.timers.append(timer)
        return timer

    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self.pending() if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.now = timer.due
            timer.fired = True
            timer.callback()
        self.now = target


class FakeTransport(Transport):
    """Records sent frames and lets tests raise transport signals by hand."""

    def __init__(self):
        self.url: Optional[str] = None
        self.handlers: Optional[TransportHandlers] = None
        self.sent: list[str] = []
        self.is_open = False
        self.closed = False
        self.fail_send = False

    def open(self, url: str, handlers: TransportHandlers) -> None:
        self.url = url
        self.handlers = handlers

    def send(self, text: str) -> None:
        if self.fail_send or not self.is_open:
            raise TransportError("fake transport cannot send", url=self.url, operation="send")
        self.sent.append(text)

    def close(self) -> None:
        self.closed = True
        self.is_open = False

    def simulate_open(self) -> None:
        self.is_open = True
        self.handlers.on_open()

    def simulate_close(self) -> None:
        self.is_open = False
        self.handlers.on_close()

    def simulate_error(self, error: Optional[Exception] = None) -> None:
        self.handlers.on_error(error or TransportError("connection reset", url=self.url))

    def simulate_message(self, frame: Union[str, dict[str, Any]]) -> None:
        text = frame if isinstance(frame, str) else orjson.dumps(frame).decode("utf-8")
        self.handlers.on_message(text)

    def frames(self) -> list[dict[str, Any]]:
        return [orjson.loads(text) for text in self.sent]


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def transports() -> list[FakeTransport]:
    """Every FakeTransport created by transport_factory, in creation order."""
    return []


@pytest.fixture
def transport_factory(transports) -> Callable[[], FakeTransport]:
    def factory() -> FakeTransport:
        transport = FakeTransport()
        transports.append(transport)
        return transport
    return factory


@pytest.fixture
def stream_params() -> StreamParams:
    return StreamParams(
        url="ws://feed.test/ws",
        reconnect_interval_ms=1000,
        max_reconnect_attempts=3,
        heartbeat_interval_ms=5000,
    )


@pytest.fixture
def stream_callbacks() -> Mock:
    return Mock()


@pytest.fixture
def manager(stream_params, transport_factory, scheduler, stream_callbacks) -> StreamConnectionManager:
    callbacks = StreamCallbacks(
        on_connect=stream_callbacks.on_connect,
        on_disconnect=stream_callbacks.on_disconnect,
        on_error=stream_callbacks.on_error,
        on_message=stream_callbacks.on_message,
        on_feed_unavailable=stream_callbacks.on_feed_unavailable,
    )
    return StreamConnectionManager(stream_params, transport_factory, scheduler, callbacks)


def make_frame(message_type: str, data: Any, ts: Optional[datetime] = None) -> dict[str, Any]:
    ts = ts or BASE_TIME
    return {"type": message_type, "data": data, "timestamp": datetime_to_ms(ts)}


@pytest.fixture
def frame() -> Callable[..., dict[str, Any]]:
    """Build an inbound wire frame: frame(type, data, ts=None)."""
    return make_frame


def bars_from_closes(closes: list[float], spread: float = 0.0,
                     start: datetime = BASE_TIME, step: timedelta = timedelta(minutes=1)) -> list[Bar]:
    return [
        Bar(
            ts=start + i * step,
            open=close,
            high=close + spread,
            low=close - spread,
            close=close,
            volume=1000.0,
        )
        for i, close in enumerate(closes)
    ]


@pytest.fixture
def make_bars() -> Callable[..., list[Bar]]:
    """Build one-minute bars from closes: make_bars(closes, spread=0.0)."""
    return bars_from_closes
