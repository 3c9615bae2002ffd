"""
Bidirectional text-frame transport.

The connection manager talks to the network through the small Transport
interface below so that it can be driven by a fake in tests. Each Transport
instance is single-use: one open, at most one close. Handlers are invoked on
the event loop thread; after close() has been called no further handler is
invoked.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

import structlog
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from ..errors import TransportError

logger = structlog.get_logger(__name__)

# Outbox marker: close the websocket once everything before it is written
_CLOSE = object()


@dataclass(frozen=True)
class TransportHandlers:
    """Signals delivered by a transport to its owner."""
    on_open: Callable[[], None]
    on_message: Callable[[str], None]
    on_close: Callable[[], None]
    on_error: Callable[[Exception], None]


class Transport(ABC):
    """Single-use connection to a text-frame endpoint."""

    @abstractmethod
    def open(self, url: str, handlers: TransportHandlers) -> None:
        """Begin opening the connection; completion is signalled via handlers."""

    @abstractmethod
    def send(self, text: str) -> None:
        """
        Queue a text frame for transmission.

        Raises:
            TransportError: If the transport is not open
        """

    @abstractmethod
    def close(self) -> None:
        """Close the connection. Idempotent; suppresses further handler calls."""


TransportFactory = Callable[[], Transport]


class WebSocketTransport(Transport):
    """
    Transport over a websockets client connection.

    Inbound frames are read by a single reader task; outbound frames go
    through a queue drained by one writer task so that send order is kept.
    """

    def __init__(
        self,
        open_timeout: float = 10.0,
        close_timeout: float = 10.0,
        max_size: int = 2**20,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.open_timeout = open_timeout
        self.close_timeout = close_timeout
        self.max_size = max_size
        self._loop = loop

        self._url: Optional[str] = None
        self._handlers: Optional[TransportHandlers] = None
        self._ws: Optional[ClientConnection] = None
        self._outbox: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._writer: Optional[asyncio.Task] = None
        self._close_requested = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._close_requested

    def open(self, url: str, handlers: TransportHandlers) -> None:
        if self._task is not None:
            raise TransportError("Transport has already been opened", url=url, operation="open")

        try:
            loop = self._loop or asyncio.get_running_loop()
        except RuntimeError as e:
            raise TransportError(
                "WebSocketTransport requires a running event loop", url=url, operation="open"
            ) from e

        self._url = url
        self._handlers = handlers
        self._outbox = asyncio.Queue()
        self._task = loop.create_task(self._run(url), name="mdfeed-transport")

    def send(self, text: str) -> None:
        if not self.is_open or self._outbox is None:
            raise TransportError("WebSocket is not open", url=self._url, operation="send")
        self._outbox.put_nowait(text)

    def close(self) -> None:
        """
        Close after every frame already passed to send() has been written.

        The writer task drains the outbox up to a close marker and then
        closes the websocket; a transport still handshaking is cancelled.
        """
        if self._close_requested:
            return
        self._close_requested = True

        if self._writer is not None and not self._writer.done():
            self._outbox.put_nowait(_CLOSE)
        elif self._task is not None and not self._task.done():
            # Still handshaking
            self._task.cancel()

    async def wait_closed(self) -> None:
        """Wait until the reader task has finished."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def _run(self, url: str) -> None:
        handlers = self._handlers
        try:
            async with connect(
                url,
                open_timeout=self.open_timeout,
                ping_interval=None,          # Application-level heartbeat
                ping_timeout=None,
                close_timeout=self.close_timeout,
                max_size=self.max_size,
            ) as ws:
                if self._close_requested:
                    return
                self._ws = ws
                self._writer = asyncio.create_task(self._write_loop(ws), name="mdfeed-transport-writer")
                logger.debug("WebSocket open", url=url)
                handlers.on_open()

                # Ends once the writer has closed the websocket
                async for raw in ws:
                    if self._close_requested:
                        continue
                    text = raw if isinstance(raw, str) else raw.decode("utf-8", errors="replace")
                    handlers.on_message(text)

        except ConnectionClosed as e:
            logger.info("WebSocket closed by peer", url=url, reason=str(e))
        except (OSError, InvalidURI, InvalidHandshake, asyncio.TimeoutError) as e:
            if not self._close_requested:
                logger.warning("WebSocket connection failed", url=url, error=str(e))
                handlers.on_error(TransportError(
                    f"WebSocket connection failed: {e}", url=url, operation="connect"
                ))
        except Exception as e:
            if not self._close_requested:
                logger.error("Unexpected WebSocket failure", url=url, error=str(e), exc_info=True)
                handlers.on_error(TransportError(
                    f"Unexpected WebSocket failure: {e}", url=url, operation="receive"
                ))
        finally:
            self._ws = None
            if self._writer is not None and not self._writer.done():
                self._writer.cancel()
            if not self._close_requested:
                self._close_requested = True
                handlers.on_close()

    async def _write_loop(self, ws: ClientConnection) -> None:
        while True:
            text = await self._outbox.get()
            if text is _CLOSE:
                await ws.close()
                return
            try:
                await ws.send(text)
            except ConnectionClosed:
                # Reader observes the close
                return
