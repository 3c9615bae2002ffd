"""
Streaming connection manager.

Owns one logical connection to the feed: opens transports, keeps an
application-level heartbeat, reconnects at a fixed interval after unexpected
closes, queues outbound frames while the connection is not open and
dispatches decoded inbound frames to handlers registered per message type.

All methods and callbacks run on a single event loop thread. Timers go
through the injected Scheduler so that tests can drive time by hand.
"""

from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from ..config.defaults import StreamParams
from ..data.messages import InboundMessage, MessageType, OutboundMessage, heartbeat_message
from ..data.parsers import parse_inbound_frame
from ..errors import FeedServerError, FeedUnavailableError, MalformedMessageError, TransportError
from ..logging import get_stream_logger, log_connection_transition
from .models import ConnectionState, ConnectionStats, StreamCallbacks
from .scheduler import Scheduler, TimerHandle
from .transport import Transport, TransportFactory, TransportHandlers

logger = get_stream_logger(__name__)

MessageHandler = Callable[[InboundMessage], None]


class StreamConnectionManager:
    """
    Connection lifecycle, outbound queueing and inbound dispatch.

    A new Transport is created for every connection attempt. Each attempt
    gets a generation number; signals from a transport whose generation is no
    longer current are ignored, so a late open or close from an abandoned
    attempt never disturbs the live one.
    """

    def __init__(
        self,
        params: StreamParams,
        transport_factory: TransportFactory,
        scheduler: Scheduler,
        callbacks: Optional[StreamCallbacks] = None,
    ):
        self.params = params
        self.callbacks = callbacks or StreamCallbacks()
        self._transport_factory = transport_factory
        self._scheduler = scheduler

        self._state = ConnectionState.DISCONNECTED
        self._transport: Optional[Transport] = None
        self._generation = 0
        self._manual_disconnect = False
        self._feed_unavailable = False

        self._reconnect_attempts = 0
        self._reconnect_timer: Optional[TimerHandle] = None
        self._heartbeat_timer: Optional[TimerHandle] = None

        self._queue: deque[OutboundMessage] = deque()
        self._handlers: dict[MessageType, MessageHandler] = {}
        self._open_listeners: list[Callable[[], None]] = []

        self._messages_received = 0
        self._messages_sent = 0
        self._last_message_time: Optional[datetime] = None
        self._connection_time: Optional[datetime] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == ConnectionState.OPEN

    @property
    def feed_unavailable(self) -> bool:
        return self._feed_unavailable

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def queued_count(self) -> int:
        return len(self._queue)

    def register_handler(self, message_type: MessageType, handler: MessageHandler) -> None:
        """Route inbound messages of message_type to handler, replacing any previous one."""
        self._handlers[message_type] = handler

    def add_open_listener(self, listener: Callable[[], None]) -> None:
        """Call listener each time the connection opens, after the queue is flushed."""
        self._open_listeners.append(listener)

    # Lifecycle

    def connect(self) -> None:
        """
        Open the connection. No-op while already open or connecting.

        Never raises: failures to open are reported through the error
        callback and handled by the reconnect policy.
        """
        if self._state in (ConnectionState.OPEN, ConnectionState.CONNECTING):
            logger.debug("Connect ignored", state=self._state.value)
            return

        self._manual_disconnect = False
        self._feed_unavailable = False
        self._cancel_reconnect_timer()
        self._open_transport(trigger="connect")

    def disconnect(self) -> None:
        """
        Close the connection and stop reconnecting.

        Pending reconnect and heartbeat timers are cancelled before this
        returns. Safe to call repeatedly and while a connect is in flight.
        """
        self._manual_disconnect = True
        self._cancel_reconnect_timer()
        self._cancel_heartbeat()

        transport = self._transport
        self._transport = None
        self._generation += 1
        was_open = self._state == ConnectionState.OPEN

        if transport is not None:
            self._transition(ConnectionState.CLOSING, "disconnect")
            try:
                transport.close()
            except Exception as e:
                logger.warning("Transport close failed", error=str(e))

        self._transition(ConnectionState.DISCONNECTED, "disconnect")
        if was_open:
            self._invoke("on_disconnect", self.callbacks.on_disconnect)

    # Outbound

    def send(self, message: OutboundMessage) -> None:
        """
        Transmit now if open with nothing queued, otherwise queue behind the
        pending messages. Never raises.
        """
        if self._state == ConnectionState.OPEN and self._transport is not None and not self._queue:
            if not self._transmit(message):
                self._queue.append(message)
        else:
            self._enqueue(message)

    def _enqueue(self, message: OutboundMessage) -> None:
        limit = self.params.max_queue_size
        if limit is not None and len(self._queue) >= limit:
            dropped = self._queue.popleft()
            logger.warning(
                "Outbound queue full, dropping oldest message",
                max_queue_size=limit,
                dropped_type=dropped.type.value,
            )
        self._queue.append(message)
        if self.params.enable_logging:
            logger.debug("Queued message", message_type=message.type.value, queued=len(self._queue))

    def _transmit(self, message: OutboundMessage) -> bool:
        try:
            self._transport.send(message.encode())
        except Exception as e:
            error = e if isinstance(e, TransportError) else TransportError(
                f"Send failed: {e}", url=self.params.url, operation="send"
            )
            logger.warning("Send failed, message re-queued", error=str(error))
            self.report_error(error)
            return False

        self._messages_sent += 1
        if self.params.enable_logging:
            logger.debug("Sent message", message_type=message.type.value, data=message.data)
        return True

    def _flush_queue(self) -> None:
        flushed = 0
        while self._queue and self._state == ConnectionState.OPEN:
            message = self._queue.popleft()
            if not self._transmit(message):
                self._queue.appendleft(message)
                break
            flushed += 1
        if flushed:
            logger.info("Flushed queued messages", count=flushed, remaining=len(self._queue))

    # Transport signals

    def _open_transport(self, trigger: str) -> None:
        self._generation += 1
        generation = self._generation
        transport = self._transport_factory()
        self._transport = transport
        self._transition(ConnectionState.CONNECTING, trigger, {"url": self.params.url})

        handlers = TransportHandlers(
            on_open=lambda: self._handle_open(generation, transport),
            on_message=lambda text: self._handle_frame(generation, text),
            on_close=lambda: self._handle_close(generation),
            on_error=lambda error: self._handle_transport_error(generation, error),
        )
        try:
            transport.open(self.params.url, handlers)
        except Exception as e:
            error = e if isinstance(e, TransportError) else TransportError(
                f"Failed to open transport: {e}", url=self.params.url, operation="connect"
            )
            logger.warning("Transport open failed", error=str(error))
            self.report_error(error)
            self._handle_close(generation)

    def _handle_open(self, generation: int, transport: Transport) -> None:
        if generation != self._generation:
            logger.debug("Closing transport from abandoned attempt", generation=generation)
            transport.close()
            return

        self._transition(ConnectionState.OPEN, "transport_open")
        self._reconnect_attempts = 0
        self._feed_unavailable = False
        self._connection_time = datetime.now(timezone.utc)
        self._start_heartbeat()
        self._flush_queue()

        for listener in list(self._open_listeners):
            self._invoke("open_listener", listener)
        self._invoke("on_connect", self.callbacks.on_connect)

    def _handle_close(self, generation: int) -> None:
        if generation != self._generation:
            return

        was_open = self._state == ConnectionState.OPEN
        self._transport = None
        self._cancel_heartbeat()
        self._transition(ConnectionState.DISCONNECTED, "transport_close")
        if was_open:
            self._invoke("on_disconnect", self.callbacks.on_disconnect)

        if not self._manual_disconnect:
            self._schedule_reconnect()

    def _handle_transport_error(self, generation: int, error: Exception) -> None:
        if generation != self._generation:
            return
        logger.warning("Transport error", error=str(error), state=self._state.value)
        self.report_error(error)

    def _handle_frame(self, generation: int, text: str) -> None:
        if generation != self._generation:
            return

        self._messages_received += 1
        self._last_message_time = datetime.now(timezone.utc)

        try:
            message = parse_inbound_frame(text, received_at=self._last_message_time)
        except MalformedMessageError as e:
            logger.warning("Dropping malformed frame", error=str(e), raw_data=e.raw_data)
            self.report_error(e)
            return

        if self.params.enable_logging:
            logger.debug("Received message", message_type=message.type.value)

        self._invoke("on_message", self.callbacks.on_message, message)

        if message.type == MessageType.UNKNOWN:
            logger.warning("Ignoring message of unknown type", raw_type=message.payload.raw_type)
            return

        if message.type == MessageType.ERROR:
            payload = message.payload
            logger.warning("Server error", error_message=payload.message, code=payload.code)
            self.report_error(FeedServerError(payload.message, code=payload.code, details=payload.details))

        handler = self._handlers.get(message.type)
        if handler is not None:
            self._invoke(f"{message.type.value} handler", handler, message)
        elif message.type != MessageType.ERROR:
            logger.debug("No handler registered", message_type=message.type.value)

    # Timers

    def _schedule_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            return

        if self._reconnect_attempts >= self.params.max_reconnect_attempts:
            self._feed_unavailable = True
            error = FeedUnavailableError(
                "Feed unavailable: reconnect attempts exhausted",
                attempts=self._reconnect_attempts,
                url=self.params.url,
            )
            logger.error(
                "Giving up reconnecting",
                attempts=self._reconnect_attempts,
                max_attempts=self.params.max_reconnect_attempts,
            )
            self._invoke("on_feed_unavailable", self.callbacks.on_feed_unavailable, error)
            return

        delay = self.params.reconnect_interval_ms / 1000.0
        logger.info(
            "Scheduling reconnect",
            attempt=self._reconnect_attempts + 1,
            max_attempts=self.params.max_reconnect_attempts,
            delay_seconds=delay,
        )
        self._reconnect_timer = self._scheduler.call_later(delay, self._reconnect_due)

    def _reconnect_due(self) -> None:
        self._reconnect_timer = None
        if self._manual_disconnect or self._state != ConnectionState.DISCONNECTED:
            return
        self._reconnect_attempts += 1
        self._open_transport(trigger=f"reconnect_attempt_{self._reconnect_attempts}")

    def _cancel_reconnect_timer(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    def _start_heartbeat(self) -> None:
        self._cancel_heartbeat()
        self._heartbeat_timer = self._scheduler.call_later(
            self.params.heartbeat_interval_ms / 1000.0, self._heartbeat_due
        )

    def _heartbeat_due(self) -> None:
        self._heartbeat_timer = None
        if self._state != ConnectionState.OPEN:
            return
        self.send(heartbeat_message())
        self._start_heartbeat()

    def _cancel_heartbeat(self) -> None:
        if self._heartbeat_timer is not None:
            self._heartbeat_timer.cancel()
            self._heartbeat_timer = None

    # Helpers

    def _transition(self, to_state: ConnectionState, trigger: str,
                    context: Optional[dict[str, Any]] = None) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        log_connection_transition(logger, from_state.value, to_state.value, trigger, context)

    def report_error(self, error: Exception) -> None:
        """Surface a non-fatal error through the on_error callback."""
        self._invoke("on_error", self.callbacks.on_error, error)

    def _invoke(self, name: str, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error("Callback raised", callback=name, error=str(e), exc_info=True)

    def get_stats(self) -> ConnectionStats:
        return ConnectionStats(
            state=self._state,
            connected=self._state == ConnectionState.OPEN,
            reconnect_attempts=self._reconnect_attempts,
            messages_received=self._messages_received,
            messages_sent=self._messages_sent,
            queued_messages=len(self._queue),
            last_message_time=self._last_message_time,
            connection_time=self._connection_time,
            feed_unavailable=self._feed_unavailable,
        )
