"""
Centralized logging configuration for the market data distribution layer.

All modules log through structlog. Call configure_logging() once at process
start; until then structlog's defaults print to stderr. Frame payloads logged
by the stream layer can be large, so a processor shortens them before
rendering.
"""
import logging
import sys
from typing import Any, Optional

import orjson
import structlog
from structlog.types import EventDict, FilteringBoundLogger, WrappedLogger

MAX_PAYLOAD_CHARS = 200

# Event fields that may carry whole frames or frame data
PAYLOAD_FIELDS = ("raw_data", "data", "context")


def truncate_payloads(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Processor shortening frame payload fields to MAX_PAYLOAD_CHARS."""
    for key in PAYLOAD_FIELDS:
        value = event_dict.get(key)
        if value is None:
            continue
        text = value if isinstance(value, str) else repr(value)
        if len(text) > MAX_PAYLOAD_CHARS:
            event_dict[key] = text[:MAX_PAYLOAD_CHARS] + "...(truncated)"
    return event_dict


def _orjson_dumps(event_dict: EventDict, **kwargs: Any) -> str:
    return orjson.dumps(event_dict, **kwargs).decode("utf-8")


def configure_logging(
    level: str = "INFO",
    format_json: bool = False,
    include_timestamp: bool = True,
    include_caller: bool = False,
    extra_processors: Optional[list] = None
) -> None:
    """
    Configure structlog and stdlib logging for the process.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_json: Render one JSON object per line (orjson) instead of console output
        include_timestamp: Add an ISO timestamp to every event
        include_caller: Add filename and line number to every event
        extra_processors: Processors inserted before the renderer

    Raises:
        ValueError: If level is not a logging level name
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown log level: {level!r}")

    logging.basicConfig(
        level=log_level,
        stream=sys.stdout,
        format="%(message)s",
        force=True,
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        truncate_payloads,
    ]

    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))

    if include_caller:
        processors.append(structlog.processors.CallsiteParameterAdder(
            parameters=[structlog.processors.CallsiteParameter.FILENAME,
                        structlog.processors.CallsiteParameter.LINENO]
        ))

    if extra_processors:
        processors.extend(extra_processors)

    if format_json:
        processors.append(structlog.processors.JSONRenderer(serializer=_orjson_dumps))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> FilteringBoundLogger:
    return structlog.get_logger(name)


def get_stream_logger(name: str) -> FilteringBoundLogger:
    """Logger bound with ``subsystem="stream"`` for connection and subscription events."""
    return get_logger(name).bind(subsystem="stream")


def get_indicator_logger(name: str) -> FilteringBoundLogger:
    """Logger bound with ``subsystem="indicators"`` for analysis events."""
    return get_logger(name).bind(subsystem="indicators")


def log_connection_transition(
    logger: FilteringBoundLogger,
    from_state: str,
    to_state: str,
    trigger: str,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log a connection state transition with standardized fields.

    Transitions into ``disconnected`` caused by the transport (not by an
    explicit disconnect) are logged at warning; everything else at info.

    Args:
        logger: Structlog logger instance
        from_state: Previous ConnectionState value
        to_state: New ConnectionState value
        trigger: What caused the transition (connect, transport_close, ...)
        context: Additional fields such as the feed URL
    """
    bound_logger = logger.bind(
        from_state=from_state,
        to_state=to_state,
        trigger=trigger,
        event_kind="connection_transition"
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    if to_state == "disconnected" and trigger == "transport_close":
        bound_logger.warning("Connection lost")
    else:
        bound_logger.info("Connection state transition")
