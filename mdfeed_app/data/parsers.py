"""
Parsers converting raw feed frames into typed inbound messages.

Frames are UTF-8 JSON objects ``{type, data, timestamp}``. Any frame that
cannot be decoded into its declared variant raises MalformedMessageError;
the connection manager logs and drops those frames.
"""

import math
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

import orjson

from ..errors import MalformedMessageError
from ..utils.time import ms_to_datetime
from .messages import (
    HeartbeatPayload,
    InboundMessage,
    IndexUpdate,
    MarketUpdate,
    MessageType,
    Payload,
    ServerError,
    StockUpdate,
    SubscriptionAck,
    UnknownPayload,
)

_RAW_PREVIEW_CHARS = 200


def decode_json(raw_data: Union[str, bytes]) -> Any:
    """Decode a JSON text frame with orjson."""
    try:
        return orjson.loads(raw_data)
    except orjson.JSONDecodeError as e:
        raise MalformedMessageError(
            f"Frame is not valid JSON: {e}",
            raw_data=_preview(raw_data),
            expected_format="json"
        ) from e


def _preview(raw_data: Union[str, bytes]) -> str:
    if isinstance(raw_data, bytes):
        raw_data = raw_data.decode("utf-8", errors="replace")
    return raw_data[:_RAW_PREVIEW_CHARS]


def _number(data: dict[str, Any], key: str, *, required: bool = False,
            default: Optional[float] = 0.0) -> Optional[float]:
    """Read a finite numeric field; numeric strings are accepted."""
    value = data.get(key)
    if value is None:
        if required:
            raise MalformedMessageError(
                f"Missing required field '{key}'", expected_format="number"
            )
        return default
    if isinstance(value, bool):
        raise MalformedMessageError(f"Field '{key}' must be numeric", expected_format="number")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise MalformedMessageError(
            f"Field '{key}' must be numeric, got {value!r}", expected_format="number"
        ) from e
    if not math.isfinite(number):
        raise MalformedMessageError(
            f"Field '{key}' must be finite, got {value!r}", expected_format="number"
        )
    return number


def _code(data: dict[str, Any]) -> str:
    code = data.get("code")
    if not isinstance(code, str) or not code:
        raise MalformedMessageError("Missing or empty 'code'", expected_format="string")
    return code


def _timestamp(value: Any, fallback: Optional[datetime] = None) -> Optional[datetime]:
    """
    Epoch-millisecond timestamp to datetime.

    Missing or non-positive values use the fallback; values outside the
    datetime range are malformed.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
        try:
            return ms_to_datetime(value)
        except (ValueError, OverflowError, OSError) as e:
            raise MalformedMessageError(
                f"Timestamp out of range: {value!r}", expected_format="epoch_ms"
            ) from e
    return fallback


def _require_mapping(data: Any, message_type: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise MalformedMessageError(
            f"'{message_type}' data must be an object",
            expected_format="object"
        )
    return data


def parse_stock_update(data: Any, frame_ts: datetime) -> StockUpdate:
    data = _require_mapping(data, "stock_update")
    return StockUpdate(
        code=_code(data),
        price=_number(data, "price", required=True),
        change=_number(data, "change"),
        change_percent=_number(data, "changePercent"),
        volume=_number(data, "volume"),
        amount=_number(data, "amount"),
        high=_number(data, "high", default=None),
        low=_number(data, "low", default=None),
        open=_number(data, "open", default=None),
        timestamp=_timestamp(data.get("timestamp"), frame_ts),
    )


def parse_index_update(data: Any, frame_ts: datetime) -> IndexUpdate:
    data = _require_mapping(data, "index_update")
    return IndexUpdate(
        code=_code(data),
        price=_number(data, "price", required=True),
        change=_number(data, "change"),
        change_percent=_number(data, "changePercent"),
        volume=_number(data, "volume"),
        amount=_number(data, "amount"),
        timestamp=_timestamp(data.get("timestamp"), frame_ts),
    )


def parse_market_update(data: Any, frame_ts: datetime) -> MarketUpdate:
    data = _require_mapping(data, "market_update")
    update_type = data.get("type")
    if not isinstance(update_type, str) or not update_type:
        raise MalformedMessageError(
            "market_update requires a 'type' tag", expected_format="string"
        )
    return MarketUpdate(
        update_type=update_type,
        data=data.get("data"),
        timestamp=_timestamp(data.get("timestamp"), frame_ts),
    )


def parse_heartbeat(data: Any, frame_ts: datetime) -> HeartbeatPayload:
    server_time = None
    if isinstance(data, dict):
        server_time = _timestamp(data.get("timestamp"))
    return HeartbeatPayload(server_time=server_time)


def parse_subscription_ack(data: Any, frame_ts: datetime) -> SubscriptionAck:
    data = _require_mapping(data, "subscription_ack")
    subscription_id = data.get("subscriptionId")
    if not isinstance(subscription_id, str) or not subscription_id:
        raise MalformedMessageError(
            "subscription_ack requires 'subscriptionId'", expected_format="string"
        )
    success = data.get("success")
    if not isinstance(success, bool):
        raise MalformedMessageError(
            "subscription_ack requires boolean 'success'", expected_format="boolean"
        )
    error = data.get("error")
    return SubscriptionAck(
        subscription_id=subscription_id,
        success=success,
        error=str(error) if error is not None else None,
    )


def parse_server_error(data: Any, frame_ts: datetime) -> ServerError:
    if isinstance(data, dict):
        code = data.get("code")
        return ServerError(
            message=str(data.get("message", "unspecified server error")),
            code=str(code) if code is not None else None,
            details=data.get("details"),
        )
    return ServerError(message=str(data) if data is not None else "unspecified server error")


_PAYLOAD_PARSERS: dict[MessageType, Callable[[Any, datetime], Payload]] = {
    MessageType.STOCK_UPDATE: parse_stock_update,
    MessageType.INDEX_UPDATE: parse_index_update,
    MessageType.MARKET_UPDATE: parse_market_update,
    MessageType.HEARTBEAT: parse_heartbeat,
    MessageType.SUBSCRIPTION_ACK: parse_subscription_ack,
    MessageType.ERROR: parse_server_error,
}


def parse_inbound_frame(raw_data: Union[str, bytes],
                        received_at: Optional[datetime] = None) -> InboundMessage:
    """
    Parse a raw text frame into an InboundMessage.

    Args:
        raw_data: UTF-8 JSON text frame
        received_at: Wall-clock receive time, defaults to now

    Returns:
        Typed inbound message; unrecognized types yield MessageType.UNKNOWN

    Raises:
        MalformedMessageError: If the frame cannot be decoded
    """
    received_at = received_at or datetime.now(timezone.utc)
    frame = decode_json(raw_data)

    if not isinstance(frame, dict):
        raise MalformedMessageError(
            "Frame must be a JSON object",
            raw_data=_preview(raw_data),
            expected_format="object"
        )

    raw_type = frame.get("type")
    if not isinstance(raw_type, str) or not raw_type:
        raise MalformedMessageError(
            "Frame is missing its 'type' tag",
            raw_data=_preview(raw_data),
            expected_format="object"
        )

    try:
        message_type = MessageType(raw_type)
    except ValueError:
        message_type = MessageType.UNKNOWN

    try:
        frame_ts = _timestamp(frame.get("timestamp"), received_at)
        if message_type == MessageType.UNKNOWN:
            payload: Payload = UnknownPayload(raw_type=raw_type, data=frame.get("data"))
        else:
            payload = _PAYLOAD_PARSERS[message_type](frame.get("data"), frame_ts)
    except MalformedMessageError as e:
        e.raw_data = _preview(raw_data)
        e.context.setdefault("message_type", raw_type)
        raise

    return InboundMessage(
        type=message_type,
        payload=payload,
        timestamp=frame_ts,
        received_at=received_at,
    )
