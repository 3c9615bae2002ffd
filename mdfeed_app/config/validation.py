"""Configuration validation utilities."""

from dataclasses import dataclass
from typing import Any

from ..utils.time import is_valid_timeframe
from .defaults import (
    BollingerParams,
    DefaultSubscriptionParams,
    MACDParams,
    RSIParams,
    StreamParams,
    WindowParams,
    field_names,
)


@dataclass(frozen=True)
class ValidationError:
    """Represents a configuration validation error."""
    field: str
    message: str
    value: Any


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class ConfigValidator:
    """Validates configuration parameters."""

    @staticmethod
    def _unknown_fields(params: dict[str, Any], cls: type, prefix: str) -> list[ValidationError]:
        known = field_names(cls)
        return [
            ValidationError(field=f"{prefix}.{key}", message="Unknown option", value=value)
            for key, value in params.items()
            if key not in known
        ]

    @staticmethod
    def validate_stream_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate streaming connection parameters."""
        errors = ConfigValidator._unknown_fields(params, StreamParams, "stream")

        if "url" in params:
            value = params["url"]
            if not isinstance(value, str) or not value.startswith(("ws://", "wss://")):
                errors.append(ValidationError(
                    field="stream.url",
                    message="Must be a ws:// or wss:// URL",
                    value=value
                ))

        for name in ("reconnect_interval_ms", "heartbeat_interval_ms"):
            if name in params and not _is_positive_int(params[name]):
                errors.append(ValidationError(
                    field=f"stream.{name}",
                    message="Must be a positive integer (milliseconds)",
                    value=params[name]
                ))

        if "max_reconnect_attempts" in params:
            value = params["max_reconnect_attempts"]
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                errors.append(ValidationError(
                    field="stream.max_reconnect_attempts",
                    message="Must be a non-negative integer",
                    value=value
                ))

        if "enable_logging" in params and not isinstance(params["enable_logging"], bool):
            errors.append(ValidationError(
                field="stream.enable_logging",
                message="Must be a boolean",
                value=params["enable_logging"]
            ))

        if "max_queue_size" in params:
            value = params["max_queue_size"]
            if value is not None and not _is_positive_int(value):
                errors.append(ValidationError(
                    field="stream.max_queue_size",
                    message="Must be a positive integer or null",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_subscription_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate default subscription parameters."""
        errors = ConfigValidator._unknown_fields(
            params, DefaultSubscriptionParams, "subscriptions"
        )

        if "indices" in params:
            value = params["indices"]
            if not isinstance(value, (list, tuple)) or not all(
                isinstance(code, str) and code for code in value
            ):
                errors.append(ValidationError(
                    field="subscriptions.indices",
                    message="Must be a list of non-empty index codes",
                    value=value
                ))

        for name in ("hot_stocks", "user_positions"):
            if name in params and not isinstance(params[name], bool):
                errors.append(ValidationError(
                    field=f"subscriptions.{name}",
                    message="Must be a boolean",
                    value=params[name]
                ))

        return errors

    @staticmethod
    def validate_indicator_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate indicator parameter groups."""
        errors: list[ValidationError] = []
        groups = {"rsi": RSIParams, "macd": MACDParams, "bollinger_bands": BollingerParams}

        for key in params:
            if key not in groups:
                errors.append(ValidationError(
                    field=f"indicators.{key}", message="Unknown indicator", value=params[key]
                ))

        rsi = params.get("rsi")
        if isinstance(rsi, dict):
            errors.extend(ConfigValidator._unknown_fields(rsi, RSIParams, "indicators.rsi"))
            if "period" in rsi and not _is_positive_int(rsi["period"]):
                errors.append(ValidationError(
                    field="indicators.rsi.period",
                    message="Must be a positive integer",
                    value=rsi["period"]
                ))
            for name in ("overbought", "oversold"):
                if name in rsi and (not _is_number(rsi[name]) or not 0 <= rsi[name] <= 100):
                    errors.append(ValidationError(
                        field=f"indicators.rsi.{name}",
                        message="Must be a number between 0 and 100",
                        value=rsi[name]
                    ))
            oversold = rsi.get("oversold", RSIParams.oversold)
            overbought = rsi.get("overbought", RSIParams.overbought)
            if _is_number(oversold) and _is_number(overbought) and oversold >= overbought:
                errors.append(ValidationError(
                    field="indicators.rsi.oversold",
                    message="Must be lower than overbought",
                    value=oversold
                ))

        macd = params.get("macd")
        if isinstance(macd, dict):
            errors.extend(ConfigValidator._unknown_fields(macd, MACDParams, "indicators.macd"))
            for name in ("fast_period", "slow_period", "signal_period"):
                if name in macd and not _is_positive_int(macd[name]):
                    errors.append(ValidationError(
                        field=f"indicators.macd.{name}",
                        message="Must be a positive integer",
                        value=macd[name]
                    ))
            fast = macd.get("fast_period", MACDParams.fast_period)
            slow = macd.get("slow_period", MACDParams.slow_period)
            if _is_positive_int(fast) and _is_positive_int(slow) and fast >= slow:
                errors.append(ValidationError(
                    field="indicators.macd.fast_period",
                    message="Must be lower than slow_period",
                    value=fast
                ))

        bands = params.get("bollinger_bands")
        if isinstance(bands, dict):
            errors.extend(ConfigValidator._unknown_fields(
                bands, BollingerParams, "indicators.bollinger_bands"
            ))
            if "period" in bands and not _is_positive_int(bands["period"]):
                errors.append(ValidationError(
                    field="indicators.bollinger_bands.period",
                    message="Must be a positive integer",
                    value=bands["period"]
                ))
            if "standard_deviations" in bands and (
                not _is_number(bands["standard_deviations"]) or bands["standard_deviations"] <= 0
            ):
                errors.append(ValidationError(
                    field="indicators.bollinger_bands.standard_deviations",
                    message="Must be a positive number",
                    value=bands["standard_deviations"]
                ))

        return errors

    @staticmethod
    def validate_window_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate rolling window parameters."""
        errors = ConfigValidator._unknown_fields(params, WindowParams, "windows")

        for name in ("max_bars", "support_resistance_lookback"):
            if name in params and not _is_positive_int(params[name]):
                errors.append(ValidationError(
                    field=f"windows.{name}",
                    message="Must be a positive integer",
                    value=params[name]
                ))

        if "timeframes" in params:
            value = params["timeframes"]
            if not isinstance(value, (list, tuple)) or not all(
                is_valid_timeframe(tf) for tf in value
            ):
                errors.append(ValidationError(
                    field="windows.timeframes",
                    message="Must be a list of timeframes such as '1m', '5m', '1h', '1d'",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_config(config: dict[str, Any]) -> list[ValidationError]:
        """Validate a complete merged configuration mapping."""
        errors: list[ValidationError] = []

        if "enabled" in config and not isinstance(config["enabled"], bool):
            errors.append(ValidationError(
                field="enabled", message="Must be a boolean", value=config["enabled"]
            ))

        sections = {
            "stream": ConfigValidator.validate_stream_params,
            "subscriptions": ConfigValidator.validate_subscription_params,
            "indicators": ConfigValidator.validate_indicator_params,
            "windows": ConfigValidator.validate_window_params,
        }
        for key, value in config.items():
            if key == "enabled":
                continue
            if key not in sections:
                errors.append(ValidationError(field=key, message="Unknown section", value=value))
                continue
            if not isinstance(value, dict):
                errors.append(ValidationError(field=key, message="Must be a mapping", value=value))
                continue
            errors.extend(sections[key](value))

        return errors
