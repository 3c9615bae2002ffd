"""Configuration loader with 3-tier parameter precedence."""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from ..errors import ConfigurationError
from .defaults import (
    DefaultSubscriptionParams,
    FeedConfig,
    IndicatorConfig,
    StreamParams,
    WindowParams,
    field_names,
    get_default_config,
)
from .validation import ConfigValidator

CONFIG_FILENAME = "feed.yaml"

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

# Option names used by web clients of the feed that differ from section names
_SECTION_ALIASES = {
    "default_subscriptions": "subscriptions",
}


def _snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def normalize_keys(data: Any) -> Any:
    """Recursively convert camelCase mapping keys to snake_case."""
    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            name = _snake_case(key) if isinstance(key, str) else key
            name = _SECTION_ALIASES.get(name, name)
            result[name] = normalize_keys(value)
        return result
    if isinstance(data, list):
        return [normalize_keys(item) for item in data]
    return data


def _lift_stream_options(data: dict[str, Any]) -> dict[str, Any]:
    """Move flat top-level stream options (url, reconnect_interval_ms, ...) into 'stream'."""
    stream_fields = field_names(StreamParams)
    flat = {k: v for k, v in data.items() if k in stream_fields}
    if not flat:
        return data

    result = {k: v for k, v in data.items() if k not in stream_fields}
    result["stream"] = {**flat, **result.get("stream", {})}
    return result


@dataclass(frozen=True)
class ConfigLoader:
    """Manages configuration loading with 3-tier precedence."""

    config_dir: Path
    defaults: FeedConfig

    @classmethod
    def create(cls, config_dir: Optional[Path] = None) -> "ConfigLoader":
        """Create a ConfigLoader instance."""
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent / "config"

        return cls(
            config_dir=Path(config_dir),
            defaults=get_default_config(),
        )

    def load_file_config(self) -> dict[str, Any]:
        """Load overrides from feed.yaml, empty if the file is missing."""
        config_file = self.config_dir / CONFIG_FILENAME

        if not config_file.exists():
            return {}

        with open(config_file) as f:
            file_config = yaml.safe_load(f) or {}

        if not isinstance(file_config, dict):
            raise ConfigurationError(
                f"{config_file} must contain a mapping",
                context={"path": str(config_file)}
            )

        return _lift_stream_options(normalize_keys(file_config))

    def merge_config(self, overrides: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """
        Merge configuration with 3-tier precedence.

        Priority order:
        1. Call-time overrides (highest priority)
        2. feed.yaml in the config directory
        3. Global defaults (lowest priority)
        """
        config = self._dataclass_to_dict(self.defaults)
        config = self._deep_merge(config, self.load_file_config())

        if overrides:
            config = self._deep_merge(config, _lift_stream_options(normalize_keys(overrides)))

        return config

    def load_feed_config(self, overrides: Optional[dict[str, Any]] = None) -> FeedConfig:
        """Merge, validate and build the typed configuration."""
        merged = self.merge_config(overrides)

        errors = ConfigValidator.validate_config(merged)
        if errors:
            raise ConfigurationError(
                f"Invalid feed configuration ({len(errors)} errors)",
                errors=errors
            )

        return self.build(merged)

    @staticmethod
    def build(config: dict[str, Any]) -> FeedConfig:
        """Build a FeedConfig from an already validated mapping."""
        subscriptions = dict(config.get("subscriptions", {}))
        if "indices" in subscriptions:
            subscriptions["indices"] = tuple(subscriptions["indices"])

        windows = dict(config.get("windows", {}))
        if "timeframes" in windows:
            windows["timeframes"] = tuple(windows["timeframes"])

        return FeedConfig(
            stream=StreamParams(**config.get("stream", {})),
            subscriptions=DefaultSubscriptionParams(**subscriptions),
            indicators=IndicatorConfig.from_dict(config.get("indicators")),
            windows=WindowParams(**windows),
            enabled=config.get("enabled", True),
        )

    def _dataclass_to_dict(self, obj: Any) -> Any:
        """Convert nested dataclasses to dictionary."""
        if hasattr(obj, '__dataclass_fields__'):
            result = {}
            for field_name in obj.__dataclass_fields__:
                value = getattr(obj, field_name)
                if hasattr(value, '__dataclass_fields__'):
                    result[field_name] = self._dataclass_to_dict(value)
                elif isinstance(value, tuple):
                    result[field_name] = list(value)
                else:
                    result[field_name] = value
            return result
        return obj

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result
