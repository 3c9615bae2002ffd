#!/usr/bin/env python3
"""Configuration validation script."""

import sys
from pathlib import Path
from typing import Any, Optional

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from mdfeed_app.config.loader import ConfigLoader
from mdfeed_app.config.validation import ConfigValidator, ValidationError


def validate(loader: ConfigLoader, overrides: Optional[dict[str, Any]] = None) -> list[ValidationError]:
    """Validate the merged configuration, optionally with call-time overrides."""
    config = loader.merge_config(overrides)
    return ConfigValidator.validate_config(config)


def report(label: str, errors: list[ValidationError]) -> bool:
    if errors:
        print(f"❌ {label}: {len(errors)} validation errors")
        for error in errors:
            print(f"  • {error.field}: {error.message} (value: {error.value})")
        return False
    print(f"✅ {label} is valid")
    return True


def main():
    """Main validation function."""
    config_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else None
    loader = ConfigLoader.create(config_dir)
    print(f"🔍 Validating feed configuration in {loader.config_dir}...")

    all_valid = report("feed.yaml", validate(loader))

    # Overrides in the camelCase form used by web clients
    client_overrides = {
        "url": "wss://quotes.example.com/ws",
        "reconnectIntervalMs": 5000,
        "maxReconnectAttempts": 5,
        "defaultSubscriptions": {"hotStocks": False},
    }
    all_valid = report("client-style overrides", validate(loader, client_overrides)) and all_valid

    indicator_overrides = {"indicators": {"rsi": {"period": 9}, "macd": {"fast_period": 8}}}
    all_valid = report("indicator overrides", validate(loader, indicator_overrides)) and all_valid

    if all_valid:
        print("\n🎉 All configuration validation passed!")
        sys.exit(0)
    else:
        print("\n❌ Configuration validation failed!")
        sys.exit(1)


if __name__ == "__main__":
    main()
