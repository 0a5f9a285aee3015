"""Harness settings management with environment variable integration and validation."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigurationError
from .types import HarnessSettings

ENV_PREFIX = "PROXYAGENT_"


def load_env_overrides(prefix: str = ENV_PREFIX) -> Dict[str, Any]:
    """Load environment variables with the given prefix.

    Values are kept as strings; HarnessSettings coerces them per field. Empty
    values are treated as unset.
    """
    overrides: Dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix) or not value:
            continue
        field_name = key[len(prefix) :].lower()

        # Nested sections, e.g. PROXYAGENT_TIMEOUTS__PROXY_STARTUP
        if "__" in field_name:
            parts = field_name.split("__")
            if len(parts) == 2:
                section, sub_field = parts
                overrides.setdefault(section, {})[sub_field] = value
            continue

        overrides[field_name] = value

    return overrides


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """Central harness settings management."""

    def __init__(self) -> None:
        self._settings: Optional[HarnessSettings] = None

    def load_settings(
        self, config_file: Optional[Path] = None, **overrides: Any
    ) -> HarnessSettings:
        """Load settings from file and environment with explicit overrides.

        Precedence, highest first: explicit overrides, environment variables,
        config file, model defaults.
        """
        data: Dict[str, Any] = {}

        if config_file is not None:
            config_file = Path(config_file)
            if not config_file.exists():
                raise ConfigurationError(f"Config file not found: {config_file}")
            data = _merge(data, self._load_from_file(config_file))

        data = _merge(data, load_env_overrides())
        data = _merge(data, {k: v for k, v in overrides.items() if v is not None})

        try:
            self._settings = HarnessSettings(**data)
        except ValueError as e:
            raise ConfigurationError(f"Invalid harness settings: {e}") from e

        return self._settings

    def get_settings(self) -> HarnessSettings:
        """Get current settings, loading defaults on first use."""
        if self._settings is None:
            self._settings = self.load_settings()
        return self._settings

    def _load_from_file(self, config_file: Path) -> Dict[str, Any]:
        """Load settings from a YAML file."""
        if config_file.suffix.lower() not in (".yml", ".yaml"):
            raise ConfigurationError(
                f"Unsupported config file format: {config_file.suffix}"
            )
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Failed to load config file {config_file}: {e}"
            ) from e
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Config file {config_file} must contain a mapping"
            )
        return data


# Global config manager instance
_config_manager = ConfigManager()


def load_settings(**kwargs: Any) -> HarnessSettings:
    """Load global harness settings."""
    return _config_manager.load_settings(**kwargs)


def get_settings() -> HarnessSettings:
    """Get current global harness settings."""
    return _config_manager.get_settings()
