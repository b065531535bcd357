"""
Service settings loader for deckmap.

Settings are a small optional YAML file describing where the keymap lives
and how the device connection behaves. The keymap itself is JSON and is
owned by :class:`deckmap.config.store.ConfigStore`.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Maximum settings file size (64KB is far more than a settings file needs)
MAX_SETTINGS_SIZE = 64 * 1024

DEFAULT_SETTINGS: Dict[str, Any] = {
    "storage": {
        "config_dir": "~/.deckmap",
    },
    "device": {
        "brightness": 100,
        "connect_timeout": 7.0,
        "retry_interval": 3.0,
        "reconnect_interval": 2.0,
    },
}


class SettingsLoader:
    """Loads and validates YAML settings files"""

    def load(self, settings_path: Optional[str] = None) -> Dict[str, Any]:
        """
        Load settings from a YAML file, or return defaults.

        Args:
            settings_path: Path to YAML settings file, or None for defaults

        Returns:
            Validated settings dictionary with defaults applied

        Raises:
            FileNotFoundError: If an explicit settings file doesn't exist
            ConfigurationError: If the settings file is invalid or too large
        """
        if not settings_path:
            logger.debug("No settings file given, using defaults")
            return self._apply_defaults({})

        resolved_path = Path(settings_path).expanduser().resolve()
        self._validate_settings_path(resolved_path)

        if not resolved_path.exists():
            raise FileNotFoundError(f"Settings file not found: {resolved_path}")

        file_size = resolved_path.stat().st_size
        if file_size > MAX_SETTINGS_SIZE:
            raise ConfigurationError(
                f"Settings file too large: {file_size} bytes "
                f"(maximum {MAX_SETTINGS_SIZE} bytes)"
            )

        try:
            with open(resolved_path, "r", encoding="utf-8") as f:
                settings = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in settings file: {e}")
        except PermissionError as e:
            raise ConfigurationError(f"Cannot read settings file: {e}")

        self._validate(settings)
        settings = self._apply_defaults(settings)
        logger.info(f"Loaded settings from {resolved_path}")
        return settings

    def _validate_settings_path(self, settings_path: Path) -> None:
        """
        Validate that the settings path is safe to load.

        Args:
            settings_path: Resolved absolute path to settings file

        Raises:
            ConfigurationError: If path is a directory
        """
        if settings_path.is_dir():
            raise ConfigurationError(f"Path is a directory, not a file: {settings_path}")

        if settings_path.suffix.lower() not in [".yaml", ".yml"]:
            logger.warning(
                f"Settings file has unexpected extension: {settings_path.suffix}. "
                f"Expected .yaml or .yml"
            )

    def _validate(self, settings: Dict[str, Any]) -> None:
        """Validate settings structure"""
        if not isinstance(settings, dict):
            raise ConfigurationError("Settings must be a dictionary")

        for section in ("storage", "device"):
            if section in settings and not isinstance(settings[section], dict):
                raise ConfigurationError(f"'{section}' must be a dictionary")

        device = settings.get("device", {})
        brightness = device.get("brightness")
        if brightness is not None:
            if not isinstance(brightness, int) or not 0 <= brightness <= 100:
                raise ConfigurationError(f"Invalid brightness value: {brightness} (must be 0-100)")

        for key in ("connect_timeout", "retry_interval", "reconnect_interval"):
            value = device.get(key)
            if value is not None and (not isinstance(value, (int, float)) or value <= 0):
                raise ConfigurationError(f"Invalid device.{key}: {value} (must be > 0)")

    def _apply_defaults(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """Apply default values to settings"""
        merged = copy.deepcopy(DEFAULT_SETTINGS)
        for section, values in settings.items():
            if isinstance(values, dict) and section in merged:
                merged[section].update(values)
            else:
                merged[section] = values
        return merged
