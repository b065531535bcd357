"""
Keymap schema, persistence and service settings.
"""

from .loader import SettingsLoader
from .schema import (
    CONFIG_VERSION,
    DEFAULT_PROFILE,
    KEY_COUNT,
    PROFILE_IDS,
    ActionType,
    ValidationResult,
    default_config,
    normalize_config_lenient,
    validate_config_strict,
)
from .store import ConfigStore

__all__ = [
    "ActionType",
    "ConfigStore",
    "SettingsLoader",
    "ValidationResult",
    "CONFIG_VERSION",
    "DEFAULT_PROFILE",
    "KEY_COUNT",
    "PROFILE_IDS",
    "default_config",
    "normalize_config_lenient",
    "validate_config_strict",
]
