"""
Utility modules for deckmap.
"""

from .errors import (
    AutomationError,
    ConfigurationError,
    DeckmapError,
    DeviceError,
    PlatformError,
    UnsupportedPlatformError,
    error_boundary,
    safe_execute,
)

__all__ = [
    "DeckmapError",
    "DeviceError",
    "ConfigurationError",
    "PlatformError",
    "AutomationError",
    "UnsupportedPlatformError",
    "error_boundary",
    "safe_execute",
]
