"""
Managers for handling specific aspects of the control deck.

This module provides specialized managers for different responsibilities:
- ConnectionManager: Device connection lifecycle and retry policy
- ProfileManager: Profile rendering and profile button LEDs
- VolumeMixer: Knob-driven per-application volume
- AppCatalog: Installed application discovery
"""

from .catalog import AppCatalog
from .connection import ConnectionManager
from .mixer import VolumeMixer, get_mixer_assignments, normalize_mixer_target
from .profile import ProfileManager

__all__ = [
    "AppCatalog",
    "ConnectionManager",
    "ProfileManager",
    "VolumeMixer",
    "get_mixer_assignments",
    "normalize_mixer_target",
]
