"""
Platform abstraction for OS automation
"""

from .base import Platform
from .generic import GenericPlatform
from .windows import WindowsPlatform


def detect_platform() -> Platform:
    """Auto-detect the current platform"""
    platforms = [
        WindowsPlatform(),
    ]

    for platform in platforms:
        if platform.detect():
            return platform

    # Everything else can launch processes but has no automation surface
    return GenericPlatform()


__all__ = [
    "Platform",
    "GenericPlatform",
    "WindowsPlatform",
    "detect_platform",
]
