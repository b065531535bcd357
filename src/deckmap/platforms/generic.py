"""
Fallback platform for systems without OS automation support
"""

import logging
import shutil
import subprocess
import sys
from typing import List, Sequence

from ..utils.errors import PlatformError, UnsupportedPlatformError
from .base import Platform

logger = logging.getLogger(__name__)


class GenericPlatform(Platform):
    """
    Any non-Windows desktop.

    Processes can still be launched and URLs opened, but every automation
    request (keystrokes, volume sessions, app discovery, icon extraction)
    is refused without running anything.
    """

    name = "generic"
    supports_automation = False

    def detect(self) -> bool:
        return True

    def execute(self, command: str, args: Sequence[str], timeout: float) -> str:
        raise UnsupportedPlatformError(f"{command} is unsupported on this platform ({sys.platform})")

    def launch_detached(self, parts: List[str]) -> subprocess.Popen:
        """Spawn the tokens directly in a new session"""
        try:
            process = subprocess.Popen(
                parts,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise PlatformError(f"Failed to launch command: {e}")

        logger.debug(f"Launched {parts[0]} directly")
        self.watch_exit(process, parts[0])
        return process

    def open_url(self, url: str) -> None:
        """Open a URL with xdg-open (or ``open`` on macOS)"""
        opener = "open" if sys.platform == "darwin" else "xdg-open"
        if shutil.which(opener) is None:
            raise UnsupportedPlatformError(f"Opening URLs is unsupported on this platform ({opener} not found)")
        self.launch_detached([opener, url])
