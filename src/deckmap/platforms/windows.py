"""
Windows platform implementation
"""

import logging
import subprocess
import sys
from typing import List, Sequence

from ..utils.errors import AutomationError, PlatformError
from .base import Platform

logger = logging.getLogger(__name__)

# Output of discovery scripts can be large (installed application lists)
MAX_OUTPUT_BYTES = 6 * 1024 * 1024

CREATE_NO_WINDOW = getattr(subprocess, "CREATE_NO_WINDOW", 0)
DETACHED_PROCESS = getattr(subprocess, "DETACHED_PROCESS", 0)
CREATE_NEW_PROCESS_GROUP = getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)


class WindowsPlatform(Platform):
    """Windows support: PowerShell automation and ``cmd /c start`` launches"""

    name = "windows"
    supports_automation = True

    def detect(self) -> bool:
        return sys.platform == "win32"

    def execute(self, command: str, args: Sequence[str], timeout: float) -> str:
        """Run a helper hidden, capturing its output"""
        try:
            result = subprocess.run(
                [command, *args],
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
                creationflags=CREATE_NO_WINDOW,
            )
        except subprocess.TimeoutExpired:
            raise AutomationError(f"{command} timed out after {timeout:g}s")
        except OSError as e:
            raise AutomationError(f"Cannot run {command}: {e}")

        stdout = (result.stdout or "")[:MAX_OUTPUT_BYTES]
        if result.returncode != 0:
            message = (result.stderr or "").strip() or f"{command} exited with code {result.returncode}"
            raise AutomationError(message)

        return stdout.strip()

    def launch_detached(self, parts: List[str]) -> subprocess.Popen:
        """Launch through ``cmd /c start`` so documents and shortcuts resolve too"""
        try:
            process = subprocess.Popen(
                ["cmd", "/c", "start", "", *parts],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                creationflags=DETACHED_PROCESS | CREATE_NEW_PROCESS_GROUP | CREATE_NO_WINDOW,
            )
        except OSError as e:
            raise PlatformError(f"Failed to launch command: {e}")

        logger.debug(f"Launched {parts[0]} via cmd start")
        self.watch_exit(process, parts[0])
        return process

    def open_url(self, url: str) -> None:
        self.launch_detached([url])
