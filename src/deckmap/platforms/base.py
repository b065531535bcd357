"""
Base platform abstraction for OS automation
"""

import logging
import subprocess
import threading
from abc import ABC, abstractmethod
from typing import List, Sequence

logger = logging.getLogger(__name__)


class Platform(ABC):
    """
    Base platform class for OS specific implementations.

    A platform offers two kinds of capability:

    - ``execute``: run an external helper, wait for it (bounded by a timeout)
      and return its text output. Used for keystroke simulation, volume
      control, application discovery and icon extraction.
    - ``launch_detached`` / ``open_url``: submit-and-detach launches whose
      exit code is only ever logged.
    """

    name: str = "base"

    # True when execute() can run automation scripts on this OS
    supports_automation: bool = False

    @abstractmethod
    def detect(self) -> bool:
        """
        Detect if this platform is currently running

        Returns:
            True if this platform is detected
        """
        pass

    @abstractmethod
    def execute(self, command: str, args: Sequence[str], timeout: float) -> str:
        """
        Run an external helper and return its trimmed standard output.

        Args:
            command: Executable name or path
            args: Arguments passed verbatim
            timeout: Seconds before the helper is killed

        Returns:
            Standard output, stripped

        Raises:
            AutomationError: On non-zero exit or timeout
            UnsupportedPlatformError: If this OS has no such capability
        """
        pass

    @abstractmethod
    def launch_detached(self, parts: List[str]) -> subprocess.Popen:
        """
        Start a process without waiting for it.

        Args:
            parts: Tokenized command line (executable first)

        Returns:
            The started process

        Raises:
            PlatformError: If the process could not be started
        """
        pass

    @abstractmethod
    def open_url(self, url: str) -> None:
        """
        Open a URL with the desktop's default handler.

        Raises:
            PlatformError: If no handler could be started
        """
        pass

    def watch_exit(self, process: subprocess.Popen, label: str) -> None:
        """Log the exit code of a detached process once it finishes."""

        def _wait():
            try:
                code = process.wait()
            except Exception as e:
                logger.debug(f"Could not wait for {label}: {e}")
                return
            if isinstance(code, int) and code != 0:
                logger.warning(f"Command exited with code {code}: {label}")
            else:
                logger.debug(f"Command finished: {label}")

        threading.Thread(target=_wait, daemon=True, name=f"watch-{label}").start()
