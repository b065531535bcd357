"""
Installed application catalog
"""

import json
import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from ..platforms.powershell import APP_DISCOVERY_SCRIPT, run_script
from ..utils.errors import AutomationError

logger = logging.getLogger(__name__)

CATALOG_TTL = 60.0
DISCOVERY_TIMEOUT = 15.0


class AppCatalog:
    """
    Lists installed desktop applications as ``{"name", "command"}`` entries.

    Discovery runs a PowerShell script over the uninstall registry keys and
    the start menu, so it is Windows only; elsewhere the catalog is empty.
    Results are reused for ``ttl`` seconds.
    """

    def __init__(self, platform, ttl: float = CATALOG_TTL, clock: Callable[[], float] = time.monotonic):
        self.platform = platform
        self.ttl = ttl
        self._clock = clock
        self._apps: List[Dict[str, str]] = []
        self._loaded_at: Optional[float] = None
        self._lock = threading.Lock()

    def list_apps(self) -> List[Dict[str, str]]:
        if not self.platform.supports_automation:
            return []

        with self._lock:
            now = self._clock()
            if self._loaded_at is not None and now - self._loaded_at < self.ttl:
                return [dict(app) for app in self._apps]

            apps = self._discover() or []
            self._apps = apps
            self._loaded_at = now
            logger.info(f"Discovered {len(apps)} installed application(s)")
            return [dict(app) for app in apps]

    def invalidate(self) -> None:
        with self._lock:
            self._loaded_at = None

    def _discover(self) -> Optional[List[Dict[str, str]]]:
        try:
            output = run_script(
                self.platform,
                APP_DISCOVERY_SCRIPT,
                purpose="Application discovery",
                timeout=DISCOVERY_TIMEOUT,
            )
        except AutomationError as e:
            logger.warning(f"Application discovery failed: {e}")
            return None

        if not output:
            return []
        try:
            parsed = json.loads(output)
        except ValueError as e:
            logger.warning(f"Application discovery returned invalid JSON: {e}")
            return None

        # ConvertTo-Json emits a bare object for a single result
        if isinstance(parsed, dict):
            parsed = [parsed]
        if not isinstance(parsed, list):
            return None

        apps = []
        for entry in parsed:
            if not isinstance(entry, dict):
                continue
            name = str(entry.get("name") or "").strip()
            command = str(entry.get("command") or "").strip()
            if name and command:
                apps.append({"name": name, "command": command})
        return sorted(apps, key=lambda app: app["name"].lower())
