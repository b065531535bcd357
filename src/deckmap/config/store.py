"""
On-disk keymap store.

Owns the canonical JSON document, repairs it on load and keeps an in-memory
copy that is invalidated by the file's modification time.
"""

import copy
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .schema import ICONS_SUBDIR, default_config, normalize_config_lenient, sanitize_icon_path

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "shortcuts.json"


class ConfigStore:
    """
    Keymap persistence with lenient repair and an mtime-validated cache.

    All file access goes through a re-entrant lock so a read never observes
    a half-updated cache and two writers never interleave.

    Attributes:
        config_dir: Directory holding the keymap and the icons directory
        config_path: Path of the JSON keymap
        icons_dir: Directory holding uploaded custom icons
    """

    def __init__(self, config_dir: str, filename: str = CONFIG_FILENAME):
        """
        Initialize the store.

        Args:
            config_dir: Storage directory (created by ensure())
            filename: Name of the keymap file inside config_dir
        """
        self.config_dir = Path(config_dir).expanduser()
        self.config_path = self.config_dir / filename
        self.icons_dir = self.config_dir / ICONS_SUBDIR

        self._lock = threading.RLock()
        self._cache: Optional[Dict[str, Any]] = None
        self._cache_mtime: Optional[int] = None

    def ensure(self) -> None:
        """Create the storage directories and a default keymap if absent."""
        with self._lock:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            self.icons_dir.mkdir(parents=True, exist_ok=True)
            if not self.config_path.exists():
                logger.info(f"Creating default configuration at {self.config_path}")
                self._persist(default_config())

    def read(self) -> Tuple[Dict[str, Any], List[str]]:
        """
        Read the keymap, repairing it if needed.

        Returns:
            Tuple of (config, issues). Issues are empty when the cached copy
            was still fresh or the file was already canonical.
        """
        with self._lock:
            if self._is_cache_fresh():
                return copy.deepcopy(self._cache), []

            try:
                raw = self.config_path.read_bytes()
            except FileNotFoundError:
                logger.warning(f"Configuration file not found, creating defaults: {self.config_path}")
                config = default_config()
                self.config_dir.mkdir(parents=True, exist_ok=True)
                self._persist(config)
                return copy.deepcopy(config), ["Configuration missing, defaults created."]
            except OSError as e:
                logger.error(f"Cannot read configuration {self.config_path}: {e}")
                config = default_config()
                self._persist(config)
                return copy.deepcopy(config), [f"Configuration unreadable ({e}), defaults applied."]

            try:
                data = json.loads(raw.decode("utf-8"))
            except (ValueError, RecursionError) as e:
                logger.warning(f"Configuration is not valid JSON, defaults applied: {e}")
                config = default_config()
                self._persist(config)
                return copy.deepcopy(config), ["Configuration corrupt (invalid JSON), defaults applied."]

            config, issues = normalize_config_lenient(data)
            if issues:
                for issue in issues:
                    logger.warning(f"Configuration repaired: {issue}")
                self._persist(config)
            else:
                self._remember(config)

            return copy.deepcopy(config), issues

    def write(self, config: Dict[str, Any]) -> None:
        """
        Persist an already-validated keymap verbatim.

        Args:
            config: Document satisfying every keymap invariant
        """
        with self._lock:
            self._persist(config)
            logger.debug(f"Configuration written to {self.config_path}")

    def current(self) -> Dict[str, Any]:
        """Return the cached keymap if fresh, otherwise read it from disk."""
        with self._lock:
            if self._is_cache_fresh():
                return copy.deepcopy(self._cache)
            config, _issues = self.read()
            return config

    def resolve_icon_path(self, icon_path: str) -> Optional[Path]:
        """
        Resolve a stored iconPath to an absolute file inside icons_dir.

        Returns:
            Absolute path, or None if the reference is unsafe or escapes the
            icons directory.
        """
        clean = sanitize_icon_path(icon_path)
        if not clean:
            return None

        icons_root = self.icons_dir.resolve()
        absolute = (self.config_dir / clean).resolve()
        try:
            absolute.relative_to(icons_root)
        except ValueError:
            logger.warning(f"Icon path escapes icons directory: {icon_path}")
            return None
        return absolute

    def _persist(self, config: Dict[str, Any]) -> None:
        # Whole-document replace: write a sibling file then swap it in.
        tmp_path = self.config_path.with_name(self.config_path.name + ".tmp")
        tmp_path.write_text(json.dumps(config, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.config_path)
        self._remember(config)

    def _remember(self, config: Dict[str, Any]) -> None:
        self._cache = copy.deepcopy(config)
        self._cache_mtime = self._file_mtime()

    def _file_mtime(self) -> Optional[int]:
        try:
            return self.config_path.stat().st_mtime_ns
        except OSError:
            return None

    def _is_cache_fresh(self) -> bool:
        if self._cache is None:
            return False
        mtime = self._file_mtime()
        return mtime is not None and mtime == self._cache_mtime
