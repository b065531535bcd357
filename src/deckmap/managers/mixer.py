"""
Per-application volume mixer driven by the rotary knobs.

The first six ``app_volume`` shortcuts of the active profile are bound to
the six knobs. Knob ticks are accumulated per knob for a short window and
flushed as a single volume request, so a fast turn costs one PowerShell
call instead of one per tick.
"""

import json
import logging
import math
import os
import re
import threading
from typing import Any, Callable, Dict, Optional

from ..actions.command import tokenize_command_line
from ..config.schema import ActionType, active_shortcuts, coerce_key
from ..device.gateway import KNOB_IDS
from ..platforms.powershell import VOLUME_ADJUST_SCRIPT, run_script
from ..utils.errors import AutomationError

logger = logging.getLogger(__name__)

COALESCE_DELAY = 0.08
STEP_PER_TICK = 0.03
MAX_STEP = 0.24
VOLUME_TIMEOUT = 4.5


def normalize_mixer_target(value) -> str:
    """
    Reduce a command or path to the bare process name used for matching.

    ``"C:\\Apps\\Spotify.exe" --minimized`` becomes ``spotify``; a plain
    program name is only lowercased.
    """
    raw = str(value if value is not None else "").strip()
    if not raw:
        return ""

    tokens = tokenize_command_line(raw)
    first = tokens[0] if tokens else raw
    unquoted = first.strip('"').strip()
    if not unquoted:
        return ""

    file_name = re.split(r"[\\/]", unquoted)[-1].lower()
    if file_name.endswith(".lnk") or file_name.endswith(".exe"):
        return file_name[:-4]
    if "." in file_name:
        return os.path.splitext(file_name)[0]
    return file_name


def get_mixer_assignments(config: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Bind knobs to the active profile's ``app_volume`` shortcuts.

    Shortcuts without a usable target are skipped; the rest are taken in
    key order, one per knob, until the knobs run out.

    Returns:
        Mapping of knob id to ``{"key", "label", "target"}``
    """
    _profile_id, shortcuts = active_shortcuts(config)
    items = []
    for item in shortcuts:
        if not isinstance(item, dict) or ActionType.parse(item.get("actionType")) is not ActionType.APP_VOLUME:
            continue
        key = coerce_key(item.get("key"))
        target = normalize_mixer_target(item.get("value"))
        if key is None or not target:
            continue
        items.append({"key": key, "label": str(item.get("label") or ""), "target": target})

    items.sort(key=lambda entry: entry["key"])
    return dict(zip(KNOB_IDS, items))


class VolumeMixer:
    """
    Coalesces knob rotation into volume adjustments.

    Attributes:
        delay: Seconds ticks are accumulated before a flush
        step_per_tick: Volume fraction per knob tick
        max_step: Largest volume change a single flush may apply
    """

    def __init__(
        self,
        platform,
        delay: float = COALESCE_DELAY,
        step_per_tick: float = STEP_PER_TICK,
        max_step: float = MAX_STEP,
        timer_factory: Callable[..., Any] = threading.Timer,
        on_status: Optional[Callable[[str], None]] = None,
    ):
        self.platform = platform
        self.delay = delay
        self.step_per_tick = step_per_tick
        self.max_step = max_step
        self.on_status = on_status
        self._timer_factory = timer_factory
        self._pending: Dict[str, int] = {}
        self._timers: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def handle_rotate(self, knob_id: str, delta: int, config: Dict[str, Any]) -> bool:
        """
        Queue a rotation of a knob.

        Returns:
            True if the knob is bound in the active profile
        """
        assignment = get_mixer_assignments(config).get(knob_id)
        if assignment is None:
            logger.debug(f"Knob {knob_id} is not bound to an application")
            return False
        self.queue_adjustment(knob_id, assignment, delta)
        return True

    def queue_adjustment(self, knob_id: str, assignment: Dict[str, Any], delta: int) -> None:
        """Add ticks to a knob's pending total and arm its flush timer if idle."""
        with self._lock:
            self._pending[knob_id] = self._pending.get(knob_id, 0) + int(delta)
            if knob_id in self._timers:
                return

            timer = self._timer_factory(self.delay, self._flush, args=(knob_id, assignment))
            timer.daemon = True
            self._timers[knob_id] = timer
            timer.start()

    def pending(self, knob_id: str) -> int:
        with self._lock:
            return self._pending.get(knob_id, 0)

    def cancel_all(self) -> None:
        """Cancel every armed timer and drop the pending totals."""
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            cancelled = len(self._timers)
            self._timers.clear()
            self._pending.clear()
        if cancelled:
            logger.debug(f"Cancelled {cancelled} pending volume adjustment(s)")

    def _flush(self, knob_id: str, assignment: Dict[str, Any]) -> None:
        with self._lock:
            self._timers.pop(knob_id, None)
            total = self._pending.pop(knob_id, 0)
        if not total:
            return

        step = max(-self.max_step, min(self.max_step, total * self.step_per_tick))
        result = self.adjust_app_volume(assignment["target"], step)

        name = assignment.get("label") or assignment["target"]
        if not result.get("ok"):
            self._status(f"[MIX] {name}: {result.get('reason') or 'volume error'}")
            return

        volume = result.get("volume")
        volume_text = f" ({volume}%)" if isinstance(volume, (int, float)) and not isinstance(volume, bool) else ""
        self._status(f"[MIX] {name}{volume_text}")

    def adjust_app_volume(self, target: str, step: float) -> Dict[str, Any]:
        """
        Nudge the volume of every audio session matching a target.

        Args:
            target: Command, path or process name of the application
            step: Signed volume fraction, clamped to [-1, 1]

        Returns:
            The script's JSON answer (``{"ok": True, "sessions", "volume"}``)
            or ``{"ok": False, "reason"}``
        """
        if not self.platform.supports_automation:
            return {"ok": False, "reason": "App mixer is only supported on Windows."}

        token = normalize_mixer_target(target)
        if not token:
            return {"ok": False, "reason": "Invalid mixer target."}

        try:
            step = float(step)
        except (TypeError, ValueError):
            step = 0.0
        step = max(-1.0, min(1.0, step)) if math.isfinite(step) else 0.0
        if not step:
            return {"ok": False, "reason": "Zero mixer delta."}

        try:
            output = run_script(
                self.platform,
                VOLUME_ADJUST_SCRIPT,
                purpose="App mixer",
                timeout=VOLUME_TIMEOUT,
                args=["-Target", token, "-Step", repr(step)],
            )
        except AutomationError as e:
            return {"ok": False, "reason": str(e)}

        try:
            result = json.loads(output)
        except ValueError:
            result = None
        if not isinstance(result, dict):
            return {"ok": False, "reason": "Invalid mixer response."}
        return result

    def _status(self, text: str) -> None:
        logger.info(text)
        if self.on_status:
            self.on_status(text)
