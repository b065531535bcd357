"""
Action dispatcher: routes an action tag and raw value to its action
"""

import logging
import threading
import time
from typing import Callable, Dict, Optional

from ..config.schema import ActionType, is_valid_http_url
from .base import ActionContext, ActionResult
from .registry import ActionRegistry, create_default_registry

logger = logging.getLogger(__name__)

DEBOUNCE_WINDOW = 0.25


class KeyDebouncer:
    """
    Per-key debounce.

    A press is rejected when it arrives within ``window`` seconds of the
    previous accepted press of the same key. Rejected presses do not move
    the window.
    """

    def __init__(self, window: float = DEBOUNCE_WINDOW, clock: Callable[[], float] = time.monotonic):
        self.window = window
        self._clock = clock
        self._last_accepted: Dict[int, float] = {}
        self._lock = threading.Lock()

    def accept(self, key: int) -> bool:
        """Record and accept the press, or return False if it is debounced."""
        with self._lock:
            now = self._clock()
            previous = self._last_accepted.get(key)
            if previous is not None and now - previous < self.window:
                return False
            self._last_accepted[key] = now
            return True

    def reset(self) -> None:
        with self._lock:
            self._last_accepted.clear()


class ActionDispatcher:
    """
    Executes actions by tag.

    Dispatch order: any value that is a valid http/https URL (or a ``url``
    tag) opens the URL; otherwise the registered action for the tag runs,
    and unknown tags fall back to ``command``. Exceptions raised by an action
    are converted into failures so nothing escapes ``execute``.
    """

    def __init__(self, platform, registry: Optional[ActionRegistry] = None):
        self.platform = platform
        self.registry = registry or create_default_registry()

    def execute(self, action_type, value: str, depth: int = 0, key_index: Optional[int] = None) -> ActionResult:
        """
        Execute one action.

        Args:
            action_type: ActionType or raw tag string
            value: Raw shortcut value
            depth: Composite nesting depth (0 for a top-level trigger)
            key_index: Key that triggered the action, if any

        Returns:
            ActionResult, never raises
        """
        tag = ActionType.parse(action_type)
        if tag is ActionType.URL or is_valid_http_url(value):
            tag = ActionType.URL

        action = self.registry.get_action(tag) or self.registry.get_action(ActionType.COMMAND)
        if action is None:
            return ActionResult.failure(f"No handler registered for {tag.value}.")

        if not action.is_platform_supported(self.platform.name):
            return ActionResult.failure(f"{tag.value} is unsupported on this platform ({self.platform.name}).")

        context = ActionContext(self.platform, dispatcher=self, depth=depth, key_index=key_index)
        try:
            return action.execute(context, value)
        except Exception as e:
            logger.error(f"Action {tag.value} failed: {e}", exc_info=True)
            return ActionResult.failure(f"Action failed: {e}")
