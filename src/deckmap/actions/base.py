"""
Base action class for all shortcut actions
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..config.schema import ActionType

logger = logging.getLogger(__name__)


class ActionResult:
    """
    Outcome of an action: ``ok`` with a message, or not ``ok`` with a reason.

    Actions never raise past the dispatcher; every failure is reported as a
    result carrying a human-readable reason.
    """

    __slots__ = ("ok", "message", "reason")

    def __init__(self, ok: bool, message: str = "", reason: str = ""):
        self.ok = ok
        self.message = message
        self.reason = reason

    @classmethod
    def success(cls, message: str) -> "ActionResult":
        return cls(True, message=message)

    @classmethod
    def failure(cls, reason: str) -> "ActionResult":
        return cls(False, reason=reason)

    @property
    def text(self) -> str:
        """Message on success, reason on failure."""
        return self.message if self.ok else self.reason

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {"ok": True, "message": self.message}
        return {"ok": False, "reason": self.reason}

    def __eq__(self, other):
        if not isinstance(other, ActionResult):
            return NotImplemented
        return (self.ok, self.message, self.reason) == (other.ok, other.message, other.reason)

    def __repr__(self):
        return f"ActionResult(ok={self.ok!r}, text={self.text!r})"


class ActionContext:
    """
    Context passed to actions during execution.

    Attributes:
        platform: Platform used for launches and automation requests
        dispatcher: Dispatcher that started this action (composite actions
            run their steps through it)
        depth: Composite nesting depth of this execution (0 at top level)
        key_index: Zero-based key that triggered the action, if any
    """

    def __init__(self, platform, dispatcher=None, depth: int = 0, key_index: Optional[int] = None):
        self.platform = platform
        self.dispatcher = dispatcher
        self.depth = depth
        self.key_index = key_index


class BaseAction(ABC):
    """
    Base class for all action types.

    Each subclass handles one ``ActionType`` tag and interprets the raw
    shortcut value for that tag.

    Class Attributes:
        action_type: The ActionType this class executes
        supported_platforms: List of platform names this action supports,
                           or None for all platforms

    Example:
        >>> class EchoAction(BaseAction):
        ...     action_type = ActionType.COMMAND
        ...
        ...     def execute(self, context, value):
        ...         return ActionResult.success(value)
    """

    action_type: ActionType = None

    # Platform requirements (None means all platforms)
    supported_platforms: Optional[list] = None

    def __init__(self):
        """
        Initialize the action.

        Raises:
            ValueError: If action_type is not defined
        """
        if not self.action_type:
            raise ValueError(f"{self.__class__.__name__} must define action_type")

    @abstractmethod
    def execute(self, context: ActionContext, value: str) -> ActionResult:
        """
        Execute the action

        Args:
            context: Action execution context
            value: Raw shortcut value for this action type

        Returns:
            ActionResult describing the outcome
        """
        pass

    def is_platform_supported(self, platform_name: str) -> bool:
        """Check if this action supports the given platform"""
        if self.supported_platforms is None:
            return True
        return platform_name in self.supported_platforms
