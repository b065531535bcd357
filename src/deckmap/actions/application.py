"""
Application launcher and per-application volume actions
"""

import logging

from ..config.schema import ActionType
from .base import ActionContext, ActionResult, BaseAction
from .command import CommandAction

logger = logging.getLogger(__name__)


class ApplicationAction(CommandAction):
    """
    Launch a desktop application.

    The value is an executable path, a ``.lnk`` shortcut or a bare program
    name, optionally followed by arguments; it launches like a command.
    """

    action_type = ActionType.APP


class AppVolumeAction(BaseAction):
    """
    Per-application volume binding.

    Pressing the key does nothing by itself: the shortcut binds one of the
    rotary knobs to the application, and turning the knob adjusts its
    volume through the mixer.
    """

    action_type = ActionType.APP_VOLUME

    def execute(self, context: ActionContext, value: str) -> ActionResult:
        return ActionResult.success("App mixer ready (use the knobs).")
