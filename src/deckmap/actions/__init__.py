"""
Action system for deckmap
"""

from .application import ApplicationAction, AppVolumeAction
from .base import ActionContext, ActionResult, BaseAction
from .command import CommandAction, tokenize_command_line
from .dispatcher import ActionDispatcher, KeyDebouncer
from .keyboard import KeyPressAction, MacroAction, PasteTextAction
from .multi import MultiAction
from .registry import ActionRegistry, create_default_registry
from .url import URLAction

__all__ = [
    "BaseAction",
    "ActionContext",
    "ActionResult",
    "ActionRegistry",
    "ActionDispatcher",
    "KeyDebouncer",
    "create_default_registry",
    "tokenize_command_line",
    "CommandAction",
    "ApplicationAction",
    "AppVolumeAction",
    "URLAction",
    "KeyPressAction",
    "MacroAction",
    "PasteTextAction",
    "MultiAction",
]
