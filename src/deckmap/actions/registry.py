"""
Action registry for managing and discovering action types
"""

import importlib
import logging
import pkgutil
from typing import Dict, Optional, Type

from ..config.schema import ActionType
from .base import BaseAction

logger = logging.getLogger(__name__)


class ActionRegistry:
    """Registry mapping each ActionType to its action implementation"""

    # Modules in the actions package that hold no action classes
    NON_ACTION_MODULES = ["base", "registry", "dispatcher", "__init__"]

    def __init__(self):
        self._actions: Dict[ActionType, Type[BaseAction]] = {}
        self._instances: Dict[ActionType, BaseAction] = {}

    def register(self, action_class: Type[BaseAction]) -> None:
        """Register an action class"""
        if not issubclass(action_class, BaseAction):
            raise TypeError(f"{action_class} must inherit from BaseAction")

        action = action_class()
        action_type = ActionType(action.action_type)
        if action_type in self._actions:
            logger.warning(f"Overwriting existing action type: {action_type.value}")

        self._actions[action_type] = action_class
        self._instances[action_type] = action
        logger.debug(f"Registered action type: {action_type.value}")

    def get_action(self, action_type) -> Optional[BaseAction]:
        """Look up the shared instance for a tag; unknown tags resolve to command."""
        return self._instances.get(ActionType.parse(action_type))

    def list_actions(self) -> list:
        """List all registered action tags"""
        return [action_type.value for action_type in self._actions]

    def is_supported(self, action_type, platform: str) -> bool:
        """Check if an action is supported on a platform"""
        action = self.get_action(action_type)
        if not action:
            return False
        return action.is_platform_supported(platform)

    def auto_discover(self) -> None:
        """Import every module of the actions package and register its action classes."""
        from .. import actions as actions_pkg

        for _importer, modname, _ispkg in pkgutil.iter_modules(actions_pkg.__path__):
            if modname in self.NON_ACTION_MODULES:
                continue

            try:
                module = importlib.import_module(f"{actions_pkg.__name__}.{modname}")
            except Exception as e:
                logger.error(f"Failed to load action module {modname}: {e}")
                continue

            # Only classes defined in the module itself; imported bases are
            # registered by their own module.
            for attr_name in dir(module):
                attr = getattr(module, attr_name)
                if (
                    isinstance(attr, type)
                    and issubclass(attr, BaseAction)
                    and attr is not BaseAction
                    and attr.__module__ == module.__name__
                    and attr.action_type
                ):
                    self.register(attr)


def create_default_registry() -> ActionRegistry:
    """Build a registry holding every built-in action."""
    registry = ActionRegistry()
    registry.auto_discover()
    logger.debug(f"Registered actions: {registry.list_actions()}")
    return registry
