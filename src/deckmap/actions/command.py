"""
Command execution action
"""

import logging
from typing import List

from ..config.schema import ActionType
from ..utils.errors import PlatformError
from .base import ActionContext, ActionResult, BaseAction

logger = logging.getLogger(__name__)


def tokenize_command_line(command_line: str) -> List[str]:
    """
    Split a command line into tokens.

    Whitespace separates tokens, double quotes group a segment into one
    token (the quotes themselves are dropped) and ``\\"`` is a literal quote.

    >>> tokenize_command_line('"C:\\\\Program Files\\\\app.exe" --flag')
    ['C:\\\\Program Files\\\\app.exe', '--flag']
    """
    text = str(command_line if command_line is not None else "").strip()
    tokens = []
    current = ""
    in_quotes = False
    i = 0

    while i < len(text):
        ch = text[i]
        if ch == '"':
            in_quotes = not in_quotes
        elif not in_quotes and ch.isspace():
            if current:
                tokens.append(current)
                current = ""
        elif ch == "\\" and i + 1 < len(text) and text[i + 1] == '"':
            current += '"'
            i += 1
        else:
            current += ch
        i += 1

    if current:
        tokens.append(current)
    return tokens


class CommandAction(BaseAction):
    """Launch a command line as a detached process"""

    action_type = ActionType.COMMAND

    def execute(self, context: ActionContext, value: str) -> ActionResult:
        """
        Launch a command without waiting for it.

        The tokens are handed to the platform launcher, never to a shell
        string. Only the launch itself is reported; the exit code is logged
        once the process finishes.

        Args:
            context: Action execution context
            value: Command line to tokenize

        Returns:
            ActionResult naming the launched executable
        """
        parts = tokenize_command_line(value)
        if not parts:
            return ActionResult.failure("Empty command.")

        logger.info(f"Launching command: {parts[0]}")
        try:
            context.platform.launch_detached(parts)
        except PlatformError as e:
            return ActionResult.failure(f"Command launch failed: {e}")

        return ActionResult.success(f"Command started: {parts[0]}")
