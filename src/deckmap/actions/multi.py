"""
Composite action running several steps in sequence
"""

import json
import logging
import time
from typing import Dict, List

from ..config.schema import ActionType
from .base import ActionContext, ActionResult, BaseAction

logger = logging.getLogger(__name__)

MAX_MULTI_ACTION_DEPTH = 3
STEP_PAUSE = 0.04


def parse_multi_action_value(value: str) -> List[Dict[str, str]]:
    """
    Parse ``{"steps": [{"actionType": ..., "value": ...}, ...]}``.

    Non-object steps are dropped, unknown tags become ``command`` and steps
    that are themselves multi-actions are filtered out. Anything unparsable
    yields no steps.
    """
    raw = str(value or "").strip()
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except ValueError:
        return []
    if not isinstance(parsed, dict) or not isinstance(parsed.get("steps"), list):
        return []

    steps = []
    for step in parsed["steps"]:
        if not isinstance(step, dict):
            continue
        action_type = ActionType.parse(step.get("actionType"))
        if action_type is ActionType.MULTI_ACTION:
            continue
        steps.append({"actionType": action_type.value, "value": str(step.get("value") or "")})
    return steps


class MultiAction(BaseAction):
    """Run steps one after another, stopping at the first failure"""

    action_type = ActionType.MULTI_ACTION

    # Seconds between consecutive steps
    step_pause = STEP_PAUSE

    def execute(self, context: ActionContext, value: str) -> ActionResult:
        """
        Execute each step through the dispatcher at the next nesting depth.

        Args:
            context: Action execution context (must carry a dispatcher)
            value: JSON document holding the step list

        Returns:
            Success naming the step count, or the first failing step's reason
            prefixed with its 1-based index
        """
        depth = context.depth + 1
        if depth > MAX_MULTI_ACTION_DEPTH:
            return ActionResult.failure("Multi-action nested too deeply.")

        steps = parse_multi_action_value(value)
        if not steps:
            return ActionResult.failure("Multi-action is empty.")

        for index, step in enumerate(steps, start=1):
            if index > 1:
                time.sleep(self.step_pause)
            logger.debug(f"Multi-action step {index}/{len(steps)}: {step['actionType']}")
            result = context.dispatcher.execute(step["actionType"], step["value"], depth)
            if not result.ok:
                return ActionResult.failure(f"Multi-action step {index}: {result.reason}")

        return ActionResult.success(f"Multi-action done ({len(steps)} step(s))")
