"""
URL opening action
"""

import logging

from ..config.schema import ActionType, is_valid_http_url
from ..utils.errors import PlatformError
from .base import ActionContext, ActionResult, BaseAction

logger = logging.getLogger(__name__)


class URLAction(BaseAction):
    """Open http/https URLs in the default browser"""

    action_type = ActionType.URL

    def execute(self, context: ActionContext, value: str) -> ActionResult:
        url = str(value or "").strip()
        if not is_valid_http_url(url):
            return ActionResult.failure("Invalid URL (http/https only).")

        logger.info(f"Opening URL: {url}")
        try:
            context.platform.open_url(url)
        except PlatformError as e:
            return ActionResult.failure(f"Failed to open URL: {e}")

        return ActionResult.success(f"URL opened: {url}")
