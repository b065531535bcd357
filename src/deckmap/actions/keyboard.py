"""
Keyboard simulation actions: single key press, typed macro and text paste.

All three send SendKeys strings through a PowerShell script, so they are
only available where the platform supports automation.
"""

import json
import logging
import math
import re
from typing import Any, Dict, List

from ..config.schema import ActionType
from ..platforms.powershell import run_script, send_keys_script
from ..utils.errors import AutomationError, UnsupportedPlatformError
from .base import ActionContext, ActionResult, BaseAction

logger = logging.getLogger(__name__)

DEFAULT_MACRO_DELAY_MS = 120
MAX_MACRO_DELAY_MS = 10_000

KEY_PRESS_TIMEOUT = 2.5

SEND_KEYS_SPECIAL = set("+^%~(){}[]")

FUNCTION_KEY_RE = re.compile(r"^F([1-9]|1[0-9]|2[0-4])$")

KEY_ALIASES = {
    "DEL": "DEL",
    "DELETE": "DEL",
    "BACKSPACE": "BACKSPACE",
    "BS": "BACKSPACE",
    "ENTER": "ENTER",
    "RETURN": "ENTER",
    "TAB": "TAB",
    "ESC": "ESC",
    "ESCAPE": "ESC",
    "SPACE": "SPACE",
    "HOME": "HOME",
    "END": "END",
    "INSERT": "INS",
    "INS": "INS",
    "PAGEUP": "PGUP",
    "PGUP": "PGUP",
    "PAGEDOWN": "PGDN",
    "PGDN": "PGDN",
    "LEFT": "LEFT",
    "RIGHT": "RIGHT",
    "UP": "UP",
    "DOWN": "DOWN",
}


def escape_for_send_keys(text: str) -> str:
    """Escape literal text so SendKeys types it verbatim.

    Carriage returns are dropped, newlines become ``{ENTER}`` and SendKeys
    metacharacters are wrapped in braces.
    """
    out = []
    for ch in str(text or ""):
        if ch == "\r":
            continue
        if ch == "\n":
            out.append("{ENTER}")
        elif ch in SEND_KEYS_SPECIAL:
            out.append("{" + ch + "}")
        else:
            out.append(ch)
    return "".join(out)


def normalize_key_token(value: str) -> str:
    """
    Turn a key name into a SendKeys token.

    Args:
        value: A single character, ``F1``..``F24`` or a named key alias

    Returns:
        The SendKeys token, or an empty string if the name is not recognized
    """
    raw = str(value or "").strip()
    if not raw:
        return ""
    if len(raw) == 1:
        return escape_for_send_keys(raw)

    upper = raw.upper()
    if FUNCTION_KEY_RE.match(upper):
        return "{" + upper + "}"
    if upper in KEY_ALIASES:
        return "{" + KEY_ALIASES[upper] + "}"
    return ""


def clamp_macro_delay(value: Any) -> int:
    try:
        delay = float(value)
    except (TypeError, ValueError):
        return DEFAULT_MACRO_DELAY_MS
    if not math.isfinite(delay):
        return DEFAULT_MACRO_DELAY_MS
    return max(0, min(MAX_MACRO_DELAY_MS, int(round(delay))))


def _parse_json_object(raw: str):
    try:
        parsed = json.loads(raw)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _first_present(data: Dict[str, Any], *names: str) -> str:
    for name in names:
        if data.get(name) is not None:
            return str(data[name])
    return ""


def parse_macro_value(value: str) -> Dict[str, Any]:
    """Parse ``{"keys"|"text", "delayMs"}`` JSON, or treat the value as the keys."""
    raw = str(value or "").strip()
    if not raw:
        return {"keys": "", "delayMs": DEFAULT_MACRO_DELAY_MS}

    parsed = _parse_json_object(raw)
    if parsed is not None:
        return {
            "keys": _first_present(parsed, "keys", "text"),
            "delayMs": clamp_macro_delay(parsed.get("delayMs")),
        }
    return {"keys": raw, "delayMs": DEFAULT_MACRO_DELAY_MS}


def parse_paste_text_value(value: str) -> Dict[str, str]:
    """Parse ``{"text"|"keys"}`` JSON, or treat the whole value as the text."""
    raw = str(value or "").strip()
    if not raw:
        return {"text": ""}

    parsed = _parse_json_object(raw)
    if parsed is not None:
        return {"text": _first_present(parsed, "text", "keys")}
    return {"text": str(value)}


class KeyboardAction(BaseAction):
    """Shared SendKeys runner for the keyboard actions"""

    def send_keys(
        self, context: ActionContext, tokens: List[str], message: str, timeout: float, delay_ms: int = 0
    ) -> ActionResult:
        try:
            run_script(
                context.platform,
                send_keys_script(tokens, delay_ms),
                purpose="Keyboard input",
                timeout=timeout,
                sta=True,
            )
        except UnsupportedPlatformError as e:
            return ActionResult.failure(str(e))
        except AutomationError as e:
            return ActionResult.failure(f"Keyboard script failed: {e}")
        return ActionResult.success(message)


class KeyPressAction(KeyboardAction):
    """Simulate one key press"""

    action_type = ActionType.KEY_PRESS

    def execute(self, context: ActionContext, value: str) -> ActionResult:
        token = normalize_key_token(value)
        if not token:
            return ActionResult.failure("Invalid key (e.g. F1, DELETE, !, a, 5).")

        name = str(value or "").strip()
        logger.info(f"Sending key: {name}")
        return self.send_keys(context, [token], f"Key sent: {name}", KEY_PRESS_TIMEOUT)


class MacroAction(KeyboardAction):
    """Type a sequence of characters one at a time with a delay between them"""

    action_type = ActionType.MACRO

    def execute(self, context: ActionContext, value: str) -> ActionResult:
        parsed = parse_macro_value(value)
        keys = list(parsed["keys"])
        if not keys:
            return ActionResult.failure("Empty macro (no keys).")

        delay_ms = parsed["delayMs"]
        tokens = [escape_for_send_keys(ch) for ch in keys]
        timeout_ms = max(3000, 1500 + len(keys) * (delay_ms + 20))
        logger.info(f"Running macro of {len(keys)} key(s) with {delay_ms} ms delay")
        return self.send_keys(
            context,
            tokens,
            f"Macro sent ({len(keys)} key(s), {delay_ms} ms)",
            timeout_ms / 1000.0,
            delay_ms=delay_ms,
        )


class PasteTextAction(KeyboardAction):
    """Type a block of text in one SendKeys call"""

    action_type = ActionType.PASTE_TEXT

    def execute(self, context: ActionContext, value: str) -> ActionResult:
        text = parse_paste_text_value(value)["text"]
        if not text.strip():
            return ActionResult.failure("Empty paste text.")

        timeout_ms = max(2500, 1200 + len(text) * 10)
        logger.info(f"Typing {len(text)} character(s)")
        return self.send_keys(
            context, [escape_for_send_keys(text)], "Text typed via keyboard input", timeout_ms / 1000.0
        )
