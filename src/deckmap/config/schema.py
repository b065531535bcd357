"""
Keymap document schema: constants, defaults, lenient repair and strict validation.

The keymap is a JSON document shaped like::

    {
      "version": 2,
      "activeProfile": "home",
      "profileColors": {"home": "#ffffff", "1": "#ff0000", ...},
      "profiles": {
        "home": [{"key": 0, "label": "Key 0", "color": "#000000",
                  "actionType": "command", "value": "", "iconPath": ""}, ...],
        ...
      }
    }

Two entry points exist. ``normalize_config_lenient`` never rejects anything:
it rebuilds a complete document and reports what it had to fix. It is used
whenever a file is read. ``validate_config_strict`` is used for documents
submitted by a user and reports every violation instead of repairing.
"""

import copy
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from ..utils.colors import BLACK, WHITE, is_hex_color, normalize_hex_color

logger = logging.getLogger(__name__)

KEY_COUNT = 12
CONFIG_VERSION = 2
DEFAULT_PROFILE = "home"
PROFILE_IDS = ["home", "1", "2", "3", "4", "5", "6", "7"]
LABEL_MAX_LENGTH = 30

ICONS_SUBDIR = "icons"
ICON_PATH_RE = re.compile(r"\.(png|jpg|jpeg|webp)$", re.IGNORECASE)


class ActionType(str, Enum):
    """Closed set of action tags a shortcut can carry."""

    COMMAND = "command"
    URL = "url"
    APP = "app"
    APP_VOLUME = "app_volume"
    KEY_PRESS = "key_press"
    MULTI_ACTION = "multi_action"
    MACRO = "macro"
    PASTE_TEXT = "paste_text"

    @classmethod
    def parse(cls, value) -> "ActionType":
        """Map any raw tag onto a member; unknown tags become COMMAND."""
        text = str(value if value is not None else "").strip().lower()
        try:
            return cls(text)
        except ValueError:
            return cls.COMMAND

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


def is_valid_http_url(value) -> bool:
    """True for absolute http/https URLs with a host."""
    if not isinstance(value, str):
        return False
    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def is_profile_id(value) -> bool:
    return value is not None and str(value) in PROFILE_IDS


def profile_label(profile_id: str) -> str:
    return "HOME" if profile_id == DEFAULT_PROFILE else str(profile_id)


# Hardware profile buttons: button 0 is HOME, button n is profile "n"
PROFILE_BUTTONS = {profile_id: index for index, profile_id in enumerate(PROFILE_IDS)}


def profile_for_button(button_id) -> Optional[str]:
    if isinstance(button_id, bool) or not isinstance(button_id, int):
        return None
    if 0 <= button_id < len(PROFILE_IDS):
        return PROFILE_IDS[button_id]
    return None


def sanitize_label(value, key: int) -> str:
    text = f"Key {key}" if value is None else str(value)
    return text.strip()[:LABEL_MAX_LENGTH]


def sanitize_value(value) -> str:
    return str(value if value is not None else "").strip()


def sanitize_icon_path(value) -> str:
    """
    Reduce an icon reference to a safe relative path or "".

    Only ``icons/<file>.<png|jpg|jpeg|webp>`` paths without ``..`` survive.
    """
    text = str(value if value is not None else "").strip().replace("\\", "/")
    if not text:
        return ""
    if not text.startswith(f"{ICONS_SUBDIR}/"):
        return ""
    if ".." in text:
        return ""
    if not ICON_PATH_RE.search(text):
        return ""
    return text


def coerce_key(value) -> Optional[int]:
    """Return the integer key index for a raw value, or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and re.fullmatch(r"\s*\d+\s*", value):
        return int(value)
    return None


def default_shortcut(key: int) -> Dict[str, Any]:
    return {
        "key": key,
        "label": f"Key {key}",
        "color": BLACK,
        "actionType": ActionType.COMMAND.value,
        "value": "",
        "iconPath": "",
    }


def default_shortcuts() -> List[Dict[str, Any]]:
    return [default_shortcut(key) for key in range(KEY_COUNT)]


def default_profile_colors() -> Dict[str, str]:
    return {profile_id: WHITE for profile_id in PROFILE_IDS}


def default_config() -> Dict[str, Any]:
    """Build the first-run keymap document."""
    return {
        "version": CONFIG_VERSION,
        "activeProfile": DEFAULT_PROFILE,
        "profileColors": default_profile_colors(),
        "profiles": {profile_id: default_shortcuts() for profile_id in PROFILE_IDS},
    }


def _sanitize_shortcut(raw: Dict[str, Any], key: int) -> Dict[str, Any]:
    return {
        "key": key,
        "label": sanitize_label(raw.get("label"), key),
        "color": normalize_hex_color(raw.get("color")),
        "actionType": ActionType.parse(raw.get("actionType")).value,
        "value": sanitize_value(raw.get("value")),
        "iconPath": sanitize_icon_path(raw.get("iconPath")),
    }


def _normalize_shortcuts_lenient(raw_list, profile_id: str, issues: List[str]) -> List[Dict[str, Any]]:
    result = default_shortcuts()
    if not isinstance(raw_list, list):
        issues.append(f"Profile {profile_id}: shortcuts missing or invalid, defaults applied.")
        return result

    seen = set()
    for raw in raw_list:
        if not isinstance(raw, dict):
            issues.append(f"Profile {profile_id}: invalid shortcut entry ignored.")
            continue

        key = coerce_key(raw.get("key"))
        if key is None or key < 0 or key >= KEY_COUNT:
            issues.append(f"Profile {profile_id}: invalid key ({raw.get('key')!r}) ignored.")
            continue

        if key in seen:
            issues.append(f"Profile {profile_id}: duplicate key {key}, entry ignored.")
            continue

        shortcut = _sanitize_shortcut(raw, key)
        repaired = sorted(
            name
            for name, value in shortcut.items()
            if raw.get(name) != value or (name == "key" and type(raw.get(name)) is not int)
        )
        if repaired:
            issues.append(f"Profile {profile_id}: key {key} repaired ({', '.join(repaired)}).")

        result[key] = shortcut
        seen.add(key)

    for key in range(KEY_COUNT):
        if key not in seen:
            issues.append(f"Profile {profile_id}: key {key} missing, default applied.")

    return result


def normalize_config_lenient(data) -> Tuple[Dict[str, Any], List[str]]:
    """
    Rebuild a complete keymap from possibly malformed input.

    Args:
        data: Parsed JSON (any type)

    Returns:
        Tuple of (repaired document, list of human-readable issues). An empty
        issue list means the input was already canonical.
    """
    config = default_config()
    issues: List[str] = []

    if isinstance(data, list):
        data = {"shortcuts": data}

    if not isinstance(data, dict):
        issues.append("Configuration missing or invalid, defaults applied.")
        return config, issues

    if isinstance(data.get("shortcuts"), list) and "profiles" not in data:
        issues.append(f"Configuration v1 migrated to v{CONFIG_VERSION} (profile HOME).")
        config["profiles"][DEFAULT_PROFILE] = _normalize_shortcuts_lenient(
            data["shortcuts"], DEFAULT_PROFILE, issues
        )
        return config, issues

    if data.get("version") != CONFIG_VERSION:
        issues.append(
            f"Invalid configuration version ({data.get('version')!r}), "
            f"version {CONFIG_VERSION} applied."
        )

    profiles = data.get("profiles")
    if not isinstance(profiles, dict):
        issues.append("profiles missing or invalid, defaults applied.")
        return config, issues

    if is_profile_id(data.get("activeProfile")):
        config["activeProfile"] = str(data["activeProfile"])
    else:
        issues.append("activeProfile invalid, profile HOME applied.")

    profile_colors = data.get("profileColors")
    if isinstance(profile_colors, dict):
        for profile_id in PROFILE_IDS:
            raw_color = profile_colors.get(profile_id)
            color = normalize_hex_color(raw_color, WHITE)
            if color != raw_color:
                issues.append(f"profileColors.{profile_id} invalid, {color} applied.")
            config["profileColors"][profile_id] = color
    else:
        issues.append("profileColors missing or invalid, white applied.")

    for profile_id in PROFILE_IDS:
        config["profiles"][profile_id] = _normalize_shortcuts_lenient(
            profiles.get(profile_id), profile_id, issues
        )

    return config, issues


@dataclass
class ValidationResult:
    """Outcome of strict validation: a write-ready config or every error found."""

    ok: bool
    config: Optional[Dict[str, Any]] = None
    errors: List[str] = field(default_factory=list)


def _validate_shortcuts_strict(raw_list, profile_id: str, errors: List[str]):
    if not isinstance(raw_list, list):
        errors.append(f"profiles.{profile_id} must be an array.")
        return None

    if len(raw_list) != KEY_COUNT:
        errors.append(f"profiles.{profile_id} must contain exactly {KEY_COUNT} entries.")

    seen = set()
    for index, item in enumerate(raw_list):
        where = f"profiles.{profile_id}[{index}]"
        if not isinstance(item, dict):
            errors.append(f"{where} must be an object.")
            continue

        key = coerce_key(item.get("key"))
        if key is None or key < 0 or key >= KEY_COUNT:
            errors.append(f"{where}.key must be an integer between 0 and {KEY_COUNT - 1}.")
        elif key in seen:
            errors.append(f"profiles.{profile_id} contains duplicate key {key}.")
        else:
            seen.add(key)

        label = item.get("label")
        if not isinstance(label, str) or not label.strip() or len(label) > LABEL_MAX_LENGTH:
            errors.append(f"{where}.label must be a string of 1 to {LABEL_MAX_LENGTH} characters.")

        if not is_hex_color(item.get("color")):
            errors.append(f"{where}.color must match #RRGGBB.")

        if item.get("actionType") not in ActionType.values():
            allowed = ", ".join(f'"{value}"' for value in ActionType.values())
            errors.append(f"{where}.actionType must be one of {allowed}.")

        if not isinstance(item.get("value"), str):
            errors.append(f"{where}.value must be a string.")

        if "iconPath" in item and not isinstance(item["iconPath"], str):
            errors.append(f"{where}.iconPath must be a string.")

    for key in range(KEY_COUNT):
        if key not in seen:
            errors.append(f"profiles.{profile_id} must contain key {key}.")

    normalized = []
    for item in raw_list:
        key = coerce_key(item.get("key")) if isinstance(item, dict) else None
        if key is not None:
            normalized.append(_sanitize_shortcut(item, key))
    return sorted(normalized, key=lambda shortcut: shortcut["key"])


def validate_config_strict(payload) -> ValidationResult:
    """
    Validate a user-submitted keymap without repairing it.

    Args:
        payload: Parsed JSON body

    Returns:
        ValidationResult with ``ok`` and a normalized, write-ready config when
        no violation was found; otherwise ``errors`` lists every violation.
    """
    if not isinstance(payload, dict):
        return ValidationResult(ok=False, errors=["Invalid JSON payload."])

    errors: List[str] = []

    if payload.get("version") != CONFIG_VERSION or isinstance(payload.get("version"), bool):
        errors.append(f"version must be {CONFIG_VERSION}.")

    if not is_profile_id(payload.get("activeProfile")) or not isinstance(
        payload.get("activeProfile"), str
    ):
        errors.append(f"activeProfile must be one of: {', '.join(PROFILE_IDS)}.")

    profiles = payload.get("profiles")
    if not isinstance(profiles, dict):
        errors.append("profiles must be an object.")
        profiles = {}

    profile_colors = default_profile_colors()
    if "profileColors" in payload:
        raw_colors = payload["profileColors"]
        if not isinstance(raw_colors, dict):
            errors.append("profileColors must be an object.")
        else:
            for profile_id in PROFILE_IDS:
                value = raw_colors.get(profile_id)
                if not is_hex_color(value):
                    errors.append(f"profileColors.{profile_id} must match #RRGGBB.")
                else:
                    profile_colors[profile_id] = value.lower()

    normalized_profiles = {}
    for profile_id in PROFILE_IDS:
        normalized = _validate_shortcuts_strict(profiles.get(profile_id), profile_id, errors)
        if normalized is not None:
            normalized_profiles[profile_id] = normalized

    if errors:
        logger.debug(f"Strict validation rejected configuration with {len(errors)} error(s)")
        return ValidationResult(ok=False, errors=errors)

    return ValidationResult(
        ok=True,
        config={
            "version": CONFIG_VERSION,
            "activeProfile": payload["activeProfile"],
            "profileColors": profile_colors,
            "profiles": copy.deepcopy(normalized_profiles),
        },
    )


def active_shortcuts(config: Dict[str, Any]) -> Tuple[str, List[Dict[str, Any]]]:
    """
    Return the active profile id and its shortcut list.

    Falls back to HOME and an all-default list when the document is damaged.
    """
    active = config.get("activeProfile") if isinstance(config, dict) else None
    profile_id = str(active) if is_profile_id(active) else DEFAULT_PROFILE
    profiles = config.get("profiles") if isinstance(config, dict) else None
    shortcuts = profiles.get(profile_id) if isinstance(profiles, dict) else None
    if not isinstance(shortcuts, list):
        shortcuts = default_shortcuts()
    return profile_id, shortcuts


def find_shortcut(config: Dict[str, Any], profile_id: str, key: int) -> Optional[Dict[str, Any]]:
    """Locate the shortcut for a key in a profile (same object, not a copy)."""
    profiles = config.get("profiles", {})
    shortcuts = profiles.get(profile_id) if isinstance(profiles, dict) else None
    if not isinstance(shortcuts, list):
        return None
    for shortcut in shortcuts:
        if isinstance(shortcut, dict) and shortcut.get("key") == key:
            return shortcut
    return None
