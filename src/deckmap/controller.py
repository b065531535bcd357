"""
Main controller for deckmap.

The controller is the application context: it owns the keymap store, the
action dispatcher, the renderer, the mixer and the device connection, and
it is the surface an outer API layer calls into.
"""

import logging
import queue
import threading
import time
from collections import deque
from typing import Any, Callable, Dict, List, Optional, Tuple

from .actions import ActionDispatcher, ActionResult, KeyDebouncer, create_default_registry
from .config.loader import SettingsLoader
from .config.schema import (
    DEFAULT_PROFILE,
    KEY_COUNT,
    ValidationResult,
    active_shortcuts,
    coerce_key,
    find_shortcut,
    is_profile_id,
    profile_for_button,
    profile_label,
    validate_config_strict,
)
from .config.store import ConfigStore
from .device.gateway import KNOB_IDS, ButtonDown, DeviceGateway, Disconnected, Rotate, TouchStart
from .device.icons import CUSTOM, IconCache, IconResolver, http_get, save_custom_icon
from .device.manager import DeviceManager
from .device.renderer import ButtonRenderer
from .managers import AppCatalog, ConnectionManager, ProfileManager, VolumeMixer
from .platforms import detect_platform
from .platforms.base import Platform
from .utils.errors import error_boundary

logger = logging.getLogger(__name__)

# Number of status lines kept in memory
STATUS_HISTORY = 50


class DeckmapController:
    """
    Main controller orchestrating the control deck.

    Delegates specific responsibilities to specialized components:
    - ConfigStore: keymap persistence and repair
    - ActionDispatcher / KeyDebouncer: shortcut execution
    - ProfileManager: key rendering and profile LEDs
    - VolumeMixer: knob-driven application volume
    - ConnectionManager: device lifecycle (created by run())

    Hardware input arrives as events on ``self.events`` and is handled by a
    single consumer loop (``process_events``).
    """

    def __init__(
        self,
        settings: Optional[Dict[str, Any]] = None,
        *,
        platform: Optional[Platform] = None,
        store: Optional[ConfigStore] = None,
        device_manager: Optional[DeviceManager] = None,
        timer_factory: Callable[..., Any] = threading.Timer,
        clock: Callable[[], float] = time.monotonic,
        fetch: Callable[[str], bytes] = http_get,
    ) -> None:
        """
        Initialize the controller.

        Args:
            settings: Service settings (see SettingsLoader); defaults if None
            platform: OS platform, auto-detected if None
            store: Keymap store, built from settings if None
            device_manager: Device discovery, created on first run() if None
            timer_factory: Timer class used by the mixer
            clock: Monotonic clock used for debouncing
            fetch: URL fetcher used for favicons
        """
        self.settings: Dict[str, Any] = settings or SettingsLoader().load(None)
        device_settings = self.settings.get("device", {})

        self.platform: Platform = platform or detect_platform()
        logger.info(f"Detected platform: {self.platform.name}")

        self.store = store or ConfigStore(self.settings["storage"]["config_dir"])
        self.device_manager = device_manager

        self.registry = create_default_registry()
        logger.info(f"Registered actions: {self.registry.list_actions()}")
        self.dispatcher = ActionDispatcher(self.platform, self.registry)
        self.debouncer = KeyDebouncer(clock=clock)

        self.icon_cache = IconCache()
        self.icon_resolver = IconResolver(self.store, self.platform, self.icon_cache, fetch=fetch)
        self.button_renderer = ButtonRenderer()
        self.profile_manager = ProfileManager(
            self.button_renderer,
            self.icon_resolver,
            brightness=device_settings.get("brightness", 100),
            on_status=self.set_last_event,
        )
        self.mixer = VolumeMixer(self.platform, timer_factory=timer_factory, on_status=self.set_last_event)
        self.catalog = AppCatalog(self.platform)

        self.connection_manager: Optional[ConnectionManager] = None
        self.gateway: Optional[DeviceGateway] = None
        self.events: "queue.Queue[Any]" = queue.Queue()
        self.running = False

        self.last_event = ""
        self.history: deque = deque(maxlen=STATUS_HISTORY)
        self.warnings: List[str] = []

    # Status line

    def set_last_event(self, text: str) -> None:
        """Record a human-readable status line, prefixed with the time."""
        line = f"[{time.strftime('%H:%M:%S')}] {text}"
        self.last_event = line
        self.history.append(line)
        logger.info(text)

    def status(self) -> Dict[str, Any]:
        config = self.store.current()
        return {
            "connected": self.gateway is not None,
            "deviceType": self.gateway.device_type if self.gateway else None,
            "platform": self.platform.name,
            "activeProfile": config.get("activeProfile"),
            "lastEvent": self.last_event,
            "warnings": list(self.warnings),
        }

    # Keymap

    def ensure_config(self) -> None:
        self.store.ensure()

    def read_config(self) -> Tuple[Dict[str, Any], List[str]]:
        """Read (and repair) the keymap, remembering any repair issues."""
        config, issues = self.store.read()
        if issues:
            self.warnings = issues
        return config, issues

    def write_config(self, config: Dict[str, Any]) -> None:
        self.store.write(config)

    def current_config(self) -> Dict[str, Any]:
        return self.store.current()

    def validate_strict(self, payload: Any) -> ValidationResult:
        return validate_config_strict(payload)

    def submit_config(self, payload: Any) -> ValidationResult:
        """
        Validate a user-submitted keymap and, if valid, save and render it.

        Returns:
            The validation result; nothing is written when it is not ok
        """
        result = validate_config_strict(payload)
        if not result.ok:
            logger.warning(f"Rejected configuration: {len(result.errors)} error(s)")
            return result

        self.store.write(result.config)
        self.warnings = []
        self.render_profile(result.config)
        return result

    # Rendering

    def render_profile(self, config: Optional[Dict[str, Any]] = None) -> bool:
        if config is None:
            config = self.current_config()
        return self.profile_manager.render_profile(self.gateway, config)

    # Actions

    def switch_profile(self, profile_id) -> Dict[str, Any]:
        """
        Make a profile active.

        Returns:
            ``{"ok", "changed", "profile"}`` or ``{"ok": False, "reason"}``
        """
        if not is_profile_id(profile_id):
            return {"ok": False, "reason": "Invalid profile."}
        profile_id = str(profile_id)

        config = self.current_config()
        if config.get("activeProfile") == profile_id:
            return {"ok": True, "changed": False, "profile": profile_id}

        config["activeProfile"] = profile_id
        self.store.write(config)
        self.render_profile(config)
        self.set_last_event(f"Active profile: {profile_label(profile_id)}")
        return {"ok": True, "changed": True, "profile": profile_id}

    def execute_shortcut(self, key: int) -> ActionResult:
        """
        Run the action bound to a key in the active profile.

        Presses of the same key closer together than the debounce window are
        rejected. Every outcome is written to the status line.
        """
        config = self.current_config()
        profile_id, shortcuts = active_shortcuts(config)
        item = next((s for s in shortcuts if isinstance(s, dict) and s.get("key") == key), None)

        if item is None:
            self.set_last_event(f"Key {key}: shortcut not found.")
            return ActionResult.failure("Shortcut not found")

        if not self.debouncer.accept(key):
            self.set_last_event(f"Key {key}: ignored (debounced).")
            return ActionResult.failure("Debounced")

        if not item.get("value"):
            self.set_last_event(f"Key {key}: no action configured.")
            return ActionResult.failure("No action configured")

        result = self.dispatcher.execute(item.get("actionType"), item["value"], 0, key_index=key)
        self.set_last_event(f"[{profile_label(profile_id)}] Key {key}: {result.text}")
        return result

    def execute_action(self, action_type, value: str) -> ActionResult:
        return self.dispatcher.execute(action_type, value, 0)

    def list_installed_apps(self) -> List[Dict[str, str]]:
        return self.catalog.list_apps()

    # Custom icons

    def set_custom_icon(self, profile_id, key, data_url: str) -> Dict[str, Any]:
        """
        Store an uploaded icon for a key and redraw.

        Args:
            profile_id: Target profile, or None for the active one
            key: Key index
            data_url: ``data:image/...;base64,...`` upload

        Returns:
            ``{"ok": True, "iconPath", "profile"}`` or ``{"ok": False, "reason"}``
        """
        target = self._locate_shortcut(profile_id, key)
        if "reason" in target:
            return {"ok": False, "reason": target["reason"]}

        config, shortcut, profile = target["config"], target["shortcut"], target["profile"]
        if not isinstance(data_url, str) or not data_url:
            return {"ok": False, "reason": "Missing image data URL."}
        try:
            icon_path = save_custom_icon(self.store.icons_dir, f"{profile}-{shortcut['key']}", data_url)
        except ValueError as e:
            return {"ok": False, "reason": str(e)}

        self._replace_icon(config, shortcut, icon_path)
        return {"ok": True, "iconPath": icon_path, "profile": profile}

    def clear_custom_icon(self, profile_id, key) -> Dict[str, Any]:
        """Remove the custom icon of a key and redraw."""
        target = self._locate_shortcut(profile_id, key)
        if "reason" in target:
            return {"ok": False, "reason": target["reason"]}

        self._replace_icon(target["config"], target["shortcut"], "")
        return {"ok": True, "profile": target["profile"]}

    def _locate_shortcut(self, profile_id, key) -> Dict[str, Any]:
        index = coerce_key(key)
        if index is None or not 0 <= index < KEY_COUNT:
            return {"reason": f"key must be between 0 and {KEY_COUNT - 1}."}

        config = self.current_config()
        profile = str(profile_id) if is_profile_id(profile_id) else config.get("activeProfile") or DEFAULT_PROFILE
        shortcut = find_shortcut(config, profile, index)
        if shortcut is None:
            return {"reason": "Shortcut not found"}
        return {"config": config, "shortcut": shortcut, "profile": profile}

    def _replace_icon(self, config: Dict[str, Any], shortcut: Dict[str, Any], icon_path: str) -> None:
        previous = shortcut.get("iconPath")
        shortcut["iconPath"] = icon_path
        self.store.write(config)

        if previous and previous != icon_path:
            old_file = self.store.resolve_icon_path(previous)
            if old_file is not None:
                try:
                    old_file.unlink()
                except FileNotFoundError:
                    pass
                except OSError as e:
                    logger.warning(f"Could not delete old icon {old_file}: {e}")

        self.icon_cache.clear(CUSTOM)
        self.render_profile(config)

    # Device events

    def post_event(self, event) -> None:
        self.events.put(event)

    @error_boundary(default_return=False)
    def handle_event(self, event) -> bool:
        """
        Handle one device event.

        Returns:
            True if the event was acted upon
        """
        if isinstance(event, TouchStart):
            handled = False
            for key in event.keys:
                if isinstance(key, int) and 0 <= key < KEY_COUNT:
                    self.execute_shortcut(key)
                    handled = True
            return handled

        if isinstance(event, ButtonDown):
            profile_id = profile_for_button(event.id)
            if profile_id is None:
                return False
            result = self.switch_profile(profile_id)
            if not result["ok"]:
                self.set_last_event(f"Profile switch to {profile_id} failed: {result['reason']}")
            return result["ok"]

        if isinstance(event, Rotate):
            if event.id not in KNOB_IDS or isinstance(event.delta, bool) or not isinstance(event.delta, int):
                return False
            if event.delta == 0:
                return False
            return self.mixer.handle_rotate(event.id, event.delta, self.current_config())

        if isinstance(event, Disconnected):
            self.mixer.cancel_all()
            self.set_last_event(f"Disconnected{': ' + event.error if event.error else ''}")
            return True

        logger.debug(f"Ignoring unknown event: {event!r}")
        return False

    def process_events(self, timeout: float = 0.1) -> int:
        """
        Drain the event queue, waiting up to ``timeout`` for the first event.

        Returns:
            Number of events handled
        """
        handled = 0
        try:
            event = self.events.get(timeout=timeout)
        except queue.Empty:
            return 0

        while True:
            self.handle_event(event)
            handled += 1
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                return handled

    def _on_device_connected(self, gateway: DeviceGateway) -> None:
        """Wire up a freshly connected device and draw the active profile."""
        gateway.set_event_sink(self.post_event)
        self.gateway = gateway
        self.set_last_event(f"Connected: {gateway.device_type}")

        config, _issues = self.read_config()
        self.render_profile(config)

    def _on_device_disconnected(self, error: Optional[str]) -> None:
        self.gateway = None
        self.mixer.cancel_all()
        self.post_event(Disconnected(error))

    def run(self) -> None:
        """
        Main application run loop.

        Prepares the keymap, connects (or keeps retrying in the background)
        and handles device events until stopped.
        """
        self.ensure_config()
        _config, issues = self.read_config()
        for issue in issues:
            logger.warning(f"Configuration: {issue}")

        device_settings = self.settings.get("device", {})
        if self.device_manager is None:
            self.device_manager = DeviceManager()
        self.connection_manager = ConnectionManager(
            self.device_manager,
            on_connected=self._on_device_connected,
            on_disconnected=self._on_device_disconnected,
            connect_timeout=device_settings.get("connect_timeout", ConnectionManager.CONNECT_TIMEOUT),
            retry_interval=device_settings.get("retry_interval", ConnectionManager.RETRY_INTERVAL),
            reconnect_interval=device_settings.get("reconnect_interval", ConnectionManager.RECONNECT_INTERVAL),
        )

        if not self.connection_manager.connect():
            logger.info("Starting without a device - will connect when available")

        self.running = True
        self.connection_manager.start_monitoring()
        logger.info("deckmap is running. Press Ctrl+C to exit.")

        try:
            while self.running:
                self.process_events(timeout=0.1)
        except KeyboardInterrupt:
            logger.info("Received shutdown signal")
        finally:
            logger.info("Shutting down deckmap...")
            self.stop()

    def stop(self) -> None:
        """Stop the run loop and release the device."""
        self.running = False
        self.mixer.cancel_all()
        if self.connection_manager:
            self.connection_manager.stop_monitoring()
            self.connection_manager.disconnect()
