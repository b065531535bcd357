"""
Profile rendering for the control deck.

Draws the active profile's keys in two passes (color fills, then icons)
and lights the profile buttons.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List, Optional

from ..config.schema import PROFILE_BUTTONS, PROFILE_IDS, active_shortcuts
from ..device.gateway import DeviceGateway
from ..device.icons import IconResolver
from ..device.renderer import ButtonRenderer
from ..utils.colors import BLACK, WHITE, normalize_hex_color
from ..utils.errors import safe_execute

logger = logging.getLogger(__name__)

ICON_WORKERS = 6


class ProfileManager:
    """
    Renders profiles onto a gateway.

    Responsibilities:
    - Fill pass: every key gets its background color, in key order
    - Icon pass: icons are resolved in parallel and composited over the fill
    - Profile button LEDs

    Only one render runs at a time; a render started while another is in
    progress waits for it to finish.
    """

    def __init__(
        self,
        button_renderer: ButtonRenderer,
        icon_resolver: IconResolver,
        brightness: int = 100,
        max_workers: int = ICON_WORKERS,
        on_status: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize the profile manager.

        Args:
            button_renderer: Renderer for key buffers
            icon_resolver: Icon lookup for the icon pass
            brightness: Deck brightness (0-100) applied before each render
            max_workers: Threads used by the icon pass
            on_status: Callback receiving human-readable status lines
        """
        self.button_renderer = button_renderer
        self.icon_resolver = icon_resolver
        self.brightness = brightness
        self.max_workers = max_workers
        self.on_status = on_status
        self._render_lock = threading.Lock()

    def _status(self, text: str) -> None:
        if self.on_status:
            self.on_status(text)

    def render_profile(self, gateway: Optional[DeviceGateway], config: Dict[str, Any]) -> bool:
        """
        Render the active profile of a keymap.

        Args:
            gateway: Connected device, or None
            config: Keymap document

        Returns:
            True if the render ran to completion, False if it was skipped or
            aborted by an unexpected error
        """
        if gateway is None or not gateway.is_connected():
            logger.debug("Render skipped - no device connected")
            return False

        with self._render_lock:
            try:
                profile_id, shortcuts = active_shortcuts(config)
                safe_execute(lambda: gateway.set_brightness(self.brightness), log_level=logging.DEBUG)

                key_size = gateway.key_size
                self._fill_pass(gateway, shortcuts, key_size)
                self._icon_pass(gateway, shortcuts, key_size)
                self.apply_profile_leds(gateway, config)
                logger.debug(f"Profile {profile_id} rendered")
                return True
            except Exception as e:
                logger.error(f"Render failed: {e}", exc_info=True)
                self._status(f"Render error: {e}")
                return False

    def _fill_pass(self, gateway: DeviceGateway, shortcuts: List[Dict[str, Any]], key_size: int) -> None:
        for item in shortcuts:
            key = item.get("key")
            try:
                gateway.draw_key(key, self.button_renderer.render_fill(item.get("color"), key_size))
            except Exception as e:
                logger.warning(f"Background for key {key} skipped: {e}")
                self._status(f"Key {key} background skipped: {e}")

    def _icon_pass(self, gateway: DeviceGateway, shortcuts: List[Dict[str, Any]], key_size: int) -> None:
        items = [item for item in shortcuts if item.get("value")]
        if not items:
            return

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="icon") as executor:
            futures = {executor.submit(self.render_icon, gateway, item, key_size): item for item in items}
            done, _pending = wait(futures)

        for future in done:
            error = future.exception()
            if error is not None:
                logger.warning(f"Icon for key {futures[future].get('key')} skipped: {error}")

    def render_icon(self, gateway: DeviceGateway, item: Dict[str, Any], key_size: int) -> bool:
        """
        Resolve and draw the icon of one key.

        Returns:
            True if an icon was drawn, False if the key has none
        """
        icon = self.icon_resolver.resolve(item, key_size)
        if icon is None:
            return False

        buffer = self.button_renderer.render_with_icon(item.get("color"), icon, key_size)
        gateway.draw_key(item["key"], buffer)
        return True

    def apply_profile_leds(self, gateway: DeviceGateway, config: Dict[str, Any]) -> None:
        """Light the active profile's button in its color and turn the others off."""
        active, _shortcuts = active_shortcuts(config)
        colors = config.get("profileColors") if isinstance(config.get("profileColors"), dict) else {}
        active_color = normalize_hex_color(colors.get(active), WHITE)

        for profile_id in PROFILE_IDS:
            color = active_color if profile_id == active else BLACK
            button_id = PROFILE_BUTTONS[profile_id]
            safe_execute(
                lambda: gateway.set_button_color(button_id, color),
                log_level=logging.DEBUG,
            )
