"""
Device gateway: the drawing and input-event surface of a control deck.

The rest of deckmap only talks to :class:`DeviceGateway`. Hardware input is
turned into small event objects and handed to an event sink (normally a
``queue.Queue.put``), so every event is handled by one consumer loop.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from PIL import Image
from StreamDeck.Devices.StreamDeck import DialEventType, TouchscreenEventType
from StreamDeck.ImageHelpers import PILHelper

from ..config.schema import KEY_COUNT
from ..utils.colors import hex_to_rgb, unpack_rgb565
from ..utils.errors import DeviceError

logger = logging.getLogger(__name__)

# Rotary controls in binding order (top/center/bottom, left then right)
KNOB_IDS = ("knobTL", "knobCL", "knobBL", "knobTR", "knobCR", "knobBR")

# Profile buttons, one per profile identifier
PROFILE_BUTTON_COUNT = 8


@dataclass(frozen=True)
class ButtonDown:
    """A profile button was pressed"""

    id: int


@dataclass(frozen=True)
class TouchStart:
    """One or more keys were touched"""

    keys: Tuple[int, ...]


@dataclass(frozen=True)
class Rotate:
    """A rotary control turned by ``delta`` ticks"""

    id: str
    delta: int


@dataclass(frozen=True)
class Disconnected:
    """The device went away"""

    error: Optional[str] = None


class DeviceGateway(ABC):
    """
    Abstract control deck.

    Keys are addressed ``0..key_count-1`` and drawn from RGB565 buffers of
    ``key_size * key_size`` pixels. Profile buttons are addressed by their
    button id (0 is the home profile).
    """

    device_type: str = "unknown"

    def __init__(self, key_count: int = KEY_COUNT):
        self.key_count = key_count
        self._event_sink: Optional[Callable[[Any], None]] = None

    @property
    @abstractmethod
    def key_size(self) -> int:
        """Edge length of a key image in pixels"""
        pass

    def set_event_sink(self, sink: Optional[Callable[[Any], None]]) -> None:
        self._event_sink = sink

    def emit(self, event) -> None:
        """Hand an input event to the sink, dropping it if none is set."""
        sink = self._event_sink
        if sink is None:
            logger.debug(f"Dropping {event!r}: no event sink")
            return
        sink(event)

    @abstractmethod
    def draw_key(self, index: int, buffer: bytes) -> None:
        """Draw an RGB565 buffer on a key"""
        pass

    @abstractmethod
    def draw_screen(self, screen_id: int, image: Image.Image) -> None:
        """Draw an image on a secondary screen region"""
        pass

    @abstractmethod
    def set_brightness(self, level: int) -> None:
        pass

    @abstractmethod
    def set_button_color(self, button_id: int, color: str) -> None:
        """Light a profile button with a hex color"""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @abstractmethod
    def close(self) -> bool:
        """Reset and release the device; True if it closed cleanly"""
        pass


class StreamDeckGateway(DeviceGateway):
    """
    Elgato Stream Deck adapter.

    Physical keys below ``key_count`` are the mapped keys (they report
    ``TouchStart``). Physical keys past that are profile buttons and report
    ``ButtonDown(key - key_count)``. Dials report ``Rotate`` with the knob id
    of their index, and a tap on the touch strip reports ``ButtonDown`` for
    the strip segment that was hit (the strip is split into one segment per
    profile). Profile button colors are painted onto those segments.
    """

    device_type = "streamdeck"

    def __init__(self, deck, key_count: int = KEY_COUNT):
        super().__init__(key_count)
        self.deck = deck
        self.device_type = deck.deck_type()
        self._lock = threading.Lock()
        self._strip: Optional[Image.Image] = None

        deck.set_key_callback(self._on_key)
        if deck.dial_count():
            deck.set_dial_callback(self._on_dial)
        if deck.is_touch():
            deck.set_touchscreen_callback(self._on_touch)
            width, height = deck.touchscreen_image_format()["size"]
            self._strip = Image.new("RGB", (width, height), "black")

    @property
    def key_size(self) -> int:
        return self.deck.key_image_format()["size"][0]

    def _on_key(self, deck, key: int, state: bool) -> None:
        if not state:
            return
        if key < self.key_count:
            self.emit(TouchStart(keys=(key,)))
        else:
            self.emit(ButtonDown(id=key - self.key_count))

    def _on_dial(self, deck, dial: int, event, value) -> None:
        if event != DialEventType.TURN or dial >= len(KNOB_IDS):
            return
        self.emit(Rotate(id=KNOB_IDS[dial], delta=int(value)))

    def _on_touch(self, deck, event, value) -> None:
        if event not in (TouchscreenEventType.SHORT, TouchscreenEventType.LONG):
            return
        width = self._strip.width if self._strip else 1
        x = max(0, min(width - 1, int(value.get("x", 0))))
        self.emit(ButtonDown(id=x * PROFILE_BUTTON_COUNT // width))

    def _segment_box(self, segment: int) -> Tuple[int, int, int, int]:
        width, height = self._strip.size
        left = segment * width // PROFILE_BUTTON_COUNT
        right = (segment + 1) * width // PROFILE_BUTTON_COUNT
        return left, 0, right, height

    def draw_key(self, index: int, buffer: bytes) -> None:
        if index >= self.deck.key_count() or index >= self.key_count:
            logger.debug(f"Key {index} does not exist on {self.device_type}")
            return

        image = unpack_rgb565(buffer, self.key_size)
        native = PILHelper.to_native_key_format(self.deck, image)
        try:
            with self._lock, self.deck:
                self.deck.set_key_image(index, native)
        except OSError as e:
            raise DeviceError(f"Failed to draw key {index}: {e}")

    def draw_screen(self, screen_id: int, image: Image.Image) -> None:
        if self._strip is None:
            logger.debug(f"{self.device_type} has no touch strip")
            return

        box = self._segment_box(screen_id)
        segment = image.convert("RGB").resize((box[2] - box[0], box[3] - box[1]))
        with self._lock:
            self._strip.paste(segment, box[:2])
            native = PILHelper.to_native_touchscreen_format(self.deck, self._strip)
            try:
                with self.deck:
                    self.deck.set_touchscreen_image(native, 0, 0, self._strip.width, self._strip.height)
            except OSError as e:
                raise DeviceError(f"Failed to draw touch strip: {e}")

    def set_brightness(self, level: int) -> None:
        with self._lock, self.deck:
            self.deck.set_brightness(max(0, min(100, int(level))))

    def set_button_color(self, button_id: int, color: str) -> None:
        if not 0 <= button_id < PROFILE_BUTTON_COUNT:
            raise DeviceError(f"No profile button {button_id}")
        self.draw_screen(button_id, Image.new("RGB", (1, 1), hex_to_rgb(color)))

    def is_connected(self) -> bool:
        try:
            return bool(self.deck.connected())
        except (OSError, IOError) as e:
            logger.debug(f"Stream Deck connection lost (USB disconnected): {type(e).__name__}")
            return False
        except Exception as e:
            logger.debug(f"Stream Deck not responsive: {type(e).__name__}: {e}")
            return False

    def close(self) -> bool:
        clean = True
        try:
            self.deck.reset()
        except Exception as e:
            logger.debug(f"Could not reset Stream Deck (may be unplugged): {e}")
            clean = False
        try:
            self.deck.close()
        except Exception as e:
            logger.debug(f"Could not close Stream Deck connection: {e}")
            clean = False
        return clean
