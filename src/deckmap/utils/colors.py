"""
Color helpers for the control surface.

The device expects key images as RGB565 pixels (5 bits red, 6 bits green,
5 bits blue) packed little-endian, two bytes per pixel.
"""

import re
from typing import Tuple

import numpy as np
from PIL import Image

HEX_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")

BLACK = "#000000"
WHITE = "#ffffff"


def is_hex_color(value) -> bool:
    """Return True for a ``#RRGGBB`` string."""
    return isinstance(value, str) and bool(HEX_COLOR_RE.match(value))


def normalize_hex_color(value, fallback: str = BLACK) -> str:
    """
    Normalize a color to lowercase ``#rrggbb``.

    Args:
        value: Anything; non-strings are stringified first
        fallback: Returned when the value is not a 6-digit hex color

    Returns:
        Lowercase hex color or the fallback
    """
    text = str(value if value is not None else "").strip()
    if not HEX_COLOR_RE.match(text):
        return fallback
    return text.lower()


def hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    hex_value = normalize_hex_color(hex_color)[1:]
    return (
        int(hex_value[0:2], 16),
        int(hex_value[2:4], 16),
        int(hex_value[4:6], 16),
    )


def rgb_to_rgb565(r: int, g: int, b: int) -> int:
    return ((r >> 3) << 11) | ((g >> 2) << 5) | (b >> 3)


def hex_to_rgb565(hex_color: str) -> int:
    """Pack a hex color into the device's 16-bit color value."""
    return rgb_to_rgb565(*hex_to_rgb(hex_color))


def make_solid_buffer(size: int, packed: int) -> bytes:
    """Build a ``size`` x ``size`` key buffer filled with one packed color."""
    return np.full(size * size, packed, dtype="<u2").tobytes()


def pack_rgb_array(rgb: np.ndarray) -> bytes:
    """
    Pack an (H, W, 3) uint8 array into RGB565 little-endian bytes.

    Args:
        rgb: Array of 8-bit red, green and blue channels

    Returns:
        Native pixel buffer
    """
    r = rgb[..., 0].astype(np.uint16)
    g = rgb[..., 1].astype(np.uint16)
    b = rgb[..., 2].astype(np.uint16)
    packed = ((r >> 3) << 11) | ((g >> 2) << 5) | (b >> 3)
    return packed.astype("<u2").tobytes()


def unpack_rgb565(buffer: bytes, size: int) -> Image.Image:
    """
    Expand a native key buffer back into an RGB image.

    Channels are shifted back up to 8 bits; the low bits lost while packing
    stay zero.
    """
    packed = np.frombuffer(buffer, dtype="<u2").reshape(size, size)
    rgb = np.empty((size, size, 3), dtype=np.uint8)
    rgb[..., 0] = ((packed >> 11) & 0x1F) << 3
    rgb[..., 1] = ((packed >> 5) & 0x3F) << 2
    rgb[..., 2] = (packed & 0x1F) << 3
    return Image.fromarray(rgb)
