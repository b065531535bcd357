"""
Key image rendering.

Produces native RGB565 key buffers: a flat background fill, optionally with
an icon alpha-composited over it at the center of the key.
"""

import logging
from typing import Tuple

import numpy as np
from PIL import Image

from ..utils.colors import hex_to_rgb, hex_to_rgb565, make_solid_buffer, pack_rgb_array

logger = logging.getLogger(__name__)


def scale_to_fit(image: Image.Image, box: int, resample=Image.Resampling.BILINEAR) -> Image.Image:
    """
    Scale an image up or down so it fits inside a ``box`` x ``box`` square.

    The aspect ratio is kept; neither side drops below one pixel.
    """
    width, height = image.size
    if not width or not height:
        return image
    factor = min(box / width, box / height)
    new_size = (max(1, int(round(width * factor))), max(1, int(round(height * factor))))
    if new_size == image.size:
        return image.copy()
    return image.resize(new_size, resample)


class ButtonRenderer:
    """
    Renders key buffers for the control deck.

    All buffers are ``size * size`` RGB565 little-endian pixels, the format
    ``DeviceGateway.draw_key`` accepts.
    """

    def render_fill(self, color: str, size: int) -> bytes:
        """Fill a whole key with one color"""
        return make_solid_buffer(size, hex_to_rgb565(color))

    def render_with_icon(self, color: str, icon: Image.Image, size: int) -> bytes:
        """
        Composite an icon over a background fill, centered on the key.

        Each icon pixel is blended as ``icon * a + background * (1 - a)``
        with ``a`` its alpha in ``[0, 1]``, rounded half up. Fully
        transparent pixels leave the background untouched, and any part of
        the icon outside the key is clipped.

        Args:
            color: Background hex color
            icon: Icon image (any mode; converted to RGBA)
            size: Key edge length in pixels

        Returns:
            Native key buffer
        """
        background = hex_to_rgb(color)
        canvas = np.empty((size, size, 3), dtype=np.float64)
        canvas[...] = background

        rgba = np.asarray(icon.convert("RGBA"), dtype=np.float64)
        icon_h, icon_w = rgba.shape[:2]
        x0 = (size - icon_w) // 2
        y0 = (size - icon_h) // 2

        (dst_y, src_y), (dst_x, src_x) = _clip(y0, icon_h, size), _clip(x0, icon_w, size)
        if dst_y.start < dst_y.stop and dst_x.start < dst_x.stop:
            patch = rgba[src_y, src_x]
            alpha = patch[..., 3:4] / 255.0
            region = canvas[dst_y, dst_x]
            blended = np.floor(patch[..., :3] * alpha + region * (1.0 - alpha) + 0.5)
            visible = patch[..., 3] > 0
            region[visible] = blended[visible]
            canvas[dst_y, dst_x] = region

        return pack_rgb_array(canvas.astype(np.uint8))


def _clip(offset: int, length: int, size: int) -> Tuple[slice, slice]:
    """Destination and source slices of a 1-D span placed at ``offset``."""
    start = max(0, offset)
    stop = min(size, offset + length)
    return slice(start, stop), slice(start - offset, stop - offset)
