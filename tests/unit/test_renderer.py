"""
Tests for key buffer rendering and icon compositing
"""

from PIL import Image

from deckmap.device.renderer import ButtonRenderer, scale_to_fit
from deckmap.utils.colors import hex_to_rgb565, make_solid_buffer, rgb_to_rgb565


def pixel(buffer, size, x, y):
    offset = (y * size + x) * 2
    return int.from_bytes(buffer[offset : offset + 2], "little")


class TestScaleToFit:
    def test_downscale_keeps_aspect(self):
        image = Image.new("RGBA", (200, 100))
        assert scale_to_fit(image, 50).size == (50, 25)

    def test_upscale(self):
        image = Image.new("RGBA", (16, 16))
        assert scale_to_fit(image, 41).size == (41, 41)

    def test_never_below_one_pixel(self):
        image = Image.new("RGBA", (1000, 1))
        assert scale_to_fit(image, 10).size == (10, 1)


class TestButtonRenderer:
    def test_render_fill(self):
        renderer = ButtonRenderer()
        assert renderer.render_fill("#112233", 72) == make_solid_buffer(72, hex_to_rgb565("#112233"))

    def test_opaque_icon_is_centered(self):
        renderer = ButtonRenderer()
        icon = Image.new("RGBA", (2, 2), (255, 0, 0, 255))

        buffer = renderer.render_with_icon("#000000", icon, 4)

        red = rgb_to_rgb565(255, 0, 0)
        for x, y in [(1, 1), (2, 1), (1, 2), (2, 2)]:
            assert pixel(buffer, 4, x, y) == red
        for x, y in [(0, 0), (3, 3), (0, 2), (3, 1)]:
            assert pixel(buffer, 4, x, y) == 0

    def test_half_alpha_blends(self):
        renderer = ButtonRenderer()
        icon = Image.new("RGBA", (1, 1), (255, 255, 255, 128))

        buffer = renderer.render_with_icon("#000000", icon, 1)

        # 255 * 128/255 + 0 = 128
        assert pixel(buffer, 1, 0, 0) == rgb_to_rgb565(128, 128, 128)

    def test_transparent_pixels_keep_background(self):
        renderer = ButtonRenderer()
        icon = Image.new("RGBA", (4, 4), (255, 255, 255, 0))

        buffer = renderer.render_with_icon("#445566", icon, 4)

        assert buffer == renderer.render_fill("#445566", 4)

    def test_odd_offset_rounds_down(self):
        renderer = ButtonRenderer()
        icon = Image.new("RGBA", (1, 1), (0, 0, 255, 255))

        buffer = renderer.render_with_icon("#000000", icon, 4)

        # (4 - 1) // 2 == 1
        assert pixel(buffer, 4, 1, 1) == rgb_to_rgb565(0, 0, 255)
        assert pixel(buffer, 4, 2, 2) == 0

    def test_oversized_icon_is_clipped(self):
        renderer = ButtonRenderer()
        icon = Image.new("RGBA", (10, 10), (0, 255, 0, 255))

        buffer = renderer.render_with_icon("#000000", icon, 4)

        assert len(buffer) == 4 * 4 * 2
        assert all(pixel(buffer, 4, x, y) == rgb_to_rgb565(0, 255, 0) for x in range(4) for y in range(4))

    def test_rgb_icon_is_treated_as_opaque(self):
        renderer = ButtonRenderer()
        icon = Image.new("RGB", (2, 2), (255, 255, 255))

        buffer = renderer.render_with_icon("#000000", icon, 2)

        assert buffer == make_solid_buffer(2, 0xFFFF)
