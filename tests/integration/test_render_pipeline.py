"""
Integration tests for drawing a profile from keymap to key buffers.

Icons come from the real resolver: favicons through a canned fetcher and
application icons through scripted platform answers.
"""

import base64
import io

import numpy as np
import pytest
from PIL import Image

from deckmap.config.loader import SettingsLoader
from deckmap.controller import DeckmapController
from deckmap.utils.colors import hex_to_rgb565, make_solid_buffer
from deckmap.utils.errors import AutomationError

BLUE = 0x001F
GREEN = 0x07E0


def png_bytes(color, size):
    buffer = io.BytesIO()
    Image.new("RGBA", (size, size), color).save(buffer, format="PNG")
    return buffer.getvalue()


def pixel(buffer, x, y, size=72):
    return int(np.frombuffer(buffer, dtype="<u2")[y * size + x])


@pytest.fixture
def fetched():
    return []


@pytest.fixture
def scripted_platform(fake_platform):
    """Answers where.exe and icon extraction for notepad only"""
    notepad_icon = base64.b64encode(png_bytes((0, 255, 0, 255), 16)).decode("ascii")

    def execute(command, args, timeout):
        fake_platform.executed.append((command, list(args), timeout))
        if command == "where.exe":
            if args[0] == "notepad.exe":
                return "C:\\Windows\\System32\\notepad.exe\r\nC:\\Windows\\notepad.exe"
            raise AutomationError("INFO: Could not find files")
        script = base64.b64decode(args[args.index("-EncodedCommand") + 1]).decode("utf-16-le")
        if "ExtractAssociatedIcon" in script and "System32\\notepad.exe" in script:
            return notepad_icon
        raise AutomationError("no icon")

    fake_platform.execute = execute
    return fake_platform


@pytest.fixture
def controller(tmp_path, scripted_platform, fake_timers, clock, fetched, sample_config):
    def fetch(url):
        fetched.append(url)
        return png_bytes((0, 0, 255, 255), 32)

    settings = SettingsLoader().load(None)
    settings["storage"]["config_dir"] = str(tmp_path / "deckmap")
    deckmap_controller = DeckmapController(
        settings, platform=scripted_platform, timer_factory=fake_timers, clock=clock, fetch=fetch
    )
    deckmap_controller.ensure_config()
    deckmap_controller.write_config(sample_config)
    return deckmap_controller


def extraction_calls(platform):
    return [call for call in platform.executed if call[0] == "powershell"]


class TestRenderPipeline:
    def test_fill_and_icons(self, controller, gateway, fetched):
        controller.gateway = gateway
        assert controller.render_profile() is True

        # Key 0: notepad icon over #112233
        key0 = gateway.keys[0]
        assert pixel(key0, 36, 36) == GREEN
        assert pixel(key0, 0, 0) == hex_to_rgb565("#112233")

        # Key 1: favicon from the first source, 41px at a 72px key
        key1 = gateway.keys[1]
        assert pixel(key1, 36, 36) == BLUE
        assert pixel(key1, 15, 36) == BLUE
        assert pixel(key1, 14, 36) == hex_to_rgb565("#445566")
        assert fetched == ["https://www.google.com/s2/favicons?sz=128&domain=example.com"]

        # Keys without a resolvable icon keep their fill
        assert gateway.keys[5] == make_solid_buffer(72, 0)
        assert gateway.keys[11] == make_solid_buffer(72, 0)

    def test_icons_are_memoized(self, controller, gateway, scripted_platform, fetched):
        controller.gateway = gateway
        controller.render_profile()
        calls = len(extraction_calls(scripted_platform))

        controller.render_profile()

        assert len(extraction_calls(scripted_platform)) == calls
        assert len(fetched) == 1

    def test_where_lookup_uses_first_match(self, controller, scripted_platform, gateway):
        controller.gateway = gateway
        controller.render_profile()

        scripts = [
            base64.b64decode(args[args.index("-EncodedCommand") + 1]).decode("utf-16-le")
            for _command, args, _timeout in extraction_calls(scripted_platform)
        ]
        assert any("'C:\\Windows\\System32\\notepad.exe'" in script for script in scripts)

    def test_without_automation_only_favicons_draw(self, controller, gateway, scripted_platform):
        scripted_platform.supports_automation = False
        controller.gateway = gateway

        controller.render_profile()

        assert gateway.keys[0] == make_solid_buffer(72, hex_to_rgb565("#112233"))
        assert pixel(gateway.keys[1], 36, 36) == BLUE
        assert scripted_platform.executed == []

    def test_larger_keys_scale_icons(self, controller, make_gateway):
        big = make_gateway(size=96)
        controller.gateway = big

        controller.render_profile()

        # 96px key: favicon is floor(96 * 0.58) = 55px, centered at offset 20
        assert pixel(big.keys[1], 20, 48, size=96) == BLUE
        assert pixel(big.keys[1], 19, 48, size=96) == hex_to_rgb565("#445566")
