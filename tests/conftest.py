"""
Pytest configuration and fixtures
"""

from unittest.mock import MagicMock, Mock

import pytest

from deckmap.config.loader import SettingsLoader
from deckmap.config.schema import default_config
from deckmap.config.store import ConfigStore
from deckmap.controller import DeckmapController
from deckmap.device.gateway import DeviceGateway
from deckmap.platforms.base import Platform
from deckmap.utils.errors import UnsupportedPlatformError


class FakePlatform(Platform):
    """Platform that records requests instead of running anything"""

    def __init__(self, name="windows", supports_automation=True):
        self.name = name
        self.supports_automation = supports_automation
        self.executed = []
        self.launched = []
        self.opened = []
        self.responses = []

    def detect(self):
        return True

    def execute(self, command, args, timeout):
        if not self.supports_automation:
            raise UnsupportedPlatformError(f"{command} is unsupported on this platform")
        self.executed.append((command, list(args), timeout))
        if not self.responses:
            return ""
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def launch_detached(self, parts):
        self.launched.append(list(parts))
        return Mock()

    def open_url(self, url):
        self.opened.append(url)


class FakeGateway(DeviceGateway):
    """In-memory control deck"""

    device_type = "fake"

    def __init__(self, size=72, key_count=12):
        super().__init__(key_count)
        self.size = size
        self.keys = {}
        self.draw_log = []
        self.button_colors = {}
        self.brightness = None
        self.connected = True
        self.closed = False

    @property
    def key_size(self):
        return self.size

    def draw_key(self, index, buffer):
        self.keys[index] = buffer
        self.draw_log.append(index)

    def draw_screen(self, screen_id, image):
        pass

    def set_brightness(self, level):
        self.brightness = level

    def set_button_color(self, button_id, color):
        self.button_colors[button_id] = color

    def is_connected(self):
        return self.connected

    def close(self):
        self.closed = True
        self.connected = False
        return True


class FakeTimer:
    """threading.Timer stand-in fired by hand"""

    created = []

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function(*self.args, **self.kwargs)


class FakeClock:
    """Monotonic clock advanced by hand"""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture(autouse=True)
def no_subprocess_calls(monkeypatch):
    """Prevent actual subprocess calls during testing"""
    mock_popen = Mock()
    mock_popen.returncode = 0
    mock_popen.wait.return_value = 0
    monkeypatch.setattr("subprocess.Popen", Mock(return_value=mock_popen))
    monkeypatch.setattr("subprocess.run", Mock(return_value=Mock(returncode=0, stdout="", stderr="")))


@pytest.fixture
def fake_platform():
    return FakePlatform()


@pytest.fixture
def generic_platform():
    """Platform without automation support"""
    return FakePlatform(name="generic", supports_automation=False)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_timers():
    FakeTimer.created = []
    yield FakeTimer
    FakeTimer.created = []


@pytest.fixture
def store(tmp_path):
    """Keymap store in a temporary directory"""
    config_store = ConfigStore(str(tmp_path / "deckmap"))
    config_store.ensure()
    return config_store


@pytest.fixture
def sample_config():
    """Keymap with a few bound keys on the home profile"""
    config = default_config()
    home = config["profiles"]["home"]
    home[0].update({"label": "Notes", "color": "#112233", "actionType": "command", "value": "notepad.exe"})
    home[1].update({"label": "Docs", "color": "#445566", "actionType": "url", "value": "https://example.com"})
    home[2].update({"label": "Music", "actionType": "app_volume", "value": '"C:\\Apps\\Spotify.exe" --minimized'})
    home[5].update({"label": "Chat", "actionType": "app_volume", "value": "discord"})
    config["profileColors"]["home"] = "#00ff00"
    return config


@pytest.fixture
def mock_deck():
    """Mock Stream Deck device"""
    deck = MagicMock()
    deck.deck_type.return_value = "Stream Deck +"
    deck.key_count.return_value = 8
    deck.dial_count.return_value = 4
    deck.is_touch.return_value = True
    deck.touchscreen_image_format.return_value = {"size": (800, 100)}
    deck.key_image_format.return_value = {
        "size": (120, 120),
        "format": "JPEG",
        "flip": (False, False),
        "rotation": 0,
    }
    deck.connected.return_value = True
    return deck


@pytest.fixture
def make_gateway():
    """Factory for extra in-memory decks"""
    return FakeGateway


@pytest.fixture
def no_fetch():
    """Favicon fetcher that always fails"""

    def _fetch(url):
        raise OSError(f"offline: {url}")

    return _fetch


@pytest.fixture
def controller(tmp_path, fake_platform, fake_timers, clock, no_fetch):
    """Controller wired to fakes, with a fresh keymap directory"""
    settings = SettingsLoader().load(None)
    settings["storage"]["config_dir"] = str(tmp_path / "deckmap")
    deckmap_controller = DeckmapController(
        settings,
        platform=fake_platform,
        timer_factory=fake_timers,
        clock=clock,
        fetch=no_fetch,
    )
    deckmap_controller.ensure_config()
    return deckmap_controller
