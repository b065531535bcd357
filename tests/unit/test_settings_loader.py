"""
Tests for service settings loading
"""

import pytest

from deckmap.config.loader import DEFAULT_SETTINGS, MAX_SETTINGS_SIZE, SettingsLoader
from deckmap.utils.errors import ConfigurationError


@pytest.fixture
def loader():
    return SettingsLoader()


class TestSettingsLoader:
    def test_defaults_without_file(self, loader):
        assert loader.load(None) == DEFAULT_SETTINGS

    def test_defaults_are_not_shared(self, loader):
        settings = loader.load(None)
        settings["device"]["brightness"] = 1
        assert DEFAULT_SETTINGS["device"]["brightness"] == 100

    def test_merges_sections(self, loader, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("storage:\n  config_dir: /data/deckmap\ndevice:\n  brightness: 40\n")

        settings = loader.load(str(path))

        assert settings["storage"]["config_dir"] == "/data/deckmap"
        assert settings["device"]["brightness"] == 40
        assert settings["device"]["retry_interval"] == 3.0

    def test_empty_file(self, loader, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("")
        assert loader.load(str(path)) == DEFAULT_SETTINGS

    def test_missing_file(self, loader, tmp_path):
        with pytest.raises(FileNotFoundError):
            loader.load(str(tmp_path / "nope.yaml"))

    def test_directory(self, loader, tmp_path):
        with pytest.raises(ConfigurationError, match="directory"):
            loader.load(str(tmp_path))

    def test_invalid_yaml(self, loader, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("device: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            loader.load(str(path))

    def test_too_large(self, loader, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("#" * (MAX_SETTINGS_SIZE + 1))
        with pytest.raises(ConfigurationError, match="too large"):
            loader.load(str(path))

    @pytest.mark.parametrize(
        "content",
        [
            "device:\n  brightness: 150\n",
            "device:\n  brightness: bright\n",
            "device:\n  retry_interval: 0\n",
            "device: 5\n",
            "- a\n- b\n",
        ],
    )
    def test_invalid_values(self, loader, tmp_path, content):
        path = tmp_path / "settings.yaml"
        path.write_text(content)
        with pytest.raises(ConfigurationError):
            loader.load(str(path))

    def test_unexpected_extension_warns(self, loader, tmp_path, caplog):
        path = tmp_path / "settings.txt"
        path.write_text("device:\n  brightness: 50\n")
        assert loader.load(str(path))["device"]["brightness"] == 50
        assert "unexpected extension" in caplog.text
