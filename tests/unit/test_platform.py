"""
Tests for platform detection, launches and PowerShell requests
"""

import base64
import subprocess
from unittest.mock import Mock, patch

import pytest

from deckmap.platforms import GenericPlatform, WindowsPlatform, detect_platform
from deckmap.platforms.powershell import encode_script, quote, run_script, send_keys_script
from deckmap.utils.errors import AutomationError, PlatformError, UnsupportedPlatformError


class TestDetection:
    def test_windows_detected(self):
        with patch("deckmap.platforms.windows.sys.platform", "win32"):
            assert isinstance(detect_platform(), WindowsPlatform)

    def test_fallback_is_generic(self):
        with patch("deckmap.platforms.windows.sys.platform", "linux"):
            platform = detect_platform()
        assert isinstance(platform, GenericPlatform)
        assert not platform.supports_automation


class TestWindowsPlatform:
    def test_execute_returns_stripped_output(self):
        subprocess.run.return_value = Mock(returncode=0, stdout="  hello \n", stderr="")
        assert WindowsPlatform().execute("where.exe", ["x"], 2.5) == "hello"

        args, kwargs = subprocess.run.call_args
        assert args[0] == ["where.exe", "x"]
        assert kwargs["timeout"] == 2.5
        assert kwargs["capture_output"] is True

    def test_execute_tolerates_undecodable_output(self):
        def run(argv, **kwargs):
            stdout = bytes([99, 97, 102, 0x90]).decode(kwargs["encoding"], kwargs["errors"])
            return Mock(returncode=0, stdout=stdout, stderr="")

        subprocess.run.side_effect = run

        assert WindowsPlatform().execute("powershell", [], 4.5) == "caf\ufffd"

    def test_execute_non_zero_exit(self):
        subprocess.run.return_value = Mock(returncode=1, stdout="", stderr="not found\n")
        with pytest.raises(AutomationError, match="not found"):
            WindowsPlatform().execute("where.exe", ["x"], 2.5)

    def test_execute_timeout(self):
        subprocess.run.side_effect = subprocess.TimeoutExpired("powershell", 4.5)
        with pytest.raises(AutomationError, match="timed out after 4.5s"):
            WindowsPlatform().execute("powershell", [], 4.5)

    def test_launch_goes_through_start(self):
        WindowsPlatform().launch_detached(["C:\\Apps\\app.exe", "--flag"])
        assert subprocess.Popen.call_args[0][0] == ["cmd", "/c", "start", "", "C:\\Apps\\app.exe", "--flag"]

    def test_open_url(self):
        WindowsPlatform().open_url("https://example.com")
        assert subprocess.Popen.call_args[0][0] == ["cmd", "/c", "start", "", "https://example.com"]

    def test_launch_failure(self):
        subprocess.Popen.side_effect = OSError("denied")
        with pytest.raises(PlatformError, match="denied"):
            WindowsPlatform().launch_detached(["x"])


class TestGenericPlatform:
    def test_execute_is_refused(self):
        with pytest.raises(UnsupportedPlatformError):
            GenericPlatform().execute("powershell", [], 1)
        subprocess.run.assert_not_called()

    def test_launch_spawns_tokens_directly(self):
        GenericPlatform().launch_detached(["firefox", "--new-window"])
        args, kwargs = subprocess.Popen.call_args
        assert args[0] == ["firefox", "--new-window"]
        assert kwargs["start_new_session"] is True

    def test_open_url_uses_desktop_opener(self):
        with patch("deckmap.platforms.generic.sys.platform", "linux"), patch(
            "deckmap.platforms.generic.shutil.which", return_value="/usr/bin/xdg-open"
        ):
            GenericPlatform().open_url("https://example.com")
        assert subprocess.Popen.call_args[0][0] == ["xdg-open", "https://example.com"]

    def test_open_url_without_opener(self):
        with patch("deckmap.platforms.generic.shutil.which", return_value=None):
            with pytest.raises(UnsupportedPlatformError):
                GenericPlatform().open_url("https://example.com")


class TestPowerShell:
    def test_encode_script_is_utf16le_base64(self):
        assert base64.b64decode(encode_script("Write-Output 'é'")).decode("utf-16-le") == "Write-Output 'é'"

    def test_quote(self):
        assert quote("it's") == "'it''s'"
        assert quote(None) == "''"

    def test_run_script_refuses_without_automation(self, generic_platform):
        with pytest.raises(UnsupportedPlatformError, match="App mixer is only supported on Windows."):
            run_script(generic_platform, "x", purpose="App mixer", timeout=1)
        assert generic_platform.executed == []

    def test_run_script_arguments(self, fake_platform):
        run_script(fake_platform, "Get-Date", purpose="Test", timeout=3, args=["-Target", "x"], sta=True)

        command, args, timeout = fake_platform.executed[0]
        assert command == "powershell"
        assert args[:4] == ["-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass"]
        assert args[4] == "-STA"
        assert args[5] == "-EncodedCommand"
        assert args[-2:] == ["-Target", "x"]
        assert timeout == 3

    def test_send_keys_script(self):
        script = send_keys_script(["a", "{ENTER}", "it's"], 50)
        assert "$keys = @('a', '{ENTER}', 'it''s')" in script
        assert "Start-Sleep -Milliseconds 50" in script
