"""
Tests for icon lookup, caching and custom icon storage
"""

import base64
import http.client
import io

import pytest
from PIL import Image

from deckmap.device.icons import (
    APP,
    CUSTOM,
    FAVICON,
    IconCache,
    IconResolver,
    favicon_sources,
    parse_image_data_url,
    save_custom_icon,
)
from deckmap.utils.errors import AutomationError


def png_bytes(size=(16, 16), color=(255, 0, 0, 255)):
    out = io.BytesIO()
    Image.new("RGBA", size, color).save(out, format="PNG")
    return out.getvalue()


def data_url(size=(16, 16), mime="image/png"):
    return f"data:{mime};base64," + base64.b64encode(png_bytes(size)).decode("ascii")


class TestIconCache:
    def test_caches_failures(self):
        cache = IconCache()
        calls = []

        def loader():
            calls.append(1)
            return None

        assert cache.resolve(FAVICON, "example.com", 72, loader) is None
        assert cache.resolve(FAVICON, "example.com", 72, loader) is None
        assert len(calls) == 1

    def test_size_is_part_of_the_key(self):
        cache = IconCache()
        cache.resolve(FAVICON, "example.com", 72, lambda: None)
        cache.resolve(FAVICON, "example.com", 96, lambda: None)
        assert len(cache) == 2

    def test_hits_are_copies(self):
        cache = IconCache()
        cache.resolve(CUSTOM, "icons/a.png", 72, lambda: Image.new("RGBA", (4, 4), (0, 0, 0, 255)))

        first = cache.resolve(CUSTOM, "icons/a.png", 72, lambda: None)
        first.putpixel((0, 0), (255, 255, 255, 255))
        second = cache.resolve(CUSTOM, "icons/a.png", 72, lambda: None)

        assert second.getpixel((0, 0)) == (0, 0, 0, 255)

    def test_clear_by_kind(self):
        cache = IconCache()
        cache.resolve(CUSTOM, "a", 72, lambda: None)
        cache.resolve(APP, "b", 72, lambda: None)

        cache.clear(CUSTOM)

        assert len(cache) == 1
        cache.clear()
        assert len(cache) == 0


class TestFavicons:
    def test_source_order(self):
        sources = favicon_sources("example.com")
        assert sources[0] == "https://www.google.com/s2/favicons?sz=128&domain=example.com"
        assert "domain_url=https%3A%2F%2Fexample.com" in sources[1]
        assert sources[2] == "https://icons.duckduckgo.com/ip3/example.com.ico"
        assert sources[3] == "https://logo.clearbit.com/example.com"

    def test_first_success_wins(self, store, fake_platform):
        fetched = []

        def fetch(url):
            fetched.append(url)
            if len(fetched) < 3:
                raise OSError("unreachable")
            return png_bytes()

        resolver = IconResolver(store, fake_platform, fetch=fetch)
        icon = resolver.resolve({"actionType": "url", "value": "https://Example.com/page"}, 72)

        assert icon.size == (41, 41)
        assert fetched == favicon_sources("example.com")[:3]

        # Memoized per domain and size
        resolver.resolve({"actionType": "url", "value": "https://example.com/other"}, 72)
        assert len(fetched) == 3

    def test_total_failure_is_memoized(self, store, fake_platform, no_fetch):
        calls = []

        def fetch(url):
            calls.append(url)
            return no_fetch(url)

        resolver = IconResolver(store, fake_platform, fetch=fetch)
        shortcut = {"actionType": "url", "value": "https://down.example"}

        assert resolver.resolve(shortcut, 72) is None
        assert resolver.resolve(shortcut, 72) is None
        assert len(calls) == 4

    def test_undecodable_body_tries_next_source(self, store, fake_platform):
        bodies = [b"not an image", png_bytes()]
        resolver = IconResolver(store, fake_platform, fetch=lambda url: bodies.pop(0))

        assert resolver.load_favicon("https://example.com", 72) is not None

    @pytest.mark.parametrize(
        "error",
        [http.client.IncompleteRead(b"partial"), Image.DecompressionBombError("too many pixels")],
        ids=["incomplete-read", "decompression-bomb"],
    )
    def test_any_source_failure_tries_next_source(self, store, fake_platform, error):
        fetched = []

        def fetch(url):
            fetched.append(url)
            if len(fetched) == 1:
                raise error
            return png_bytes()

        resolver = IconResolver(store, fake_platform, fetch=fetch)

        assert resolver.load_favicon("https://example.com", 72).size == (41, 41)
        assert fetched == favicon_sources("example.com")[:2]


class TestCustomIcons:
    def test_custom_icon_has_priority(self, store, fake_platform):
        (store.icons_dir / "a.png").write_bytes(png_bytes((100, 50)))
        fetch_calls = []
        resolver = IconResolver(store, fake_platform, fetch=lambda url: fetch_calls.append(url))

        icon = resolver.resolve({"actionType": "url", "value": "https://example.com", "iconPath": "icons/a.png"}, 72)

        assert icon.size == (44, 22)
        assert fetch_calls == []

    def test_missing_custom_icon_does_not_fall_back(self, store, fake_platform):
        fetch_calls = []
        resolver = IconResolver(store, fake_platform, fetch=lambda url: fetch_calls.append(url))

        icon = resolver.resolve({"actionType": "url", "value": "https://example.com", "iconPath": "icons/gone.png"}, 72)

        assert icon is None
        assert fetch_calls == []


class TestAppIcons:
    def test_unsupported_platform_has_no_app_icons(self, store, generic_platform):
        resolver = IconResolver(store, generic_platform)
        assert resolver.resolve({"actionType": "command", "value": "notepad.exe"}, 72) is None

    def test_extracts_icon_of_resolved_executable(self, store, fake_platform):
        fake_platform.responses = [
            "C:\\Windows\\System32\\notepad.exe\r\nC:\\Windows\\notepad.exe",
            base64.b64encode(png_bytes((32, 32))).decode("ascii"),
        ]
        resolver = IconResolver(store, fake_platform)

        icon = resolver.resolve({"actionType": "app", "value": "notepad.exe --flag"}, 72)

        assert icon.size == (43, 43)
        assert fake_platform.executed[0] == ("where.exe", ["notepad.exe"], 2.5)
        assert fake_platform.executed[1][0] == "powershell"
        assert "-EncodedCommand" in fake_platform.executed[1][1]

    def test_extraction_failure_is_memoized(self, store, fake_platform):
        fake_platform.responses = [AutomationError("boom")]
        resolver = IconResolver(store, fake_platform)

        shortcut = {"actionType": "command", "value": "C:\\Tools\\tool.exe"}
        assert resolver.resolve(shortcut, 72) is None
        assert resolver.resolve(shortcut, 72) is None
        assert len(fake_platform.executed) == 1

    def test_shortcut_files_are_followed(self, store, fake_platform):
        fake_platform.responses = ["C:\\Apps\\app.exe"]
        resolver = IconResolver(store, fake_platform)

        assert resolver.resolve_executable('"C:\\Menu\\App.lnk"') == "C:\\Apps\\app.exe"

    def test_path_is_used_as_is(self, store, fake_platform):
        resolver = IconResolver(store, fake_platform)
        assert resolver.resolve_executable("C:\\Apps\\app.exe -x") == "C:\\Apps\\app.exe"
        assert fake_platform.executed == []

    def test_other_action_types_have_no_icon(self, store, fake_platform):
        resolver = IconResolver(store, fake_platform)
        assert resolver.resolve({"actionType": "key_press", "value": "F5"}, 72) is None


class TestDataUrls:
    def test_parse(self):
        mime, data = parse_image_data_url(data_url())
        assert mime == "image/png"
        assert data == png_bytes()

    @pytest.mark.parametrize(
        "bad",
        ["", "hello", "data:image/gif;base64,AAAA", "data:text/plain;base64,AAAA"],
    )
    def test_rejects(self, bad):
        with pytest.raises(ValueError):
            parse_image_data_url(bad)

    def test_save_custom_icon(self, tmp_path):
        icon_path = save_custom_icon(tmp_path / "icons", "home-0", data_url((256, 128)), now_ms=123)

        assert icon_path == "icons/key-home-0-123.png"
        with Image.open(tmp_path / "icons" / "key-home-0-123.png") as saved:
            assert saved.size == (128, 64)
            assert saved.format == "PNG"

    def test_save_rejects_unreadable_image(self, tmp_path):
        bogus = "data:image/png;base64," + base64.b64encode(b"not a png").decode("ascii")
        with pytest.raises(ValueError):
            save_custom_icon(tmp_path / "icons", "home-0", bogus)
