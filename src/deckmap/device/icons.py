"""
Icon acquisition for key rendering.

Icons come from three places, tried by priority for each shortcut:

1. a custom image uploaded for the key (``iconPath``),
2. the favicon of a URL shortcut, fetched through a chain of public icon
   services,
3. the icon associated with the executable a command launches (Windows
   only, extracted through PowerShell).

Every lookup is memoized in an :class:`IconCache`, failures included.
"""

import base64
import binascii
import io
import logging
import math
import re
import threading
import time
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from ..actions.command import tokenize_command_line
from ..config.schema import ICONS_SUBDIR, ActionType, is_valid_http_url, sanitize_icon_path
from ..platforms.powershell import extract_icon_script, run_script, shortcut_target_script
from ..utils.errors import AutomationError
from .renderer import scale_to_fit

logger = logging.getLogger(__name__)

FAVICON_TIMEOUT = 2.5
WHERE_TIMEOUT = 2.5
SHORTCUT_TARGET_TIMEOUT = 3.0
ICON_EXTRACT_TIMEOUT = 4.5

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

CUSTOM_ICON_MAX = 128
CUSTOM_ICON_MIMES = {"image/png", "image/jpeg", "image/jpg", "image/webp"}
DATA_URL_RE = re.compile(r"^data:(image/[a-zA-Z0-9.+-]+);base64,(.+)$", re.DOTALL)

CUSTOM = "custom"
FAVICON = "favicon"
APP = "app"

APP_ICON_TYPES = (ActionType.COMMAND, ActionType.APP, ActionType.APP_VOLUME)


def custom_icon_size(key_size: int) -> int:
    return max(24, math.floor(key_size * 0.62))


def favicon_size(key_size: int) -> int:
    return max(20, math.floor(key_size * 0.58))


def app_icon_size(key_size: int) -> int:
    return max(24, math.floor(key_size * 0.61))


def favicon_sources(domain: str) -> list:
    """Icon service URLs for a domain, in the order they are tried."""
    quoted = urllib.parse.quote(domain, safe="")
    return [
        f"https://www.google.com/s2/favicons?sz=128&domain={quoted}",
        f"https://www.google.com/s2/favicons?sz=128&domain_url={urllib.parse.quote('https://' + domain, safe='')}",
        f"https://icons.duckduckgo.com/ip3/{domain}.ico",
        f"https://logo.clearbit.com/{domain}",
    ]


def http_get(url: str, timeout: float = FAVICON_TIMEOUT) -> bytes:
    """
    Fetch a URL and return the response body.

    Raises:
        urllib.error.URLError: On network failure or a non-2xx status
    """
    request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    with urllib.request.urlopen(request, timeout=timeout) as response:
        return response.read()


class IconCache:
    """
    Thread-safe memo of decoded icons.

    Entries are keyed by ``(kind, identity, size)``. A stored ``None`` marks a
    lookup that failed and is returned as a hit, so failing sources are not
    retried until the entry is cleared. Images are copied on the way in and
    on the way out; callers may modify what they get.
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, Hashable, int], Optional[Image.Image]] = {}
        self._lock = threading.Lock()

    def resolve(
        self, kind: str, identity: Hashable, size: int, loader: Callable[[], Optional[Image.Image]]
    ) -> Optional[Image.Image]:
        """Return the cached image for the key, calling ``loader`` on a miss."""
        key = (kind, identity, size)
        with self._lock:
            if key in self._entries:
                cached = self._entries[key]
                return cached.copy() if cached is not None else None

        image = loader()
        with self._lock:
            self._entries[key] = image.copy() if image is not None else None
        return image

    def clear(self, kind: Optional[str] = None) -> None:
        """Drop every entry, or only those of one kind."""
        with self._lock:
            if kind is None:
                self._entries.clear()
            else:
                for key in [k for k in self._entries if k[0] == kind]:
                    del self._entries[key]

    def __len__(self):
        with self._lock:
            return len(self._entries)


class IconResolver:
    """
    Resolves the icon to draw on a key.

    Args:
        store: ConfigStore used to locate custom icons
        platform: Platform used for executable lookup and icon extraction
        cache: Shared icon cache
        fetch: Callable returning the body of a URL (raises on failure)
    """

    def __init__(self, store, platform, cache: Optional[IconCache] = None, fetch: Callable[[str], bytes] = http_get):
        self.store = store
        self.platform = platform
        self.cache = cache if cache is not None else IconCache()
        self.fetch = fetch

    def resolve(self, shortcut: Dict[str, Any], key_size: int) -> Optional[Image.Image]:
        """
        Pick the icon for a shortcut by priority.

        A shortcut with a custom icon never falls back to the other sources.

        Returns:
            RGBA image sized for the key, or None
        """
        action_type = ActionType.parse(shortcut.get("actionType"))
        value = shortcut.get("value") or ""

        if shortcut.get("iconPath"):
            return self.load_custom_icon(shortcut["iconPath"], key_size)
        if action_type is ActionType.URL and is_valid_http_url(value):
            return self.load_favicon(value, key_size)
        if action_type in APP_ICON_TYPES:
            return self.load_app_icon(value, key_size)
        return None

    def load_custom_icon(self, icon_path: str, key_size: int) -> Optional[Image.Image]:
        clean = sanitize_icon_path(icon_path)
        if not clean:
            return None

        def _load():
            absolute = self.store.resolve_icon_path(clean)
            if absolute is None:
                return None
            try:
                with Image.open(absolute) as image:
                    icon = image.convert("RGBA")
            except (OSError, UnidentifiedImageError) as e:
                logger.warning(f"Cannot load custom icon {clean}: {e}")
                return None
            return scale_to_fit(icon, custom_icon_size(key_size), Image.Resampling.BILINEAR)

        return self.cache.resolve(CUSTOM, clean, key_size, _load)

    def load_favicon(self, url: str, key_size: int) -> Optional[Image.Image]:
        """Try each favicon source in order; the first decodable image wins."""
        domain = (urllib.parse.urlparse(url).hostname or "").lower()
        if not domain:
            return None

        def _load():
            for source in favicon_sources(domain):
                try:
                    data = self.fetch(source)
                    with Image.open(io.BytesIO(data)) as image:
                        icon = image.convert("RGBA")
                except Exception as e:
                    logger.debug(f"Favicon source failed for {domain}: {source} ({e})")
                    continue
                logger.debug(f"Favicon for {domain} from {source}")
                return scale_to_fit(icon, favicon_size(key_size), Image.Resampling.BILINEAR)

            logger.info(f"No favicon found for {domain}")
            return None

        return self.cache.resolve(FAVICON, domain, key_size, _load)

    def load_app_icon(self, command: str, key_size: int) -> Optional[Image.Image]:
        if not self.platform.supports_automation:
            return None
        executable = self.resolve_executable(command)
        if not executable:
            return None

        def _load():
            try:
                output = run_script(
                    self.platform,
                    extract_icon_script(executable),
                    purpose="Icon extraction",
                    timeout=ICON_EXTRACT_TIMEOUT,
                )
            except AutomationError as e:
                logger.debug(f"Icon extraction failed for {executable}: {e}")
                return None
            if not output:
                return None
            try:
                with Image.open(io.BytesIO(base64.b64decode(output))) as image:
                    icon = image.convert("RGBA")
            except (binascii.Error, OSError, ValueError, UnidentifiedImageError) as e:
                logger.debug(f"Extracted icon for {executable} is unreadable: {e}")
                return None
            return _fit_app_icon(icon, app_icon_size(key_size))

        return self.cache.resolve(APP, executable.lower(), key_size, _load)

    def resolve_executable(self, command: str) -> str:
        """
        Find the executable a command line launches.

        ``.lnk`` shortcuts are followed to their target and bare program
        names are looked up with ``where.exe``. Lookup failures fall back to
        the first token as written.
        """
        tokens = tokenize_command_line(command)
        if not tokens:
            return ""
        executable = tokens[0]

        if self.platform.supports_automation and executable.lower().endswith(".lnk"):
            try:
                target = run_script(
                    self.platform,
                    shortcut_target_script(executable),
                    purpose="Shortcut resolution",
                    timeout=SHORTCUT_TARGET_TIMEOUT,
                )
            except AutomationError:
                return executable
            if target:
                return target.splitlines()[0].strip()

        if any(ch in executable for ch in ("\\", "/", ":")):
            return executable
        if not self.platform.supports_automation:
            return executable

        try:
            found = self.platform.execute("where.exe", [executable], WHERE_TIMEOUT)
        except AutomationError:
            return executable
        lines = [line.strip() for line in found.splitlines() if line.strip()]
        return lines[0] if lines else executable


def _fit_app_icon(icon: Image.Image, max_size: int) -> Image.Image:
    # Small shell icons are blown up by a whole factor first so they stay crisp
    src_max = max(icon.size)
    if src_max and src_max < max_size:
        factor = max(1, math.ceil(max_size * 0.9 / src_max))
        if factor > 1:
            icon = icon.resize((icon.width * factor, icon.height * factor), Image.Resampling.NEAREST)
    if icon.width > max_size or icon.height > max_size:
        icon = scale_to_fit(icon, max_size, Image.Resampling.NEAREST)
    return icon


def parse_image_data_url(data_url: str) -> Tuple[str, bytes]:
    """
    Decode a ``data:image/<type>;base64,...`` URL.

    Returns:
        Tuple of (mime type, raw bytes)

    Raises:
        ValueError: If the URL is malformed or the image type is not allowed
    """
    match = DATA_URL_RE.match(str(data_url or "").strip())
    if not match:
        raise ValueError("Invalid image format (data URL expected).")

    mime = match.group(1).lower()
    if mime not in CUSTOM_ICON_MIMES:
        raise ValueError("Unsupported image type (png, jpg, webp).")

    try:
        data = base64.b64decode(match.group(2), validate=False)
    except (binascii.Error, ValueError):
        raise ValueError("Invalid image data (base64 expected).")
    return mime, data


def save_custom_icon(icons_dir: Path, name: str, data_url: str, now_ms: Optional[int] = None) -> str:
    """
    Store an uploaded icon as a PNG that fits in 128x128.

    Args:
        icons_dir: Directory for custom icons
        name: Identifying part of the file name (``<profile>-<key>``)
        data_url: Uploaded image as a data URL
        now_ms: Timestamp for the file name, defaults to the current time

    Returns:
        The stored reference, relative to the config directory (``icons/...``)

    Raises:
        ValueError: If the upload is not a supported image
    """
    _mime, data = parse_image_data_url(data_url)
    try:
        with Image.open(io.BytesIO(data)) as image:
            icon = image.convert("RGBA")
    except (OSError, UnidentifiedImageError) as e:
        raise ValueError(f"Unreadable image: {e}")

    icon = scale_to_fit(icon, CUSTOM_ICON_MAX, Image.Resampling.BILINEAR)
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    file_name = f"key-{name}-{stamp}.png"

    icons_dir = Path(icons_dir)
    icons_dir.mkdir(parents=True, exist_ok=True)
    icon.save(icons_dir / file_name, format="PNG")
    logger.info(f"Saved custom icon {file_name}")
    return f"{ICONS_SUBDIR}/{file_name}"
