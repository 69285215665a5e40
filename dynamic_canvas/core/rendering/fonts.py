"""
Font Resolution
===============

Cache-aside font service. A requested family is served from the local
font cache when present; on a miss the generic system fallback is returned
immediately and the real family is downloaded from the Google Fonts CSS2
API in the background for later renders.
"""

from typing import Dict, Iterable, List, Optional, Tuple, Union
from functools import lru_cache
from pathlib import Path
import asyncio
import re
import threading

import aiohttp
from PIL import ImageFont

from dynamic_canvas.config.logging import get_logger
from dynamic_canvas.config.settings import get_settings

logger = get_logger(__name__)

FontKey = Tuple[str, str]

# Primary family (lower-case) -> (Google Fonts name, generic class)
KNOWN_FAMILIES: Dict[str, Tuple[str, str]] = {
    "montserrat": ("Montserrat", "sans-serif"),
    "playfair display": ("Playfair Display", "serif"),
    "merriweather": ("Merriweather", "serif"),
    "lora": ("Lora", "serif"),
    "raleway": ("Raleway", "sans-serif"),
    "open sans": ("Open Sans", "sans-serif"),
    "roboto": ("Roboto", "sans-serif"),
    "lato": ("Lato", "sans-serif"),
    "poppins": ("Poppins", "sans-serif"),
    "nunito": ("Nunito", "sans-serif"),
    "source sans pro": ("Source Sans Pro", "sans-serif"),
    "bebas neue": ("Bebas Neue", "sans-serif"),
    "oswald": ("Oswald", "sans-serif"),
    "dancing script": ("Dancing Script", "cursive"),
    "pacifico": ("Pacifico", "cursive"),
    "great vibes": ("Great Vibes", "cursive"),
    "satisfy": ("Satisfy", "cursive"),
    "kaushan script": ("Kaushan Script", "cursive"),
    "amatic sc": ("Amatic SC", "cursive"),
    "caveat": ("Caveat", "cursive"),
    "source code pro": ("Source Code Pro", "monospace"),
    "fira code": ("Fira Code", "monospace"),
    "jetbrains mono": ("JetBrains Mono", "monospace"),
    "roboto mono": ("Roboto Mono", "monospace"),
}

# Generic class -> (regular candidates, bold candidates), searched in order
SYSTEM_FALLBACKS: Dict[str, Tuple[List[str], List[str]]] = {
    "sans-serif": (
        ["DejaVuSans.ttf", "LiberationSans-Regular.ttf", "OpenSans-Regular.ttf", "Arial.ttf"],
        ["DejaVuSans-Bold.ttf", "LiberationSans-Bold.ttf", "OpenSans-Bold.ttf", "Arial Bold.ttf"],
    ),
    "serif": (
        ["DejaVuSerif.ttf", "LiberationSerif-Regular.ttf", "Times New Roman.ttf"],
        ["DejaVuSerif-Bold.ttf", "LiberationSerif-Bold.ttf", "Times New Roman Bold.ttf"],
    ),
    "monospace": (
        ["DejaVuSansMono.ttf", "LiberationMono-Regular.ttf", "Courier New.ttf"],
        ["DejaVuSansMono-Bold.ttf", "LiberationMono-Bold.ttf", "Courier New Bold.ttf"],
    ),
    "cursive": (
        ["Comic Sans MS.ttf", "DejaVuSans-Oblique.ttf", "LiberationSans-Italic.ttf"],
        ["Comic Sans MS Bold.ttf", "DejaVuSans-BoldOblique.ttf", "LiberationSans-BoldItalic.ttf"],
    ),
}

_FONT_URL_RE = re.compile(r"url\(([^)]+)\)")

FontType = Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]


class FontFetchError(Exception):
    """Exception raised when a font family cannot be downloaded."""

    pass


def primary_family(font_family: str) -> str:
    """First family of a CSS font-family list, unquoted."""
    first = font_family.split(",")[0].strip()
    return first.strip("'\"").strip()


def classify_family(font_family: str) -> str:
    """Map a requested family string to a generic class."""
    known = KNOWN_FAMILIES.get(primary_family(font_family).lower())
    if known:
        return known[1]

    lower = font_family.lower()
    # "sans-serif" contains "serif"; test it first
    if "sans-serif" in lower or "sans" in lower:
        return "sans-serif"
    if "monospace" in lower or "mono" in lower:
        return "monospace"
    if "cursive" in lower or "script" in lower:
        return "cursive"
    if "serif" in lower:
        return "serif"
    return "sans-serif"


def is_bold(font_weight: Union[str, int, None]) -> bool:
    """Whether a CSS font-weight selects the bold face."""
    if font_weight is None:
        return False
    value = str(font_weight).strip().lower()
    if value in ("bold", "bolder"):
        return True
    try:
        return int(float(value)) >= 600
    except ValueError:
        return False


def pixel_size(font_size: float) -> int:
    return max(1, int(round(font_size)))


@lru_cache(maxsize=256)
def _load_truetype(path: str, size: int) -> ImageFont.FreeTypeFont:
    return ImageFont.truetype(path, size)


@lru_cache(maxsize=128)
def system_fallback_font(generic: str, bold: bool, size: int) -> FontType:
    """
    Fixed system font for a generic class.

    Never raises: when none of the candidates is installed, Pillow's bundled
    default font is used.
    """
    regular, bold_candidates = SYSTEM_FALLBACKS.get(generic, SYSTEM_FALLBACKS["sans-serif"])
    candidates = (bold_candidates + regular) if bold else regular
    for name in candidates:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


def fallback_font(font_family: str, font_weight: Union[str, int, None], font_size: float) -> FontType:
    """Generic fallback for a requested family."""
    return system_fallback_font(classify_family(font_family), is_bold(font_weight), pixel_size(font_size))


class FontService:
    """
    Font cache owned by the hosting process and injected into renderers.

    Lookups are synchronous. A miss returns the generic fallback and starts a
    single background download per (family, weight); concurrent misses for
    the same key share that download.
    """

    def __init__(
        self,
        fonts_dir: Optional[Path] = None,
        css_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        fetch_timeout: Optional[float] = None,
        families: Optional[Dict[str, Tuple[str, str]]] = None,
    ):
        settings = get_settings()
        self.fonts_dir = Path(fonts_dir or settings.fonts_path)
        self.css_url = css_url or settings.google_fonts_css_url
        self.user_agent = user_agent or settings.font_user_agent
        self.fetch_timeout = fetch_timeout or settings.font_fetch_timeout
        self.families = families if families is not None else KNOWN_FAMILIES
        self.logger = logger.bind(component="font_service")

        self._files: Dict[FontKey, Path] = {}
        self._inflight: Dict[FontKey, "asyncio.Task[Path]"] = {}
        self._lock = threading.Lock()
        self._session: Optional[aiohttp.ClientSession] = None

        self.fonts_dir.mkdir(parents=True, exist_ok=True)
        self._scan_fonts_dir()

    def _scan_fonts_dir(self) -> None:
        """Register fonts downloaded by earlier processes."""
        for path in self.fonts_dir.glob("*/*.ttf"):
            name, _, weight = path.stem.rpartition("-")
            if name and weight:
                self._files[(name.replace("_", " "), weight)] = path
        if self._files:
            self.logger.info("Loaded cached fonts", count=len(self._files))

    def cache_key(self, font_family: str, font_weight: Union[str, int, None]) -> Optional[FontKey]:
        """Cache key for a downloadable family, or None when it is unknown."""
        known = self.families.get(primary_family(font_family).lower())
        if not known:
            return None
        return known[0], "700" if is_bold(font_weight) else "400"

    def cached_path(self, key: FontKey) -> Optional[Path]:
        with self._lock:
            return self._files.get(key)

    @property
    def cached_font_count(self) -> int:
        with self._lock:
            return len(self._files)

    @property
    def pending_fetches(self) -> int:
        with self._lock:
            return len(self._inflight)

    def get_font(
        self, font_family: str, font_weight: Union[str, int, None], font_size: float
    ) -> FontType:
        """
        Font for drawing, never blocking.

        Returns the cached family when available, otherwise the generic
        fallback while the family is fetched in the background.
        """
        size = pixel_size(font_size)
        key = self.cache_key(font_family, font_weight)
        if key is None:
            return fallback_font(font_family, font_weight, font_size)

        path = self.cached_path(key)
        if path is not None:
            try:
                return _load_truetype(str(path), size)
            except OSError as e:
                self.logger.warning("Cached font unreadable", font=key[0], path=str(path), error=str(e))
                with self._lock:
                    self._files.pop(key, None)

        self.schedule_fetch(key)
        return fallback_font(font_family, font_weight, font_size)

    def schedule_fetch(self, key: FontKey) -> bool:
        """Start a background download for key unless one exists. Returns True if started."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.debug("No running event loop, font fetch skipped", font=key[0])
            return False

        with self._lock:
            if key in self._files or key in self._inflight:
                return False
            task = loop.create_task(self._fetch_font(key))
            self._inflight[key] = task

        task.add_done_callback(lambda t, k=key: self._on_fetch_done(k, t))
        self.logger.info("Font fetch scheduled", font=key[0], weight=key[1])
        return True

    def _on_fetch_done(self, key: FontKey, task: "asyncio.Task[Path]") -> None:
        with self._lock:
            self._inflight.pop(key, None)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.warning("Background font fetch failed", font=key[0], weight=key[1], error=str(error))

    async def ensure_font(self, font_family: str, font_weight: Union[str, int, None] = "normal") -> Optional[Path]:
        """Await the font file for a family, downloading it if needed."""
        key = self.cache_key(font_family, font_weight)
        if key is None:
            return None
        path = self.cached_path(key)
        if path is not None:
            return path

        self.schedule_fetch(key)
        with self._lock:
            task = self._inflight.get(key)
        if task is not None:
            try:
                await asyncio.shield(task)
            except FontFetchError:
                return None
        return self.cached_path(key)

    async def prefetch(self, fonts: Iterable[Tuple[str, Union[str, int, None]]]) -> int:
        """Download every requested family/weight concurrently. Returns how many are cached."""
        paths = await asyncio.gather(*(self.ensure_font(family, weight) for family, weight in fonts))
        return sum(1 for path in paths if path is not None)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.fetch_timeout)
            self._session = aiohttp.ClientSession(
                timeout=timeout, headers={"User-Agent": self.user_agent}
            )
        return self._session

    async def _fetch_font(self, key: FontKey) -> Path:
        """Download one family/weight and insert it into the cache."""
        family, weight = key
        session = await self._get_session()

        try:
            params = {"family": f"{family}:wght@{weight}", "display": "swap"}
            async with session.get(self.css_url, params=params) as response:
                if response.status != 200:
                    raise FontFetchError(f"CSS request for {family}:{weight} returned {response.status}")
                css_text = await response.text()

            match = _FONT_URL_RE.search(css_text)
            if not match:
                raise FontFetchError(f"No font URL in CSS for {family}:{weight}")
            font_url = match.group(1).strip("'\"")

            async with session.get(font_url) as response:
                if response.status != 200:
                    raise FontFetchError(f"Font download from {font_url} returned {response.status}")
                font_bytes = await response.read()
        except aiohttp.ClientError as e:
            raise FontFetchError(f"Font download failed for {family}:{weight}: {e}")
        except asyncio.TimeoutError:
            raise FontFetchError(f"Font download timed out for {family}:{weight}")

        slug = family.replace(" ", "_")
        font_dir = self.fonts_dir / slug
        font_dir.mkdir(parents=True, exist_ok=True)
        font_path = font_dir / f"{slug}-{weight}.ttf"
        await asyncio.to_thread(font_path.write_bytes, font_bytes)

        try:
            _load_truetype(str(font_path), 16)
        except OSError as e:
            font_path.unlink(missing_ok=True)
            raise FontFetchError(f"Downloaded font for {family}:{weight} is unreadable: {e}")

        with self._lock:
            self._files[key] = font_path

        self.logger.info("Font downloaded", font=family, weight=weight, size=len(font_bytes))
        return font_path

    async def close(self) -> None:
        """Cancel pending downloads and close the HTTP session."""
        with self._lock:
            tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
