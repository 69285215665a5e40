"""
Image Source Loading
====================

Fetches and decodes image references: http(s) URLs, base64 data URIs and
files in the uploads directory. Every failure surfaces as ImageSourceError.
"""

from typing import Optional
from io import BytesIO
from pathlib import Path
import asyncio
import base64
import binascii
import re

import aiohttp
from PIL import Image, UnidentifiedImageError

from dynamic_canvas.config.logging import get_logger
from dynamic_canvas.config.settings import get_settings

logger = get_logger(__name__)

BASE_URL_PLACEHOLDER = "BASE_URL"
UPLOADS_PREFIX = "/uploads/"

_DATA_URI_RE = re.compile(r"^data:image/[\w.+-]+;base64,(?P<payload>.*)$", re.DOTALL)


class ImageSourceError(Exception):
    """Exception raised when an image reference cannot be loaded or decoded."""

    pass


def is_data_uri(reference: str) -> bool:
    return reference.startswith("data:image/")


def decode_image(data: bytes) -> Image.Image:
    """Decode raw bytes into an RGBA image."""
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError, ValueError) as e:
        raise ImageSourceError(f"Cannot decode image: {e}")
    if image.mode != "RGBA":
        image = image.convert("RGBA")
    return image


class ImageLoader:
    """Resolves image references to decoded Pillow images."""

    def __init__(
        self,
        uploads_dir: Optional[Path] = None,
        public_base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_bytes: Optional[int] = None,
        allow_local_files: bool = False,
    ):
        settings = get_settings()
        self.uploads_dir = Path(uploads_dir or settings.uploads_path)
        self.public_base_url = (public_base_url or settings.public_base_url or "").rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.image_fetch_timeout)
        self.max_bytes = max_bytes or settings.image_max_bytes
        self.allow_local_files = allow_local_files
        self.logger = logger.bind(component="image_loader")
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def load(self, reference: str) -> Image.Image:
        """Load and decode an image reference."""
        if not reference:
            raise ImageSourceError("Empty image reference")

        if is_data_uri(reference):
            data = self._decode_data_uri(reference)
        else:
            upload = self.upload_path(reference)
            if upload is not None:
                data = await self._read_file(upload)
            elif reference.startswith(("http://", "https://")):
                data = await self._fetch_remote(reference)
            elif self.allow_local_files:
                data = await self._read_file(Path(reference))
            else:
                raise ImageSourceError(f"Unsupported image reference: {reference[:80]}")

        return await asyncio.to_thread(decode_image, data)

    def upload_path(self, reference: str) -> Optional[Path]:
        """Disk path for references into the uploads directory, else None."""
        name = None
        for prefix in (BASE_URL_PLACEHOLDER, self.public_base_url):
            if prefix and reference.startswith(prefix + UPLOADS_PREFIX):
                name = reference[len(prefix) + len(UPLOADS_PREFIX):]
                break
        if name is None and reference.startswith(UPLOADS_PREFIX):
            name = reference[len(UPLOADS_PREFIX):]
        if name is None:
            return None

        root = self.uploads_dir.resolve()
        path = (root / name).resolve()
        if root not in path.parents:
            raise ImageSourceError(f"Upload reference escapes uploads directory: {name}")
        return path

    def _decode_data_uri(self, reference: str) -> bytes:
        match = _DATA_URI_RE.match(reference)
        if not match:
            raise ImageSourceError("Malformed data URI")
        try:
            data = base64.b64decode(match.group("payload"), validate=False)
        except (binascii.Error, ValueError) as e:
            raise ImageSourceError(f"Invalid base64 payload: {e}")
        if len(data) > self.max_bytes:
            raise ImageSourceError(f"Image exceeds {self.max_bytes} bytes")
        return data

    async def _read_file(self, path: Path) -> bytes:
        if not path.is_file():
            raise ImageSourceError(f"Image file not found: {path.name}")
        if path.stat().st_size > self.max_bytes:
            raise ImageSourceError(f"Image exceeds {self.max_bytes} bytes")
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise ImageSourceError(f"Cannot read image file {path.name}: {e}")

    async def _fetch_remote(self, url: str) -> bytes:
        session = await self._get_session()
        try:
            async with session.get(url) as response:
                if response.status != 200:
                    raise ImageSourceError(f"Image request returned {response.status}")
                if response.content_length and response.content_length > self.max_bytes:
                    raise ImageSourceError(f"Image exceeds {self.max_bytes} bytes")

                chunks = []
                total = 0
                async for chunk in response.content.iter_chunked(64 * 1024):
                    total += len(chunk)
                    if total > self.max_bytes:
                        raise ImageSourceError(f"Image exceeds {self.max_bytes} bytes")
                    chunks.append(chunk)
                return b"".join(chunks)

        except aiohttp.ClientError as e:
            raise ImageSourceError(f"Image request failed: {e}")
        except asyncio.TimeoutError:
            raise ImageSourceError(f"Image request timed out: {url}")
