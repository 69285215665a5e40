"""
Unit Tests for Image Source Loading
===================================
"""

from unittest.mock import AsyncMock, patch

import pytest
from PIL import Image

from dynamic_canvas.core.rendering.image_source import (
    ImageLoader,
    ImageSourceError,
    decode_image,
    is_data_uri,
)

from tests.utils.helpers import data_uri, png_bytes

GREEN = (0, 255, 0, 255)


@pytest.fixture
def uploads_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    (path / "green.png").write_bytes(png_bytes(Image.new("RGBA", (8, 6), GREEN)))
    return path


@pytest.fixture
def loader(uploads_dir):
    return ImageLoader(uploads_dir=uploads_dir, public_base_url="https://cdn.example.com/", max_bytes=10_000)


class TestDecode:

    def test_decode_converts_to_rgba(self):
        image = decode_image(png_bytes(Image.new("RGB", (3, 2), (1, 2, 3))))
        assert image.mode == "RGBA"
        assert image.getpixel((0, 0)) == (1, 2, 3, 255)

    def test_decode_rejects_garbage(self):
        with pytest.raises(ImageSourceError):
            decode_image(b"definitely not an image")

    def test_is_data_uri(self):
        assert is_data_uri("data:image/png;base64,AAAA")
        assert not is_data_uri("https://example.com/a.png")


class TestUploadReferences:

    @pytest.mark.parametrize(
        "reference",
        ["BASE_URL/uploads/green.png", "https://cdn.example.com/uploads/green.png", "/uploads/green.png"],
    )
    @pytest.mark.asyncio
    async def test_upload_references_read_from_disk(self, loader, reference):
        image = await loader.load(reference)
        assert image.size == (8, 6)
        assert image.getpixel((0, 0)) == GREEN

    def test_non_upload_reference_has_no_path(self, loader):
        assert loader.upload_path("https://other.example.com/uploads/green.png") is None

    def test_traversal_is_rejected(self, loader):
        with pytest.raises(ImageSourceError):
            loader.upload_path("BASE_URL/uploads/../secret.png")

    @pytest.mark.asyncio
    async def test_missing_upload(self, loader):
        with pytest.raises(ImageSourceError, match="not found"):
            await loader.load("/uploads/missing.png")


class TestDataUris:

    @pytest.mark.asyncio
    async def test_data_uri_decodes(self, loader):
        image = await loader.load(data_uri(Image.new("RGBA", (4, 4), GREEN)))
        assert image.size == (4, 4)

    @pytest.mark.asyncio
    async def test_malformed_data_uri(self, loader):
        with pytest.raises(ImageSourceError):
            await loader.load("data:image/png;charset=utf8,hello")

    @pytest.mark.asyncio
    async def test_data_uri_with_bad_image_bytes(self, loader):
        with pytest.raises(ImageSourceError):
            await loader.load("data:image/png;base64,aGVsbG8gd29ybGQ=")

    @pytest.mark.asyncio
    async def test_size_limit(self, uploads_dir):
        small = ImageLoader(uploads_dir=uploads_dir, max_bytes=10)
        with pytest.raises(ImageSourceError, match="exceeds"):
            await small.load(data_uri(Image.new("RGBA", (64, 64), GREEN)))


class TestDispatch:

    @pytest.mark.asyncio
    async def test_http_references_are_fetched(self, loader):
        payload = png_bytes(Image.new("RGBA", (2, 2), GREEN))
        with patch.object(loader, "_fetch_remote", AsyncMock(return_value=payload)) as fetch:
            image = await loader.load("https://images.example.com/a.png")
        fetch.assert_awaited_once_with("https://images.example.com/a.png")
        assert image.size == (2, 2)

    @pytest.mark.asyncio
    async def test_local_paths_refused_by_default(self, loader, uploads_dir):
        with pytest.raises(ImageSourceError, match="Unsupported"):
            await loader.load(str(uploads_dir / "green.png"))

    @pytest.mark.asyncio
    async def test_local_paths_when_enabled(self, uploads_dir):
        local = ImageLoader(uploads_dir=uploads_dir, allow_local_files=True)
        image = await local.load(str(uploads_dir / "green.png"))
        assert image.size == (8, 6)

    @pytest.mark.asyncio
    async def test_empty_reference(self, loader):
        with pytest.raises(ImageSourceError):
            await loader.load("")

    @pytest.mark.asyncio
    async def test_close_without_session(self, loader):
        await loader.close()
