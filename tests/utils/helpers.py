"""
Test Helpers
============

Image construction and inspection helpers.
"""

import base64
from io import BytesIO
from typing import Iterable, Tuple

from PIL import Image

Color = Tuple[int, int, int, int]

WHITE: Color = (255, 255, 255, 255)


def split_image(width: int, height: int, top: Color, bottom: Color) -> Image.Image:
    """Image whose top half is one color and bottom half another."""
    image = Image.new("RGBA", (width, height), top)
    image.paste(Image.new("RGBA", (width, height - height // 2), bottom), (0, height // 2))
    return image


def png_bytes(image: Image.Image) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def data_uri(image: Image.Image) -> str:
    return "data:image/png;base64," + base64.b64encode(png_bytes(image)).decode("ascii")


def decode_png(data: bytes) -> Image.Image:
    image = Image.open(BytesIO(data))
    image.load()
    return image.convert("RGBA")


def region_has_ink(image: Image.Image, box: Tuple[int, int, int, int], background: Color = WHITE) -> bool:
    """Whether any pixel inside box differs from background."""
    x0, y0, x1, y1 = box
    for y in range(max(0, y0), min(image.height, y1)):
        for x in range(max(0, x0), min(image.width, x1)):
            if image.getpixel((x, y)) != background:
                return True
    return False


def pixels(image: Image.Image, points: Iterable[Tuple[int, int]]):
    return [image.getpixel(p) for p in points]
