"""
Raster Canvas Surface
=====================

Thin drawing layer over a Pillow RGBA image. The surface only draws what it
is told to; layout and fitting decisions live in the text layout engine and
the image compositor.
"""

from typing import Callable, List, Optional, Tuple
from contextlib import contextmanager
from io import BytesIO

from PIL import Image, ImageDraw

Box = Tuple[int, int, int, int]

WHITE = (255, 255, 255, 255)

# Anchor points further out than this cannot put ink on any canvas
MAX_TEXT_COORD = 1 << 24


def _px(value: float) -> int:
    return int(round(value))


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


class RasterSurface:
    """Fixed-size RGBA drawing surface, filled opaque white."""

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.image = Image.new("RGBA", (width, height), WHITE)
        self._draw = ImageDraw.Draw(self.image, "RGBA")
        self._clips: List[Box] = []

    @property
    def current_clip(self) -> Optional[Box]:
        return self._clips[-1] if self._clips else None

    def _bounds(self) -> Box:
        return self.current_clip or (0, 0, self.width, self.height)

    @contextmanager
    def clip(self, x: float, y: float, width: float, height: float):
        """Restrict drawing to a rectangle until the block exits. Nested clips intersect."""
        bx0, by0, bx1, by1 = self._bounds()
        box = (
            max(bx0, _px(x)),
            max(by0, _px(y)),
            min(bx1, _px(x + width)),
            min(by1, _px(y + height)),
        )
        self._clips.append(box)
        try:
            yield box
        finally:
            self._clips.pop()

    def _composite(self, layer: Image.Image, x: int, y: int) -> None:
        """Alpha-composite layer at (x, y), cropped to the active bounds."""
        bx0, by0, bx1, by1 = self._bounds()
        x0, y0 = max(x, bx0), max(y, by0)
        x1, y1 = min(x + layer.width, bx1), min(y + layer.height, by1)
        if x1 <= x0 or y1 <= y0:
            return
        piece = layer.crop((x0 - x, y0 - y, x1 - x, y1 - y))
        self.image.alpha_composite(piece, (x0, y0))

    def _render(self, paint: Callable[[ImageDraw.ImageDraw], None]) -> None:
        if self.current_clip is None:
            paint(self._draw)
            return
        layer = Image.new("RGBA", (self.width, self.height), (0, 0, 0, 0))
        paint(ImageDraw.Draw(layer, "RGBA"))
        self._composite(layer, 0, 0)

    def _rect_box(self, x: float, y: float, width: float, height: float, margin: int) -> Optional[Box]:
        """Inclusive pixel box for a rect, pulled in to just outside the canvas edges."""
        x0, y0 = _px(x), _px(y)
        x1, y1 = _px(x + width) - 1, _px(y + height) - 1
        if x1 < x0 or y1 < y0:
            return None
        lo_x, lo_y = -margin - 1, -margin - 1
        hi_x, hi_y = self.width + margin, self.height + margin
        return (_clamp(x0, lo_x, hi_x), _clamp(y0, lo_y, hi_y), _clamp(x1, lo_x, hi_x), _clamp(y1, lo_y, hi_y))

    def fill_rect(self, x: float, y: float, width: float, height: float, color) -> None:
        box = self._rect_box(x, y, width, height, 0)
        if box is None:
            return
        self._render(lambda draw: draw.rectangle(box, fill=color))

    def stroke_rect(self, x: float, y: float, width: float, height: float, color, line_width: int = 1) -> None:
        box = self._rect_box(x, y, width, height, line_width)
        if box is None:
            return
        self._render(lambda draw: draw.rectangle(box, outline=color, width=line_width))

    def draw_text(
        self,
        text: str,
        x: float,
        y: float,
        font,
        color,
        anchor: str = "la",
        letter_spacing: Optional[float] = None,
    ) -> None:
        """Draw one line of text positioned relative to its anchor."""
        if abs(x) > MAX_TEXT_COORD or abs(y) > MAX_TEXT_COORD:
            return
        if not letter_spacing:
            self._render(lambda draw: draw.text((x, y), text, fill=color, font=font, anchor=anchor))
            return

        # Per-glyph placement; start computed from the horizontal anchor
        advances = [font.getlength(ch) for ch in text]
        total = sum(advances) + letter_spacing * max(len(text) - 1, 0)
        if anchor[0] == "m":
            start = x - total / 2
        elif anchor[0] == "r":
            start = x - total
        else:
            start = x
        glyph_anchor = "l" + anchor[1]

        def paint(draw: ImageDraw.ImageDraw) -> None:
            cursor = start
            for ch, advance in zip(text, advances):
                draw.text((cursor, y), ch, fill=color, font=font, anchor=glyph_anchor)
                cursor += advance + letter_spacing

        self._render(paint)

    def draw_image(
        self,
        image: Image.Image,
        x: float,
        y: float,
        width: Optional[float] = None,
        height: Optional[float] = None,
        source_box: Optional[Tuple[float, float, float, float]] = None,
    ) -> None:
        """
        Draw image with its top-left at (x, y), resized when a size is given.

        source_box limits resampling to that region of the source image.
        """
        target_w = max(1, _px(width)) if width is not None else image.width
        target_h = max(1, _px(height)) if height is not None else image.height
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        if source_box is not None or (target_w, target_h) != image.size:
            image = image.resize((target_w, target_h), Image.Resampling.LANCZOS, box=source_box)
        self._composite(image, _px(x), _px(y))

    def draw_background(self, image: Image.Image) -> None:
        """Stretch image over the whole canvas."""
        self.draw_image(image, 0, 0, self.width, self.height)

    def get_pixel(self, x: int, y: int) -> Tuple[int, int, int, int]:
        return self.image.getpixel((x, y))

    def encode(self, format: str = "PNG") -> bytes:
        """Encode the surface as image bytes."""
        buffer = BytesIO()
        self.image.save(buffer, format=format)
        return buffer.getvalue()
