"""
Image Compositor
================

Places a loaded image into its target rect according to ``objectFit`` and
draws the placeholder boxes used when an image has no source or fails to
load.
"""

from typing import NamedTuple, Optional

from PIL import Image

from dynamic_canvas.core.rendering.fonts import system_fallback_font
from dynamic_canvas.core.rendering.surface import RasterSurface
from dynamic_canvas.models.schemas import ObjectFit

PLACEHOLDER_WIDTH = 150
PLACEHOLDER_HEIGHT = 100

PLACEHOLDER_FILL = "#f0f0f0"
PLACEHOLDER_STROKE = "#cccccc"
PLACEHOLDER_LABEL = "Image"
PLACEHOLDER_LABEL_COLOR = "#666666"
PLACEHOLDER_LABEL_SIZE = 14

ERROR_FILL = "#ffebee"
ERROR_STROKE = "#f44336"
ERROR_LABEL = "Failed to load"
ERROR_LABEL_COLOR = "#f44336"
ERROR_LABEL_SIZE = 12


class Placement(NamedTuple):
    """Where and how large to draw an image, and whether to clip to the target."""
    x: float
    y: float
    width: float
    height: float
    clip: bool


def compute_placement(
    x: float,
    y: float,
    natural_width: float,
    natural_height: float,
    target_width: Optional[float],
    target_height: Optional[float],
    object_fit: str,
) -> Placement:
    """
    Fit a natural-size image into the target rect at (x, y).

    Missing target dimensions default to the natural size. Images without a
    usable natural size are placed unscaled at the origin.
    """
    if not natural_width or not natural_height:
        return Placement(x, y, natural_width, natural_height, False)

    tw = target_width or natural_width
    th = target_height or natural_height

    if object_fit == ObjectFit.COVER.value:
        scale = max(tw / natural_width, th / natural_height)
        w, h = natural_width * scale, natural_height * scale
        return Placement(x + (tw - w) / 2, y + (th - h) / 2, w, h, True)

    if object_fit == ObjectFit.CONTAIN.value:
        scale = min(tw / natural_width, th / natural_height)
        w, h = natural_width * scale, natural_height * scale
        return Placement(x + (tw - w) / 2, y + (th - h) / 2, w, h, False)

    return Placement(x, y, tw, th, False)


def composite_image(
    surface: RasterSurface,
    image: Image.Image,
    x: float,
    y: float,
    target_width: Optional[float],
    target_height: Optional[float],
    object_fit: str,
) -> Placement:
    """Draw a loaded image into its target rect."""
    natural_w, natural_h = image.size
    placement = compute_placement(x, y, natural_w, natural_h, target_width, target_height, object_fit)

    if not natural_w or not natural_h:
        surface.draw_image(image, x, y)
        return placement

    if placement.clip:
        with surface.clip(x, y, target_width or natural_w, target_height or natural_h) as box:
            x0, y0, x1, y1 = box
            if x1 > x0 and y1 > y0:
                # Resample only the visible region of the source
                scale = placement.width / natural_w
                source_box = (
                    max(0.0, (x0 - placement.x) / scale),
                    max(0.0, (y0 - placement.y) / scale),
                    min(float(natural_w), (x1 - placement.x) / scale),
                    min(float(natural_h), (y1 - placement.y) / scale),
                )
                surface.draw_image(image, x0, y0, x1 - x0, y1 - y0, source_box=source_box)
    else:
        surface.draw_image(image, placement.x, placement.y, placement.width, placement.height)
    return placement


def _labelled_box(
    surface: RasterSurface,
    x: float,
    y: float,
    width: Optional[float],
    height: Optional[float],
    fill: str,
    stroke: str,
    label: str,
    label_color: str,
    label_size: int,
) -> None:
    w = width or PLACEHOLDER_WIDTH
    h = height or PLACEHOLDER_HEIGHT
    surface.fill_rect(x, y, w, h, fill)
    surface.stroke_rect(x, y, w, h, stroke)
    font = system_fallback_font("sans-serif", False, label_size)
    surface.draw_text(label, x + w / 2, y + h / 2, font, label_color, anchor="mm")


def draw_placeholder(
    surface: RasterSurface, x: float, y: float, width: Optional[float] = None, height: Optional[float] = None
) -> None:
    """Box drawn for an image element with no source."""
    _labelled_box(
        surface, x, y, width, height,
        PLACEHOLDER_FILL, PLACEHOLDER_STROKE,
        PLACEHOLDER_LABEL, PLACEHOLDER_LABEL_COLOR, PLACEHOLDER_LABEL_SIZE,
    )


def draw_error_placeholder(
    surface: RasterSurface, x: float, y: float, width: Optional[float] = None, height: Optional[float] = None
) -> None:
    """Box drawn for an image element whose source failed to load."""
    _labelled_box(
        surface, x, y, width, height,
        ERROR_FILL, ERROR_STROKE,
        ERROR_LABEL, ERROR_LABEL_COLOR, ERROR_LABEL_SIZE,
    )
