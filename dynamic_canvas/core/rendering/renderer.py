"""
Canvas Renderer
===============

Render driver: validates the canvas, paints the background, dispatches
every element strictly in order and encodes the result as PNG.
"""

from typing import Any, List, Mapping, Optional
import time

from dynamic_canvas.config.logging import get_logger
from dynamic_canvas.core.rendering.compositor import (
    composite_image,
    draw_error_placeholder,
    draw_placeholder,
)
from dynamic_canvas.core.rendering.fonts import FontService, system_fallback_font
from dynamic_canvas.core.rendering.image_source import ImageLoader, ImageSourceError
from dynamic_canvas.core.rendering.resolver import resolve_image_source, resolve_text
from dynamic_canvas.core.rendering.surface import RasterSurface
from dynamic_canvas.core.rendering.text_layout import layout_text, make_measure
from dynamic_canvas.models.schemas import (
    CanvasElement,
    CanvasTemplate,
    ImageData,
    RenderResult,
    TextData,
)

logger = get_logger(__name__)

TEXT_ERROR_MESSAGE = "Error loading text"
TEXT_ERROR_COLOR = "#ff0000"
TEXT_ERROR_SIZE = 16


class CanvasConfigurationError(Exception):
    """Exception raised when a template's canvas cannot be allocated."""

    pass


class CanvasRenderer:
    """Renders canvas templates with runtime parameters to PNG."""

    def __init__(self, font_service: Optional[FontService] = None, image_loader: Optional[ImageLoader] = None):
        self.font_service = font_service or FontService()
        self.image_loader = image_loader or ImageLoader()
        self.logger: Any = logger.bind(component="canvas_renderer")

    async def render(self, template: CanvasTemplate, params: Optional[Mapping[str, str]] = None) -> RenderResult:
        """
        Render template with params.

        Raises:
            CanvasConfigurationError: If width or height is not positive.
        """
        if template.width <= 0 or template.height <= 0:
            raise CanvasConfigurationError(
                f"Canvas dimensions must be positive, got {template.width}x{template.height}"
            )

        params = params or {}
        start_time = time.time()
        surface = RasterSurface(template.width, template.height)
        fallbacks: List[str] = []

        if template.background_image:
            await self._draw_background(surface, template.background_image)

        for element in template.elements:
            if isinstance(element.data, TextData):
                if not self.draw_text_element(surface, element, params):
                    fallbacks.append(element.id)
            elif isinstance(element.data, ImageData):
                if not await self.draw_image_element(surface, element, params):
                    fallbacks.append(element.id)

        png_data = surface.encode()
        render_time = time.time() - start_time

        self.logger.info(
            "Template rendered",
            width=template.width,
            height=template.height,
            elements=len(template.elements),
            fallbacks=len(fallbacks),
            render_time=render_time,
        )

        return RenderResult(
            png_data=png_data,
            width=template.width,
            height=template.height,
            file_size=len(png_data),
            metadata={
                "elements_drawn": len(template.elements),
                "fallbacks": fallbacks,
                "render_time": render_time,
            },
        )

    async def _draw_background(self, surface: RasterSurface, reference: str) -> None:
        try:
            image = await self.image_loader.load(reference)
        except ImageSourceError as e:
            self.logger.warning("Background image skipped", error=str(e))
            return
        surface.draw_background(image)

    def draw_text_element(self, surface: RasterSurface, element: CanvasElement, params: Mapping[str, str]) -> bool:
        """Draw a text element. Returns False when the error line was drawn instead."""
        data = element.data
        try:
            text = resolve_text(element, params)
            font = self.font_service.get_font(data.font_family, data.font_weight, data.font_size)
            measure = make_measure(font, data.letter_spacing)
            for line in layout_text(text, data, element.x, element.y, measure):
                surface.draw_text(
                    line.text, line.x, line.baseline_y, font, data.color,
                    anchor=line.anchor, letter_spacing=data.letter_spacing,
                )
            return True
        except Exception as e:
            self.logger.warning("Text element failed", element_id=element.id, error=str(e))
            error_font = system_fallback_font("sans-serif", False, TEXT_ERROR_SIZE)
            surface.draw_text(TEXT_ERROR_MESSAGE, element.x, element.y, error_font, TEXT_ERROR_COLOR, anchor="la")
            return False

    async def draw_image_element(
        self, surface: RasterSurface, element: CanvasElement, params: Mapping[str, str]
    ) -> bool:
        """Draw an image element. Returns False when a placeholder was drawn instead."""
        data = element.data
        source = resolve_image_source(element, params)
        if source is None:
            draw_placeholder(surface, element.x, element.y, data.width, data.height)
            return False

        try:
            image = await self.image_loader.load(source)
        except ImageSourceError as e:
            self.logger.warning("Image source failed", element_id=element.id, error=str(e))
            draw_error_placeholder(surface, element.x, element.y, data.width, data.height)
            return False

        try:
            composite_image(surface, image, element.x, element.y, data.width, data.height, data.object_fit)
            return True
        except Exception as e:
            self.logger.warning("Image element failed", element_id=element.id, error=str(e))
            draw_error_placeholder(surface, element.x, element.y, data.width, data.height)
            return False

    async def close(self) -> None:
        await self.image_loader.close()
        await self.font_service.close()
