"""
Variable Resolver
=================

Binds runtime parameters to element values. A missing or empty runtime
value falls back to the element's own default, then to a placeholder.
"""

from typing import Mapping, Optional, Union

from dynamic_canvas.models.schemas import CanvasElement, ImageData, TextData


def _lookup(element: CanvasElement, params: Mapping[str, str]) -> Optional[str]:
    value = params.get(element.variable_name)
    if value is None or value == "":
        return None
    return str(value)


def resolve_text(element: CanvasElement, params: Mapping[str, str]) -> str:
    """Effective text for a text element; never empty-handed."""
    if not isinstance(element.data, TextData):
        raise TypeError(f"Element {element.id} is not a text element")

    value = _lookup(element, params)
    if value is not None:
        return value
    if element.data.content:
        return element.data.content
    return f"{{{element.variable_name}}}"


def resolve_image_source(element: CanvasElement, params: Mapping[str, str]) -> Optional[str]:
    """
    Effective image reference for an image element.

    Returns None when neither a runtime value nor a default src exists;
    callers draw the "no source" placeholder for that case.
    """
    if not isinstance(element.data, ImageData):
        raise TypeError(f"Element {element.id} is not an image element")

    value = _lookup(element, params)
    if value is not None:
        return value
    return element.data.src or None


def resolve(element: CanvasElement, params: Mapping[str, str]) -> Union[str, None]:
    """Resolve an element's value according to its payload type."""
    if isinstance(element.data, TextData):
        return resolve_text(element, params)
    return resolve_image_source(element, params)
