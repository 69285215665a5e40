"""
Upload Store
============

Moves inline base64 images out of template payloads into the uploads
directory. Stored templates reference uploads as ``BASE_URL/uploads/<file>``;
the placeholder is swapped for the public origin when templates are served.
"""

from typing import Any, Dict, List, Optional, Tuple
from pathlib import Path
import base64
import binascii
import copy
import re
import secrets
import time

from dynamic_canvas.config.logging import get_logger
from dynamic_canvas.config.settings import get_settings
from dynamic_canvas.core.rendering.image_source import BASE_URL_PLACEHOLDER, UPLOADS_PREFIX

logger = get_logger(__name__)

_DATA_URI_RE = re.compile(r"^data:image/(?P<format>[a-zA-Z0-9]+);base64,(?P<payload>.+)$", re.DOTALL)


class UploadError(Exception):
    """Exception raised when an inline image cannot be stored."""

    pass


def replace_base_url(obj: Any, base_url: str) -> Any:
    """Return a copy of obj with every BASE_URL placeholder replaced by base_url."""
    if isinstance(obj, str):
        return obj.replace(BASE_URL_PLACEHOLDER, base_url)
    if isinstance(obj, list):
        return [replace_base_url(item, base_url) for item in obj]
    if isinstance(obj, dict):
        return {key: replace_base_url(value, base_url) for key, value in obj.items()}
    return obj


class UploadStore:
    """Writes decoded data URIs into the uploads directory."""

    def __init__(self, uploads_dir: Optional[Path] = None):
        self.uploads_dir = Path(uploads_dir or get_settings().uploads_path)
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self.logger: Any = logger.bind(component="upload_store")

    def save_data_uri(self, data_uri: str, prefix: str = "image") -> str:
        """Store a base64 data URI and return its ``BASE_URL/uploads/...`` reference."""
        match = _DATA_URI_RE.match(data_uri)
        if not match:
            raise UploadError("Invalid base64 image format")
        try:
            data = base64.b64decode(match.group("payload"), validate=True)
        except (binascii.Error, ValueError) as e:
            raise UploadError(f"Invalid base64 payload: {e}")

        image_format = match.group("format").lower()
        filename = f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(3)}.{image_format}"
        (self.uploads_dir / filename).write_bytes(data)

        self.logger.info("Inline image stored", filename=filename, size=len(data))
        return f"{BASE_URL_PLACEHOLDER}{UPLOADS_PREFIX}{filename}"

    def externalize(
        self, config: Dict[str, Any], elements: List[Dict[str, Any]]
    ) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
        """
        Replace inline images in a template payload with upload references.

        Returns new config and elements; the inputs are not modified. Images
        that fail to decode are left inline.
        """
        config = copy.deepcopy(config)
        elements = copy.deepcopy(elements)

        background = config.get("backgroundImage")
        if isinstance(background, str) and background.startswith("data:image/"):
            try:
                config["backgroundImage"] = self.save_data_uri(background, "background")
            except UploadError as e:
                self.logger.warning("Background image left inline", error=str(e))

        for element in elements:
            data = element.get("data") if isinstance(element, dict) else None
            if not isinstance(data, dict) or data.get("type") != "image":
                continue
            src = data.get("src")
            if isinstance(src, str) and src.startswith("data:image/"):
                try:
                    data["src"] = self.save_data_uri(src, "element")
                except UploadError as e:
                    self.logger.warning("Element image left inline", element_id=element.get("id"), error=str(e))

        return config, elements
