"""
Test Configuration
==================

Pytest configuration with fixtures for all test types.
Points storage at a temporary directory and provides sample templates,
in-memory collaborators and renderer fixtures.
"""

import os
import shutil
import tempfile
from pathlib import Path

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="dynamic_canvas_test_"))
os.environ["CANVAS_ENVIRONMENT"] = "testing"
os.environ["CANVAS_STORAGE_PATH"] = str(_TEST_ROOT / "storage")
os.environ["CANVAS_UPLOADS_PATH"] = str(_TEST_ROOT / "uploads")
os.environ["CANVAS_FONTS_PATH"] = str(_TEST_ROOT / "fonts")
os.environ["CANVAS_SCHEDULER_ENABLED"] = "false"
os.environ["CANVAS_LOG_LEVEL"] = "DEBUG"
os.environ.pop("CANVAS_DATABASE_URL", None)
os.environ.pop("CANVAS_PUBLIC_BASE_URL", None)

import pytest  # noqa: E402
from typing import Any, Dict, Generator  # noqa: E402

from PIL import Image  # noqa: E402

from dynamic_canvas.config.settings import get_settings  # noqa: E402
from dynamic_canvas.core.rendering.fonts import FontService  # noqa: E402
from dynamic_canvas.core.rendering.renderer import CanvasRenderer  # noqa: E402
from dynamic_canvas.models.schemas import CanvasTemplate  # noqa: E402

from tests.utils.helpers import split_image  # noqa: E402
from tests.utils.mocks import StaticImageLoader  # noqa: E402


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(_TEST_ROOT, ignore_errors=True)


@pytest.fixture(scope="session")
def test_settings():
    """Settings resolved from the testing environment."""
    return get_settings()


@pytest.fixture
def fonts_dir(tmp_path: Path) -> Path:
    path = tmp_path / "fonts"
    path.mkdir()
    return path


@pytest.fixture
def font_service(fonts_dir: Path) -> FontService:
    """Font service with an empty private cache."""
    return FontService(fonts_dir=fonts_dir, fetch_timeout=1.0)


@pytest.fixture
def red_blue_image() -> Image.Image:
    """200x200 source: top half red, bottom half blue."""
    return split_image(200, 200, (255, 0, 0, 255), (0, 0, 255, 255))


@pytest.fixture
def image_loader(red_blue_image: Image.Image) -> StaticImageLoader:
    return StaticImageLoader(
        {
            "red-blue.png": red_blue_image,
            "green.png": Image.new("RGBA", (40, 40), (0, 255, 0, 255)),
            "wide.png": split_image(200, 100, (255, 0, 0, 255), (255, 0, 0, 255)),
        }
    )


@pytest.fixture
def renderer(font_service: FontService, image_loader: StaticImageLoader) -> CanvasRenderer:
    return CanvasRenderer(font_service=font_service, image_loader=image_loader)


@pytest.fixture
def hello_template() -> CanvasTemplate:
    """400x200 canvas with one left-aligned 'Hello' at (10, 10)."""
    return CanvasTemplate.model_validate(
        {
            "width": 400,
            "height": 200,
            "elements": [
                {
                    "id": "greeting",
                    "variableName": "greeting",
                    "x": 10,
                    "y": 10,
                    "data": {"type": "text", "content": "Hello", "fontSize": 20, "textAlign": "left"},
                }
            ],
        }
    )


@pytest.fixture
def cover_template() -> CanvasTemplate:
    """100x50 cover image rect at (10, 10) over a 200x100 canvas."""
    return CanvasTemplate.model_validate(
        {
            "width": 200,
            "height": 100,
            "elements": [
                {
                    "id": "photo",
                    "variableName": "photo",
                    "x": 10,
                    "y": 10,
                    "data": {"type": "image", "src": "red-blue.png", "width": 100, "height": 50, "objectFit": "cover"},
                }
            ],
        }
    )


@pytest.fixture
def sample_template_payload() -> Dict[str, Any]:
    """Stored-style config and elements payload."""
    return {
        "config": {"width": 600, "height": 400, "backgroundImage": None},
        "elements": [
            {
                "id": "title",
                "variableName": "title",
                "x": 20,
                "y": 20,
                "data": {"type": "text", "content": "Summer Sale", "fontSize": 32, "fontFamily": "Montserrat, sans-serif"},
            },
            {
                "id": "hero",
                "variableName": "hero",
                "x": 20,
                "y": 100,
                "data": {"type": "image", "src": "https://example.com/hero.png", "width": 300, "height": 200},
            },
        ],
    }


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Temporary directory for test files."""
    path = Path(tempfile.mkdtemp(prefix="dynamic_canvas_case_"))
    yield path
    shutil.rmtree(path, ignore_errors=True)
