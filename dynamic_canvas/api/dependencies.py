"""
API Dependencies
================

FastAPI dependencies resolving the services created during application
startup. Tests replace them through ``app.dependency_overrides``.
"""

from fastapi import HTTPException, Request

from dynamic_canvas.config.settings import Settings, get_settings
from dynamic_canvas.core.rendering.renderer import CanvasRenderer
from dynamic_canvas.core.scheduling.service import SchedulerService
from dynamic_canvas.core.storage.repository import TemplateRepository
from dynamic_canvas.core.storage.uploads import UploadStore


def _state(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(status_code=503, detail=f"{name.replace('_', ' ').capitalize()} not available")
    return service


def get_current_settings() -> Settings:
    """Dependency to get current settings."""
    return get_settings()


def get_repository(request: Request) -> TemplateRepository:
    return _state(request, "repository")


def get_scheduler(request: Request) -> SchedulerService:
    return _state(request, "scheduler")


def get_renderer(request: Request) -> CanvasRenderer:
    return _state(request, "renderer")


def get_upload_store(request: Request) -> UploadStore:
    return _state(request, "upload_store")


def get_public_base_url(request: Request) -> str:
    """Public origin substituted for the BASE_URL placeholder."""
    configured = get_settings().public_base_url
    if configured:
        return configured.rstrip("/")
    return str(request.base_url).rstrip("/")
