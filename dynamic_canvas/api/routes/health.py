"""
Health Routes
=============

FastAPI routes for health check endpoints.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request

from dynamic_canvas.config.settings import get_settings

router = APIRouter(prefix="/api/v1", tags=["Health"])


async def check_system_health(request: Request) -> Dict[str, Any]:
    """
    Check health of each component registered on the application.

    Returns:
        Dictionary with health status for each component
    """
    state = request.app.state
    db = getattr(state, "db", None)
    scheduler = getattr(state, "scheduler", None)
    renderer = getattr(state, "renderer", None)

    if db is None or not db.is_configured:
        database = {"status": "disabled"}
    else:
        database = {"status": "healthy" if await db.check_health() else "unhealthy"}

    if scheduler is None:
        scheduler_status = {"status": "disabled"}
    else:
        scheduler_status = {"status": "healthy" if scheduler.is_running else "stopped"}

    if renderer is None:
        fonts = {"status": "unhealthy", "cached": 0, "pending": 0}
    else:
        fonts = {
            "status": "healthy",
            "cached": renderer.font_service.cached_font_count,
            "pending": renderer.font_service.pending_fetches,
        }

    return {"database": database, "scheduler": scheduler_status, "fonts": fonts}


@router.get("/health")
async def health_check() -> Dict[str, Any]:
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": get_settings().app_version,
    }


@router.get("/health/detailed")
async def detailed_health_check(request: Request) -> Dict[str, Any]:
    """Detailed health check endpoint."""
    components = await check_system_health(request)
    all_healthy = all(comp.get("status") in ("healthy", "disabled") for comp in components.values())

    return {
        "status": "healthy" if all_healthy else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": get_settings().app_version,
        "components": components,
    }
