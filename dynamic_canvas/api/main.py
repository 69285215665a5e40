"""
FastAPI Application
==================

Main FastAPI application serving template management, scheduled group
activation and dynamic PNG rendering.
"""

from contextlib import asynccontextmanager
import uuid
from typing import AsyncGenerator, Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
import uvicorn

from dynamic_canvas.api.routes import canvas, health, scheduler
from dynamic_canvas.config.database import close_databases, db_manager, initialize_databases
from dynamic_canvas.config.logging import get_logger
from dynamic_canvas.config.settings import Settings, get_settings
from dynamic_canvas.core.rendering.fonts import FontService
from dynamic_canvas.core.rendering.image_source import ImageLoader
from dynamic_canvas.core.rendering.renderer import CanvasConfigurationError, CanvasRenderer
from dynamic_canvas.core.scheduling.service import (
    GroupNotFoundError,
    ScheduleNotFoundError,
    SchedulerService,
    ScheduleValidationError,
)
from dynamic_canvas.core.storage.repository import (
    CategoryNotFoundError,
    DuplicateCategoryError,
    TemplateNotFoundError,
    TemplateRepository,
)
from dynamic_canvas.core.storage.uploads import UploadStore
from dynamic_canvas.core.template.parser import TemplateParseError
from dynamic_canvas.models.schemas import ErrorResponse, HealthStatus

logger = get_logger(__name__)

# Exception type -> (status code, error code)
ERROR_STATUS = {
    CanvasConfigurationError: (422, "CANVAS_CONFIGURATION_ERROR"),
    TemplateNotFoundError: (404, "TEMPLATE_NOT_FOUND"),
    CategoryNotFoundError: (404, "CATEGORY_NOT_FOUND"),
    GroupNotFoundError: (404, "GROUP_NOT_FOUND"),
    ScheduleNotFoundError: (404, "SCHEDULE_NOT_FOUND"),
    DuplicateCategoryError: (400, "DUPLICATE_CATEGORY"),
    ScheduleValidationError: (400, "INVALID_SCHEDULE"),
    TemplateParseError: (400, "INVALID_TEMPLATE"),
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info("Starting FastAPI application", environment=settings.environment)

    try:
        await initialize_databases()
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))
        raise RuntimeError(f"Database initialization failed: {e}")

    app.state.db = db_manager
    app.state.renderer = CanvasRenderer(FontService(), ImageLoader())
    app.state.upload_store = UploadStore()

    if db_manager.is_initialized:
        app.state.repository = TemplateRepository(db_manager)
        app.state.scheduler = SchedulerService(db_manager)
        if settings.scheduler_enabled:
            app.state.scheduler.start()
    else:
        logger.warning("Template store unavailable, serving font specimen and health routes only")

    try:
        yield
    finally:
        logger.info("Shutting down FastAPI application")

        scheduler_service = getattr(app.state, "scheduler", None)
        if scheduler_service is not None:
            try:
                await scheduler_service.stop()
            except Exception as e:
                logger.error("Error stopping scheduler", error=str(e))

        try:
            await app.state.renderer.close()
            logger.info("Renderer closed")
        except Exception as e:
            logger.error("Error closing renderer", error=str(e))

        try:
            await close_databases()
        except Exception as e:
            logger.error("Error closing database", error=str(e))


def _error_response(
    request: Request, status_code: int, error: Any, error_code: str, details: Optional[dict] = None
) -> JSONResponse:
    error_response = ErrorResponse(
        error=error,
        error_code=error_code,
        details=details,
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=status_code, content=error_response.model_dump(mode="json"))


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(HTTPException)
    async def custom_http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """HTTP exception handler with structured error response."""
        logger.error(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            request_id=getattr(request.state, "request_id", None),
        )
        return _error_response(request, exc.status_code, exc.detail, str(exc.status_code))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        ]
        logger.warning("Request validation failed", errors=errors, request_id=getattr(request.state, "request_id", None))
        return _error_response(request, 400, "Invalid request", "VALIDATION_ERROR", {"errors": errors})

    async def domain_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        status_code, error_code = next(
            (value for exc_type, value in ERROR_STATUS.items() if isinstance(exc, exc_type)),
            (500, "INTERNAL_ERROR"),
        )
        logger.warning(
            "Request failed",
            error_code=error_code,
            error=str(exc),
            request_id=getattr(request.state, "request_id", None),
        )
        return _error_response(request, status_code, str(exc), error_code)

    for exc_type in ERROR_STATUS:
        app.add_exception_handler(exc_type, domain_exception_handler)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """General exception handler for unexpected errors."""
        logger.error(
            "Unhandled exception",
            exception=str(exc),
            request_id=getattr(request.state, "request_id", None),
            exc_info=True,
        )
        return _error_response(
            request,
            500,
            "Internal server error",
            "INTERNAL_ERROR",
            {"exception": str(exc)} if settings.debug else None,
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory.

    Returns:
        FastAPI application instance
    """
    settings = settings or get_settings()
    app = FastAPI(
        title=settings.app_name,
        description="Render canvas templates with runtime variables to PNG images",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.enable_docs else None,
        redoc_url="/redoc" if settings.enable_docs else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_hosts,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):  # type: ignore
        """Add request ID to all requests."""
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    register_exception_handlers(app, settings)

    app.include_router(canvas.router)
    app.include_router(scheduler.router)
    app.include_router(health.router)
    app.mount("/uploads", StaticFiles(directory=str(settings.uploads_path)), name="uploads")

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check(request: Request) -> HealthStatus:
        """Overall health: database connectivity, scheduler loop and font cache."""
        components = await health.check_system_health(request)
        database_ok = components["database"]["status"] in ("healthy", "disabled")
        scheduler_ok = components["scheduler"]["status"] == "healthy"
        status = "healthy" if database_ok and components["fonts"]["status"] == "healthy" else "unhealthy"
        if status == "healthy" and components["database"]["status"] == "disabled":
            status = "degraded"

        return HealthStatus(
            status=status,
            version=settings.app_version,
            database=components["database"]["status"] == "healthy",
            scheduler=scheduler_ok,
            cached_fonts=components["fonts"].get("cached", 0),
        )

    @app.get("/", tags=["General"])
    async def root() -> dict[str, Any]:
        """Root endpoint with basic API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs_url": "/docs" if settings.enable_docs else None,
            "health_check": "/health",
            "endpoints": {
                "render": "GET /api/canvas/render/{template_id}?variable=value",
                "templates": "GET/POST /api/canvas/templates",
                "import": "POST /api/canvas/templates/import",
                "groups": "GET/POST /api/scheduler/groups",
                "schedules": "POST /api/scheduler/schedules",
            },
        }

    return app


app = create_app()


def run_development_server() -> None:
    """Run development server with auto-reload."""
    settings = get_settings()
    uvicorn.run(
        "dynamic_canvas.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
        log_level=settings.log_level.lower(),
        access_log=True,
    )


if __name__ == "__main__":
    run_development_server()
