"""
Canvas Routes
=============

FastAPI routes for categories, templates and dynamic image rendering.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response

from dynamic_canvas.api.dependencies import (
    get_current_settings,
    get_public_base_url,
    get_renderer,
    get_repository,
    get_upload_store,
)
from dynamic_canvas.config.logging import get_logger
from dynamic_canvas.config.settings import Settings
from dynamic_canvas.core.rendering.renderer import CanvasRenderer
from dynamic_canvas.core.storage.repository import TemplateRepository
from dynamic_canvas.core.storage.uploads import UploadStore, replace_base_url
from dynamic_canvas.core.template.parser import parse_template
from dynamic_canvas.models.schemas import (
    CanvasTemplate,
    CategoryRequest,
    TemplateImportRequest,
    TemplateRequest,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api/canvas", tags=["Canvas"])

FONT_SPECIMEN = CanvasTemplate.model_validate(
    {
        "width": 800,
        "height": 600,
        "elements": [
            {
                "id": "title", "variableName": "title", "x": 50, "y": 50,
                "data": {
                    "type": "text", "content": "Montserrat Font Test", "fontSize": 32,
                    "fontFamily": "Montserrat, sans-serif", "fontWeight": "bold", "color": "#2563eb",
                },
            },
            {
                "id": "subtitle", "variableName": "subtitle", "x": 50, "y": 120,
                "data": {
                    "type": "text", "content": "Oswald Condensed", "fontSize": 34,
                    "fontFamily": "Oswald, sans-serif", "color": "#374151",
                },
            },
            {
                "id": "script", "variableName": "script", "x": 50, "y": 180,
                "data": {
                    "type": "text", "content": "Dancing Script Cursive", "fontSize": 28,
                    "fontFamily": "Dancing Script, cursive", "color": "#dc2626",
                },
            },
            {
                "id": "serif", "variableName": "serif", "x": 50, "y": 240,
                "data": {
                    "type": "text", "content": "Playfair Display Serif", "fontSize": 26,
                    "fontFamily": "Playfair Display, serif", "color": "#059669",
                },
            },
            {
                "id": "mono", "variableName": "mono", "x": 50, "y": 300,
                "data": {
                    "type": "text", "content": "Source Code Pro Monospace", "fontSize": 20,
                    "fontFamily": "Source Code Pro, monospace", "color": "#7c3aed",
                },
            },
        ],
    }
)


def _template_payload(template: CanvasTemplate) -> Dict[str, Any]:
    """Split a parsed template into the stored config/elements shape."""
    config: Dict[str, Any] = {"width": template.width, "height": template.height}
    if template.background_image:
        config["backgroundImage"] = template.background_image
    elements: List[Dict[str, Any]] = [
        element.model_dump(mode="json", by_alias=True, exclude_none=True) for element in template.elements
    ]
    return {"config": config, "elements": elements}


# Categories
@router.get("/categories")
async def list_categories(repository: TemplateRepository = Depends(get_repository)) -> Dict[str, Any]:
    categories = await repository.list_categories()
    return {"categories": [c.model_dump(mode="json") for c in categories]}


@router.post("/categories")
async def create_category(
    request: CategoryRequest, repository: TemplateRepository = Depends(get_repository)
) -> Dict[str, Any]:
    category = await repository.create_category(request.name.strip(), request.color)
    return {"success": True, "category": category.model_dump(mode="json")}


@router.put("/categories/{category_id}")
async def update_category(
    category_id: str, request: CategoryRequest, repository: TemplateRepository = Depends(get_repository)
) -> Dict[str, Any]:
    category = await repository.update_category(category_id, request.name.strip(), request.color)
    return {"success": True, "category": category.model_dump(mode="json")}


@router.delete("/categories/{category_id}")
async def delete_category(category_id: str, repository: TemplateRepository = Depends(get_repository)) -> Dict[str, Any]:
    await repository.delete_category(category_id)
    return {"success": True, "message": "Category deleted successfully"}


# Templates
@router.post("/templates")
async def create_template(
    request: TemplateRequest,
    repository: TemplateRepository = Depends(get_repository),
    uploads: UploadStore = Depends(get_upload_store),
) -> Dict[str, Any]:
    config, elements = uploads.externalize(request.config, request.elements)
    template_id = await repository.create_template(request.name, config, elements, request.category_id)
    return {"success": True, "templateId": template_id, "message": "Template saved successfully"}


@router.post("/templates/import")
async def import_template(
    request: TemplateImportRequest,
    repository: TemplateRepository = Depends(get_repository),
    uploads: UploadStore = Depends(get_upload_store),
) -> Dict[str, Any]:
    """Import a JSON or YAML template document."""
    result = await parse_template(request.content, request.format)
    if not result.success or result.template is None:
        logger.warning("Template import rejected", errors=len(result.errors))
        raise HTTPException(status_code=400, detail={"message": "Template document is invalid", "errors": result.errors})

    payload = _template_payload(result.template)
    config, elements = uploads.externalize(payload["config"], payload["elements"])
    name = result.name or "Imported template"
    template_id = await repository.create_template(name, config, elements, request.category_id)

    return {
        "success": True,
        "templateId": template_id,
        "name": name,
        "warnings": result.warnings,
        "message": "Template imported successfully",
    }


@router.get("/templates")
async def list_templates(
    repository: TemplateRepository = Depends(get_repository),
    base_url: str = Depends(get_public_base_url),
) -> Dict[str, Any]:
    templates = await repository.list_templates()
    return {"templates": replace_base_url([t.model_dump(mode="json") for t in templates], base_url)}


@router.get("/templates/{template_id}")
async def get_template(
    template_id: str,
    repository: TemplateRepository = Depends(get_repository),
    base_url: str = Depends(get_public_base_url),
) -> Dict[str, Any]:
    record = await repository.get_template(template_id)
    return replace_base_url(record.model_dump(mode="json"), base_url)


@router.put("/templates/{template_id}")
async def update_template(
    template_id: str,
    request: TemplateRequest,
    repository: TemplateRepository = Depends(get_repository),
    uploads: UploadStore = Depends(get_upload_store),
) -> Dict[str, Any]:
    config, elements = uploads.externalize(request.config, request.elements)
    await repository.update_template(template_id, request.name, config, elements, request.category_id)
    return {"success": True, "message": "Template updated successfully"}


@router.delete("/templates/{template_id}")
async def delete_template(template_id: str, repository: TemplateRepository = Depends(get_repository)) -> Dict[str, Any]:
    await repository.delete_template(template_id)
    return {"success": True, "message": "Template deleted successfully"}


@router.get("/templates/{template_id}/variables")
async def get_template_variables(
    template_id: str, repository: TemplateRepository = Depends(get_repository)
) -> Dict[str, Any]:
    variables = await repository.get_template_variables(template_id)
    return {"variables": [v.model_dump(mode="json") for v in variables]}


# Rendering
@router.get("/render/{template_id}")
async def render_template(
    template_id: str,
    request: Request,
    repository: TemplateRepository = Depends(get_repository),
    renderer: CanvasRenderer = Depends(get_renderer),
    settings: Settings = Depends(get_current_settings),
) -> Response:
    """Render a stored template; query parameters bind template variables."""
    params = dict(request.query_params)
    template = await repository.get_render_template(template_id)
    result = await renderer.render(template, params)

    logger.info(
        "Template image served",
        template_id=template_id,
        params=len(params),
        file_size=result.file_size,
        fallbacks=result.metadata.get("fallbacks"),
    )
    return Response(
        content=result.png_data,
        media_type=result.content_type,
        headers={
            "Cache-Control": f"public, max-age={settings.render_cache_max_age}",
            "X-Content-Type-Options": "nosniff",
        },
    )


@router.get("/test-fonts")
async def test_fonts(request: Request, renderer: CanvasRenderer = Depends(get_renderer)) -> Response:
    """Font specimen render; query parameters override the sample lines."""
    specimen_fonts = [(el.data.font_family, el.data.font_weight) for el in FONT_SPECIMEN.elements]
    available = await renderer.font_service.prefetch(specimen_fonts)
    logger.debug("Specimen fonts ready", available=available, requested=len(specimen_fonts))
    result = await renderer.render(FONT_SPECIMEN, dict(request.query_params))
    return Response(
        content=result.png_data,
        media_type=result.content_type,
        headers={"Cache-Control": "no-cache"},
    )
