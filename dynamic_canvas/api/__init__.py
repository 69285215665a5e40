"""
FastAPI REST Endpoints
======================

REST API for template management and dynamic rendering.

Endpoints:
- /api/canvas: Categories, templates, import and GET /render/{template_id}
- /api/scheduler: Template groups and activation schedules
- /api/v1/health, /health: Health checks
"""
