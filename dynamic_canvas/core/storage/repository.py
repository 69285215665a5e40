"""
Template Repository
===================

PostgreSQL persistence for categories, templates and their variables.
"""

from typing import Any, Dict, List, Optional
import json
import uuid

import asyncpg  # type: ignore[import-untyped]

from dynamic_canvas.config.database import DatabaseManager
from dynamic_canvas.config.logging import get_logger
from dynamic_canvas.core.template.parser import extract_variables, template_from_payload
from dynamic_canvas.models.schemas import (
    CanvasTemplate,
    Category,
    TemplateRecord,
    TemplateVariable,
)

logger = get_logger(__name__)


class TemplateNotFoundError(Exception):
    """Exception raised when a template id does not exist."""

    pass


class CategoryNotFoundError(Exception):
    """Exception raised when a category id does not exist."""

    pass


class DuplicateCategoryError(Exception):
    """Exception raised when a category name is already taken."""

    pass


def _load_json(raw: Any, default: Any) -> Any:
    if raw is None:
        return default
    if isinstance(raw, (dict, list)):
        return raw
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return default


def _category_from_row(row: Any) -> Category:
    return Category(
        id=row["id"],
        name=row["name"],
        color=row["color"] or "#3B82F6",
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _template_from_row(row: Any) -> TemplateRecord:
    data = dict(row)
    category = None
    if data.get("category_id") and data.get("category_name"):
        category = Category(id=data["category_id"], name=data["category_name"], color=data.get("category_color") or "#3B82F6")
    return TemplateRecord(
        id=data["id"],
        name=data["name"],
        config=_load_json(data.get("config"), {}),
        elements=_load_json(data.get("elements"), []),
        category_id=data.get("category_id"),
        category=category,
        created_at=data.get("created_at"),
        updated_at=data.get("updated_at"),
    )


def _variable_from_row(row: Any) -> TemplateVariable:
    return TemplateVariable(
        variable_name=row["variable_name"],
        element_id=row["element_id"],
        element_type=row["element_type"],
        default_value=row["default_value"],
    )


class TemplateRepository:
    """Category and template store backed by the shared asyncpg pool."""

    def __init__(self, db: DatabaseManager):
        self.db = db
        self.logger: Any = logger.bind(component="template_repository")

    # Categories
    async def list_categories(self) -> List[Category]:
        async with self.db.connection() as conn:
            rows = await conn.fetch("SELECT * FROM categories ORDER BY name ASC")
        return [_category_from_row(row) for row in rows]

    async def create_category(self, name: str, color: str = "#3B82F6") -> Category:
        category_id = str(uuid.uuid4())
        try:
            async with self.db.connection() as conn:
                row = await conn.fetchrow(
                    "INSERT INTO categories (id, name, color) VALUES ($1, $2, $3) RETURNING *",
                    category_id, name, color,
                )
        except asyncpg.UniqueViolationError:
            raise DuplicateCategoryError(f"Category name already exists: {name}")
        self.logger.info("Category created", category_id=category_id, name=name)
        return _category_from_row(row)

    async def update_category(self, category_id: str, name: str, color: str) -> Category:
        try:
            async with self.db.connection() as conn:
                row = await conn.fetchrow(
                    "UPDATE categories SET name = $1, color = $2, updated_at = CURRENT_TIMESTAMP "
                    "WHERE id = $3 RETURNING *",
                    name, color, category_id,
                )
        except asyncpg.UniqueViolationError:
            raise DuplicateCategoryError(f"Category name already exists: {name}")
        if row is None:
            raise CategoryNotFoundError(f"Category not found: {category_id}")
        return _category_from_row(row)

    async def delete_category(self, category_id: str) -> None:
        async with self.db.connection() as conn:
            result = await conn.execute("DELETE FROM categories WHERE id = $1", category_id)
        if result.endswith(" 0"):
            raise CategoryNotFoundError(f"Category not found: {category_id}")

    # Templates
    async def list_templates(self) -> List[TemplateRecord]:
        async with self.db.connection() as conn:
            rows = await conn.fetch(
                """
                SELECT t.id, t.name, t.config, t.elements, t.category_id, t.created_at, t.updated_at,
                       c.name AS category_name, c.color AS category_color
                FROM canvas_templates t
                LEFT JOIN categories c ON t.category_id = c.id
                ORDER BY t.updated_at DESC
                """
            )
        return [_template_from_row(row) for row in rows]

    async def get_template(self, template_id: str) -> TemplateRecord:
        async with self.db.connection() as conn:
            row = await conn.fetchrow(
                """
                SELECT t.*, c.name AS category_name, c.color AS category_color
                FROM canvas_templates t
                LEFT JOIN categories c ON t.category_id = c.id
                WHERE t.id = $1
                """,
                template_id,
            )
            if row is None:
                raise TemplateNotFoundError(f"Template not found: {template_id}")
            variable_rows = await conn.fetch(
                "SELECT * FROM canvas_variables WHERE template_id = $1 ORDER BY id", template_id
            )

        record = _template_from_row(row)
        record.variables = [_variable_from_row(v) for v in variable_rows]
        return record

    async def create_template(
        self,
        name: str,
        config: Dict[str, Any],
        elements: List[Dict[str, Any]],
        category_id: Optional[str] = None,
    ) -> str:
        """
        Store a new template and its variables.

        Raises:
            TemplateParseError: If config and elements do not form a valid template.
        """
        template = template_from_payload(config, elements)
        template_id = str(uuid.uuid4())

        async with self.db.connection() as conn:
            async with conn.transaction():
                await conn.execute(
                    "INSERT INTO canvas_templates (id, name, config, elements, category_id) "
                    "VALUES ($1, $2, $3, $4, $5)",
                    template_id, name, json.dumps(config), json.dumps(elements), category_id or None,
                )
                await self._write_variables(conn, template_id, template)

        self.logger.info("Template created", template_id=template_id, name=name, elements=len(elements))
        return template_id

    async def update_template(
        self,
        template_id: str,
        name: str,
        config: Dict[str, Any],
        elements: List[Dict[str, Any]],
        category_id: Optional[str] = None,
    ) -> None:
        template = template_from_payload(config, elements)

        async with self.db.connection() as conn:
            async with conn.transaction():
                result = await conn.execute(
                    "UPDATE canvas_templates SET name = $1, config = $2, elements = $3, category_id = $4, "
                    "updated_at = CURRENT_TIMESTAMP WHERE id = $5",
                    name, json.dumps(config), json.dumps(elements), category_id or None, template_id,
                )
                if result.endswith(" 0"):
                    raise TemplateNotFoundError(f"Template not found: {template_id}")
                await conn.execute("DELETE FROM canvas_variables WHERE template_id = $1", template_id)
                await self._write_variables(conn, template_id, template)

        self.logger.info("Template updated", template_id=template_id)

    async def delete_template(self, template_id: str) -> None:
        async with self.db.connection() as conn:
            result = await conn.execute("DELETE FROM canvas_templates WHERE id = $1", template_id)
        if result.endswith(" 0"):
            raise TemplateNotFoundError(f"Template not found: {template_id}")
        self.logger.info("Template deleted", template_id=template_id)

    async def get_template_variables(self, template_id: str) -> List[TemplateVariable]:
        async with self.db.connection() as conn:
            rows = await conn.fetch(
                "SELECT * FROM canvas_variables WHERE template_id = $1 ORDER BY variable_name",
                template_id,
            )
        return [_variable_from_row(row) for row in rows]

    async def get_render_template(self, template_id: str) -> CanvasTemplate:
        """Load a stored template ready for rendering."""
        async with self.db.connection() as conn:
            row = await conn.fetchrow(
                "SELECT config, elements FROM canvas_templates WHERE id = $1", template_id
            )
        if row is None:
            raise TemplateNotFoundError(f"Template not found: {template_id}")
        return template_from_payload(_load_json(row["config"], {}), _load_json(row["elements"], []))

    async def _write_variables(self, conn: Any, template_id: str, template: CanvasTemplate) -> None:
        variables = extract_variables(template)
        if not variables:
            return
        await conn.executemany(
            "INSERT INTO canvas_variables (template_id, variable_name, element_id, element_type, default_value) "
            "VALUES ($1, $2, $3, $4, $5)",
            [
                (template_id, v.variable_name, v.element_id, v.element_type.value, v.default_value)
                for v in variables
            ],
        )
