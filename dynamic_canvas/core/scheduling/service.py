"""
Scheduler Service
=================

Template groups, their activation schedules and the polling loop that
activates groups when their scheduled minute arrives. Exactly one group is
active at a time.
"""

from typing import Any, Callable, Dict, List, Optional
from datetime import datetime
from urllib.parse import quote
import asyncio
import calendar
import uuid

import asyncpg  # type: ignore[import-untyped]

from dynamic_canvas.config.database import DatabaseManager
from dynamic_canvas.config.logging import get_logger
from dynamic_canvas.config.settings import get_settings
from dynamic_canvas.core.storage.repository import TemplateNotFoundError
from dynamic_canvas.models.schemas import ActiveGroup, ActiveTemplate, Schedule, TemplateGroup

logger = get_logger(__name__)

VARIABLE_PLACEHOLDER = "REPLACE_ME"
MIN_SCHEDULE_YEAR = 2020
MAX_SCHEDULE_YEAR = 2100


class SchedulerError(Exception):
    """Base exception for scheduler operations."""

    pass


class GroupNotFoundError(SchedulerError):
    """Exception raised when a template group id does not exist."""

    pass


class ScheduleNotFoundError(SchedulerError):
    """Exception raised when a schedule id does not exist."""

    pass


class ScheduleValidationError(SchedulerError):
    """Exception raised for invalid schedule dates or duplicate slots."""

    pass


def schedule_key(schedule: Schedule) -> tuple:
    return (schedule.year, schedule.month, schedule.day, schedule.hour, schedule.minute)


def is_schedule_due(schedule: Schedule, now: datetime) -> bool:
    """Whether schedule's minute is at or before now and it has not run yet."""
    if schedule.is_executed:
        return False
    return schedule_key(schedule) <= (now.year, now.month, now.day, now.hour, now.minute)


def validate_schedule_time(year: int, month: int, day: int, hour: int, minute: int) -> None:
    """
    Validate a schedule's wall-clock minute.

    Raises:
        ScheduleValidationError: If any field is out of range or the date does not exist.
    """
    if not MIN_SCHEDULE_YEAR <= year <= MAX_SCHEDULE_YEAR:
        raise ScheduleValidationError(f"Year must be between {MIN_SCHEDULE_YEAR} and {MAX_SCHEDULE_YEAR}")
    if not 1 <= month <= 12:
        raise ScheduleValidationError("Month must be between 1 and 12")
    if not 1 <= day <= 31:
        raise ScheduleValidationError("Day must be between 1 and 31")
    if not 0 <= hour <= 23:
        raise ScheduleValidationError("Hour must be between 0 and 23")
    if not 0 <= minute <= 59:
        raise ScheduleValidationError("Minute must be between 0 and 59")
    try:
        datetime(year, month, day, hour, minute)
    except ValueError:
        raise ScheduleValidationError("Invalid date")


def available_months(now: datetime) -> List[Dict[str, Any]]:
    """Months of the current year from the current month onwards."""
    return [
        {"value": month, "label": calendar.month_name[month], "year": now.year}
        for month in range(now.month, 13)
    ]


def build_render_url(base_url: str, template_id: str, variable_names: List[str]) -> str:
    url = f"{base_url.rstrip('/')}/api/canvas/render/{template_id}"
    if variable_names:
        url += "?" + "&".join(f"{quote(name)}={VARIABLE_PLACEHOLDER}" for name in variable_names)
    return url


def _group_from_row(row: Any) -> TemplateGroup:
    return TemplateGroup(
        id=row["id"],
        name=row["name"],
        description=row["description"] or "",
        is_active=bool(row["is_active"]),
        template_ids=list(row["template_ids"] or []),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _schedule_from_row(row: Any) -> Schedule:
    data = dict(row)
    return Schedule(
        id=data["id"],
        group_id=data["group_id"],
        group_name=data.get("group_name"),
        year=data["year"],
        month=data["month"],
        day=data["day"],
        hour=data["hour"],
        minute=data["minute"],
        is_executed=bool(data.get("is_executed")),
        executed_at=data.get("executed_at"),
    )


class SchedulerService:
    """Template group management and scheduled activation."""

    def __init__(
        self,
        db: DatabaseManager,
        interval_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db = db
        self.interval_seconds = interval_seconds or get_settings().scheduler_interval_seconds
        self.clock = clock
        self.logger: Any = logger.bind(component="scheduler")
        self._task: Optional["asyncio.Task[None]"] = None

    # Polling loop
    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the polling loop on the running event loop."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        self.logger.info("Scheduler started", interval_seconds=self.interval_seconds, now=self.clock().isoformat())

    async def stop(self) -> None:
        """Stop the polling loop."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.logger.info("Scheduler stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.check_scheduled_activations()
            except Exception as e:
                self.logger.error("Scheduled activation check failed", error=str(e))
            await asyncio.sleep(self.interval_seconds)

    async def check_scheduled_activations(self) -> int:
        """Execute every due schedule in chronological order. Returns how many ran."""
        now = self.clock()
        async with self.db.connection() as conn:
            rows = await conn.fetch(
                """
                SELECT ts.*, tg.name AS group_name
                FROM template_schedules ts
                JOIN template_groups tg ON ts.group_id = tg.id
                WHERE ts.is_executed = FALSE
                """
            )

        due = sorted(
            (s for s in (_schedule_from_row(row) for row in rows) if is_schedule_due(s, now)),
            key=schedule_key,
        )
        if due:
            self.logger.info("Schedules due", count=len(due))

        executed = 0
        for schedule in due:
            try:
                await self.execute_schedule(schedule)
                executed += 1
            except Exception as e:
                self.logger.error(
                    "Schedule execution failed", schedule_id=schedule.id, group_id=schedule.group_id, error=str(e)
                )
        return executed

    async def execute_schedule(self, schedule: Schedule) -> None:
        async with self.db.connection() as conn:
            async with conn.transaction():
                await conn.execute("UPDATE template_groups SET is_active = FALSE WHERE is_active = TRUE")
                await conn.execute("UPDATE template_groups SET is_active = TRUE WHERE id = $1", schedule.group_id)
                await conn.execute(
                    "UPDATE template_schedules SET is_executed = TRUE, executed_at = CURRENT_TIMESTAMP WHERE id = $1",
                    schedule.id,
                )
        self.logger.info("Template group activated by schedule", group_id=schedule.group_id, group_name=schedule.group_name)

    # Groups
    async def list_groups(self) -> List[TemplateGroup]:
        async with self.db.connection() as conn:
            rows = await conn.fetch(
                """
                SELECT tg.*,
                       ARRAY_AGG(tgm.template_id) FILTER (WHERE tgm.template_id IS NOT NULL) AS template_ids
                FROM template_groups tg
                LEFT JOIN template_group_members tgm ON tg.id = tgm.group_id
                GROUP BY tg.id
                ORDER BY tg.created_at DESC
                """
            )
        return [_group_from_row(row) for row in rows]

    async def create_group(self, name: str, description: str = "", template_ids: Optional[List[str]] = None) -> TemplateGroup:
        group_id = str(uuid.uuid4())
        template_ids = list(dict.fromkeys(template_ids or []))

        async with self.db.connection() as conn:
            async with conn.transaction():
                await conn.execute(
                    "INSERT INTO template_groups (id, name, description) VALUES ($1, $2, $3)",
                    group_id, name, description,
                )
                await self._write_members(conn, group_id, template_ids)

        self.logger.info("Template group created", group_id=group_id, name=name, templates=len(template_ids))
        return TemplateGroup(id=group_id, name=name, description=description, template_ids=template_ids)

    async def update_group(self, group_id: str, name: str, description: str, template_ids: List[str]) -> None:
        template_ids = list(dict.fromkeys(template_ids))
        async with self.db.connection() as conn:
            async with conn.transaction():
                result = await conn.execute(
                    "UPDATE template_groups SET name = $1, description = $2, updated_at = CURRENT_TIMESTAMP WHERE id = $3",
                    name, description, group_id,
                )
                if result.endswith(" 0"):
                    raise GroupNotFoundError(f"Template group not found: {group_id}")
                await conn.execute("DELETE FROM template_group_members WHERE group_id = $1", group_id)
                await self._write_members(conn, group_id, template_ids)

    async def delete_group(self, group_id: str) -> None:
        async with self.db.connection() as conn:
            result = await conn.execute("DELETE FROM template_groups WHERE id = $1", group_id)
        if result.endswith(" 0"):
            raise GroupNotFoundError(f"Template group not found: {group_id}")

    async def activate_group(self, group_id: str) -> None:
        """Make group_id the single active group."""
        async with self.db.connection() as conn:
            async with conn.transaction():
                exists = await conn.fetchval("SELECT 1 FROM template_groups WHERE id = $1", group_id)
                if not exists:
                    raise GroupNotFoundError(f"Template group not found: {group_id}")
                await conn.execute("UPDATE template_groups SET is_active = FALSE WHERE is_active = TRUE")
                await conn.execute("UPDATE template_groups SET is_active = TRUE WHERE id = $1", group_id)
        self.logger.info("Template group activated", group_id=group_id)

    async def get_active_group(self, base_url: str) -> Optional[ActiveGroup]:
        """Active group with a render URL per member template."""
        async with self.db.connection() as conn:
            group = await conn.fetchrow("SELECT * FROM template_groups WHERE is_active = TRUE LIMIT 1")
            if group is None:
                return None
            members = await conn.fetch(
                """
                SELECT ct.id, ct.name
                FROM template_group_members tgm
                JOIN canvas_templates ct ON tgm.template_id = ct.id
                WHERE tgm.group_id = $1
                ORDER BY ct.name
                """,
                group["id"],
            )
            template_ids = [m["id"] for m in members]
            variable_rows = await conn.fetch(
                "SELECT template_id, variable_name FROM canvas_variables "
                "WHERE template_id = ANY($1::text[]) ORDER BY variable_name",
                template_ids,
            )

        variables: Dict[str, List[str]] = {}
        for row in variable_rows:
            names = variables.setdefault(row["template_id"], [])
            if row["variable_name"] not in names:
                names.append(row["variable_name"])

        return ActiveGroup(
            id=group["id"],
            name=group["name"],
            description=group["description"] or "",
            template_ids=template_ids,
            templates=[
                ActiveTemplate(
                    template_id=m["id"],
                    template_name=m["name"],
                    template_url=build_render_url(base_url, m["id"], variables.get(m["id"], [])),
                )
                for m in members
            ],
        )

    async def _write_members(self, conn: Any, group_id: str, template_ids: List[str]) -> None:
        if not template_ids:
            return
        try:
            await conn.executemany(
                "INSERT INTO template_group_members (group_id, template_id) VALUES ($1, $2)",
                [(group_id, template_id) for template_id in template_ids],
            )
        except asyncpg.ForeignKeyViolationError:
            raise TemplateNotFoundError("Template group references an unknown template")

    # Schedules
    async def list_schedules(self, year: int) -> List[Schedule]:
        async with self.db.connection() as conn:
            rows = await conn.fetch(
                """
                SELECT ts.*, tg.name AS group_name
                FROM template_schedules ts
                JOIN template_groups tg ON ts.group_id = tg.id
                WHERE ts.year = $1
                ORDER BY ts.month, ts.day, ts.hour, ts.minute
                """,
                year,
            )
        return [_schedule_from_row(row) for row in rows]

    async def create_schedule(self, group_id: str, year: int, month: int, day: int, hour: int, minute: int) -> Schedule:
        """
        Schedule group_id for activation at the given minute.

        Raises:
            ScheduleValidationError: Invalid date or the slot is already taken.
            GroupNotFoundError: Unknown group.
        """
        validate_schedule_time(year, month, day, hour, minute)
        schedule_id = str(uuid.uuid4())

        async with self.db.connection() as conn:
            async with conn.transaction():
                existing = await conn.fetchval(
                    "SELECT id FROM template_schedules WHERE year = $1 AND month = $2 AND day = $3 "
                    "AND hour = $4 AND minute = $5",
                    year, month, day, hour, minute,
                )
                if existing:
                    raise ScheduleValidationError("A schedule already exists for this date and time")
                try:
                    await conn.execute(
                        "INSERT INTO template_schedules (id, group_id, year, month, day, hour, minute) "
                        "VALUES ($1, $2, $3, $4, $5, $6, $7)",
                        schedule_id, group_id, year, month, day, hour, minute,
                    )
                except asyncpg.ForeignKeyViolationError:
                    raise GroupNotFoundError(f"Template group not found: {group_id}")

        self.logger.info("Schedule created", schedule_id=schedule_id, group_id=group_id)
        return Schedule(id=schedule_id, group_id=group_id, year=year, month=month, day=day, hour=hour, minute=minute)

    async def delete_schedule(self, schedule_id: str) -> None:
        async with self.db.connection() as conn:
            result = await conn.execute("DELETE FROM template_schedules WHERE id = $1", schedule_id)
        if result.endswith(" 0"):
            raise ScheduleNotFoundError(f"Schedule not found: {schedule_id}")
