"""
Unit Tests for Scheduler Service
================================
"""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, patch

import asyncpg
import pytest

from dynamic_canvas.core.scheduling.service import (
    GroupNotFoundError,
    ScheduleNotFoundError,
    SchedulerService,
    ScheduleValidationError,
    available_months,
    build_render_url,
    is_schedule_due,
    validate_schedule_time,
)
from dynamic_canvas.core.storage.repository import TemplateNotFoundError
from dynamic_canvas.models.schemas import Schedule

from tests.utils.mocks import MockDatabase

NOW = datetime(2026, 3, 15, 9, 30, 45)


def schedule(schedule_id="s1", group_id="g1", minute=30, hour=9, day=15, month=3, year=2026, executed=False):
    return Schedule(
        id=schedule_id, group_id=group_id, year=year, month=month, day=day,
        hour=hour, minute=minute, is_executed=executed,
    )


def schedule_row(s: Schedule, group_name="Group"):
    return {**s.model_dump(), "group_name": group_name}


@pytest.fixture
def db():
    return MockDatabase()


@pytest.fixture
def service(db):
    return SchedulerService(db, interval_seconds=60, clock=lambda: NOW)


class TestDueness:

    def test_same_minute_is_due(self):
        assert is_schedule_due(schedule(minute=30), NOW)

    def test_past_minute_is_due(self):
        assert is_schedule_due(schedule(year=2025, month=12, day=31, hour=23, minute=59), NOW)

    def test_future_minute_is_not_due(self):
        assert not is_schedule_due(schedule(minute=31), NOW)
        assert not is_schedule_due(schedule(month=4, day=1, hour=0, minute=0), NOW)

    def test_executed_schedule_is_never_due(self):
        assert not is_schedule_due(schedule(executed=True), NOW)


class TestValidation:

    def test_valid_time(self):
        validate_schedule_time(2028, 2, 29, 23, 59)

    @pytest.mark.parametrize(
        "fields",
        [
            (2019, 1, 1, 0, 0),
            (2101, 1, 1, 0, 0),
            (2026, 13, 1, 0, 0),
            (2026, 1, 32, 0, 0),
            (2026, 1, 1, 24, 0),
            (2026, 1, 1, 0, 60),
            (2026, 2, 30, 0, 0),
            (2027, 2, 29, 12, 0),
        ],
    )
    def test_invalid_times(self, fields):
        with pytest.raises(ScheduleValidationError):
            validate_schedule_time(*fields)


def test_available_months_starts_at_current_month():
    months = available_months(datetime(2026, 10, 18))
    assert [m["value"] for m in months] == [10, 11, 12]
    assert months[0] == {"value": 10, "label": "October", "year": 2026}


def test_build_render_url():
    url = build_render_url("https://canvas.example.com/", "t1", ["title", "hero image"])
    assert url == "https://canvas.example.com/api/canvas/render/t1?title=REPLACE_ME&hero%20image=REPLACE_ME"
    assert build_render_url("http://x", "t2", []) == "http://x/api/canvas/render/t2"


class TestScheduledActivation:

    @pytest.mark.asyncio
    async def test_due_schedules_run_in_chronological_order(self, service, db):
        later = schedule("late", "g2", minute=29)
        earlier = schedule("early", "g1", minute=10)
        future = schedule("future", "g3", minute=45)
        db.conn.fetch.return_value = [schedule_row(later), schedule_row(future), schedule_row(earlier)]

        executed = await service.check_scheduled_activations()

        assert executed == 2
        activations = [
            call.args[1] for call in db.conn.execute.call_args_list
            if call.args[0].startswith("UPDATE template_groups SET is_active = TRUE")
        ]
        assert activations == ["g1", "g2"]
        assert db.conn.transactions == 2

    @pytest.mark.asyncio
    async def test_execution_deactivates_then_activates_then_marks(self, service, db):
        await service.execute_schedule(schedule())
        sql = db.conn.executed_sql()
        assert sql[0] == "UPDATE template_groups SET is_active = FALSE WHERE is_active = TRUE"
        assert sql[1] == "UPDATE template_groups SET is_active = TRUE WHERE id = $1"
        assert sql[2].startswith("UPDATE template_schedules SET is_executed = TRUE")

    @pytest.mark.asyncio
    async def test_failed_schedule_does_not_stop_others(self, service, db):
        db.conn.fetch.return_value = [schedule_row(schedule("a", minute=1)), schedule_row(schedule("b", minute=2))]
        with patch.object(service, "execute_schedule", AsyncMock(side_effect=[RuntimeError("db down"), None])) as run:
            executed = await service.check_scheduled_activations()
        assert executed == 1
        assert [call.args[0].id for call in run.call_args_list] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_start_and_stop_loop(self, service):
        with patch.object(service, "check_scheduled_activations", AsyncMock(return_value=0)) as check:
            service.start()
            service.start()
            assert service.is_running
            await asyncio.sleep(0)
            await service.stop()
        assert not service.is_running
        check.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_loop_survives_check_errors(self, db):
        service = SchedulerService(db, interval_seconds=60, clock=lambda: NOW)
        with patch.object(service, "check_scheduled_activations", AsyncMock(side_effect=RuntimeError("boom"))):
            service.start()
            await asyncio.sleep(0)
            assert service.is_running
            await service.stop()


class TestGroups:

    @pytest.mark.asyncio
    async def test_activate_unknown_group(self, service, db):
        db.conn.fetchval.return_value = None
        with pytest.raises(GroupNotFoundError):
            await service.activate_group("missing")
        assert db.conn.rollbacks == 1

    @pytest.mark.asyncio
    async def test_activate_group(self, service, db):
        db.conn.fetchval.return_value = 1
        await service.activate_group("g1")
        assert db.conn.executed_sql() == [
            "UPDATE template_groups SET is_active = FALSE WHERE is_active = TRUE",
            "UPDATE template_groups SET is_active = TRUE WHERE id = $1",
        ]

    @pytest.mark.asyncio
    async def test_create_group_dedupes_members(self, service, db):
        group = await service.create_group("Autumn", "", ["t1", "t2", "t1"])
        assert group.template_ids == ["t1", "t2"]
        rows = db.conn.executemany.call_args.args[1]
        assert rows == [(group.id, "t1"), (group.id, "t2")]

    @pytest.mark.asyncio
    async def test_unknown_member_template(self, service, db):
        db.conn.executemany.side_effect = asyncpg.ForeignKeyViolationError("fk")
        with pytest.raises(TemplateNotFoundError):
            await service.create_group("Autumn", "", ["missing"])

    @pytest.mark.asyncio
    async def test_update_missing_group(self, service, db):
        db.conn.execute.return_value = "UPDATE 0"
        with pytest.raises(GroupNotFoundError):
            await service.update_group("missing", "x", "", [])

    @pytest.mark.asyncio
    async def test_list_groups(self, service, db):
        db.conn.fetch.return_value = [
            {"id": "g1", "name": "A", "description": None, "is_active": True, "template_ids": None,
             "created_at": NOW, "updated_at": NOW},
        ]
        groups = await service.list_groups()
        assert groups[0].template_ids == []
        assert groups[0].description == ""
        assert groups[0].is_active

    @pytest.mark.asyncio
    async def test_no_active_group(self, service, db):
        db.conn.fetchrow.return_value = None
        assert await service.get_active_group("http://x") is None

    @pytest.mark.asyncio
    async def test_active_group_render_urls(self, service, db):
        db.conn.fetchrow.return_value = {"id": "g1", "name": "Live", "description": None}
        db.conn.fetch.side_effect = [
            [{"id": "t1", "name": "Menu"}, {"id": "t2", "name": "Promo"}],
            [{"template_id": "t1", "variable_name": "dish"}, {"template_id": "t1", "variable_name": "price"}],
        ]
        group = await service.get_active_group("https://canvas.example.com")
        assert group.template_ids == ["t1", "t2"]
        assert group.templates[0].template_url == (
            "https://canvas.example.com/api/canvas/render/t1?dish=REPLACE_ME&price=REPLACE_ME"
        )
        assert group.templates[1].template_url == "https://canvas.example.com/api/canvas/render/t2"


class TestSchedules:

    @pytest.mark.asyncio
    async def test_create_schedule(self, service, db):
        created = await service.create_schedule("g1", 2026, 12, 24, 18, 0)
        assert created.group_id == "g1"
        assert db.conn.execute.call_args.args[2:] == ("g1", 2026, 12, 24, 18, 0)

    @pytest.mark.asyncio
    async def test_duplicate_slot(self, service, db):
        db.conn.fetchval.return_value = "existing"
        with pytest.raises(ScheduleValidationError):
            await service.create_schedule("g1", 2026, 12, 24, 18, 0)
        db.conn.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_group(self, service, db):
        db.conn.execute.side_effect = asyncpg.ForeignKeyViolationError("fk")
        with pytest.raises(GroupNotFoundError):
            await service.create_schedule("missing", 2026, 12, 24, 18, 0)

    @pytest.mark.asyncio
    async def test_invalid_date_never_reaches_database(self, service, db):
        with pytest.raises(ScheduleValidationError):
            await service.create_schedule("g1", 2026, 2, 30, 0, 0)
        assert db.conn.transactions == 0

    @pytest.mark.asyncio
    async def test_delete_missing_schedule(self, service, db):
        db.conn.execute.return_value = "DELETE 0"
        with pytest.raises(ScheduleNotFoundError):
            await service.delete_schedule("missing")
