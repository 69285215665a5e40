"""
Scheduler Routes
================

FastAPI routes for template groups and their activation schedules.
"""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from dynamic_canvas.api.dependencies import get_public_base_url, get_scheduler
from dynamic_canvas.core.scheduling.service import (
    MAX_SCHEDULE_YEAR,
    MIN_SCHEDULE_YEAR,
    SchedulerService,
    available_months,
)
from dynamic_canvas.models.schemas import GroupRequest, ScheduleRequest

router = APIRouter(prefix="/api/scheduler", tags=["Scheduler"])


def _group_name(request: GroupRequest) -> str:
    name = request.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Group name is required")
    return name


@router.get("/groups")
async def list_groups(scheduler: SchedulerService = Depends(get_scheduler)) -> Dict[str, Any]:
    groups = await scheduler.list_groups()
    return {"groups": [g.model_dump(mode="json") for g in groups]}


@router.post("/groups")
async def create_group(request: GroupRequest, scheduler: SchedulerService = Depends(get_scheduler)) -> Dict[str, Any]:
    group = await scheduler.create_group(_group_name(request), request.description, request.template_ids)
    return {"group": group.model_dump(mode="json"), "message": "Template group created successfully"}


@router.put("/groups/{group_id}")
async def update_group(
    group_id: str, request: GroupRequest, scheduler: SchedulerService = Depends(get_scheduler)
) -> Dict[str, Any]:
    await scheduler.update_group(group_id, _group_name(request), request.description, request.template_ids)
    return {"message": "Template group updated successfully"}


@router.delete("/groups/{group_id}")
async def delete_group(group_id: str, scheduler: SchedulerService = Depends(get_scheduler)) -> Dict[str, Any]:
    await scheduler.delete_group(group_id)
    return {"message": "Template group deleted successfully"}


@router.post("/groups/{group_id}/activate")
async def activate_group(group_id: str, scheduler: SchedulerService = Depends(get_scheduler)) -> Dict[str, Any]:
    await scheduler.activate_group(group_id)
    return {"message": "Template group activated successfully"}


@router.get("/active-group")
async def get_active_group(
    scheduler: SchedulerService = Depends(get_scheduler),
    base_url: str = Depends(get_public_base_url),
) -> Dict[str, Any]:
    group = await scheduler.get_active_group(base_url)
    return {"activeGroup": group.model_dump(mode="json") if group else None}


@router.get("/schedules/{year}")
async def list_schedules(year: int, scheduler: SchedulerService = Depends(get_scheduler)) -> Dict[str, Any]:
    if not MIN_SCHEDULE_YEAR <= year <= MAX_SCHEDULE_YEAR:
        raise HTTPException(status_code=400, detail="Invalid year")
    schedules = await scheduler.list_schedules(year)
    return {"schedules": [s.model_dump(mode="json") for s in schedules]}


@router.post("/schedules")
async def create_schedule(
    request: ScheduleRequest, scheduler: SchedulerService = Depends(get_scheduler)
) -> Dict[str, Any]:
    schedule = await scheduler.create_schedule(
        request.group_id, request.year, request.month, request.day, request.hour, request.minute
    )
    return {"schedule": schedule.model_dump(mode="json"), "message": "Schedule created successfully"}


@router.delete("/schedules/{schedule_id}")
async def delete_schedule(schedule_id: str, scheduler: SchedulerService = Depends(get_scheduler)) -> Dict[str, Any]:
    await scheduler.delete_schedule(schedule_id)
    return {"message": "Schedule deleted successfully"}


@router.get("/available-months")
async def get_available_months() -> Dict[str, Any]:
    now = datetime.now()
    return {"months": available_months(now), "currentYear": now.year}
