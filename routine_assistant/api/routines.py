"""Routine definition endpoints and today's executions."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from routine_assistant.api.dependencies import get_routine_store, get_scheduler, get_user_id
from routine_assistant.exceptions import RoutineValidationError
from routine_assistant.models.routine import ExecutionStatus, Routine, RoutineCreate, RoutineUpdate
from routine_assistant.services.alert_planner import RoutineAlertService
from routine_assistant.services.due_service import local_now
from routine_assistant.services.notification_scheduler import NotificationScheduler
from routine_assistant.services.routine_store import RoutineStore

router = APIRouter(tags=["Routines"])


class ActiveToggle(BaseModel):
    active: bool


def _routine_response(routine: Routine) -> dict:
    return routine.model_dump(mode="json")


@router.get("/routines")
async def list_routines(
    active_only: bool = Query(default=False),
    user_id: UUID = Depends(get_user_id),
    store: RoutineStore = Depends(get_routine_store),
) -> dict:
    routines = await store.list_routines(user_id, active_only=active_only)
    return {"items": [_routine_response(r) for r in routines], "total": len(routines)}


@router.post("/routines", status_code=status.HTTP_201_CREATED)
async def create_routine(
    body: RoutineCreate,
    user_id: UUID = Depends(get_user_id),
    store: RoutineStore = Depends(get_routine_store),
) -> dict:
    """Create a routine. Invalid day sets or time windows are rejected by validation."""
    routine = await store.create_routine(user_id, body)
    return _routine_response(routine)


@router.patch("/routines/{routine_id}")
async def update_routine(
    routine_id: UUID,
    body: RoutineUpdate,
    user_id: UUID = Depends(get_user_id),
    store: RoutineStore = Depends(get_routine_store),
) -> dict:
    try:
        routine = await store.update_routine(routine_id, user_id, body)
    except RoutineValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    if routine is None:
        raise HTTPException(status_code=404, detail="Routine not found")
    return _routine_response(routine)


@router.post("/routines/{routine_id}/active")
async def set_routine_active(
    routine_id: UUID,
    body: ActiveToggle,
    user_id: UUID = Depends(get_user_id),
    store: RoutineStore = Depends(get_routine_store),
) -> dict:
    routine = await store.set_active(routine_id, user_id, body.active)
    if routine is None:
        raise HTTPException(status_code=404, detail="Routine not found")
    return _routine_response(routine)


@router.delete("/routines/{routine_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_routine(
    routine_id: UUID,
    user_id: UUID = Depends(get_user_id),
    store: RoutineStore = Depends(get_routine_store),
) -> None:
    if not await store.delete_routine(routine_id, user_id):
        raise HTTPException(status_code=404, detail="Routine not found")


@router.post("/routines/alerts")
async def schedule_alerts(
    user_id: UUID = Depends(get_user_id),
    store: RoutineStore = Depends(get_routine_store),
    scheduler: NotificationScheduler = Depends(get_scheduler),
) -> dict:
    """Ask the background scheduler for today's advance, start and end alerts."""
    service = RoutineAlertService(store, scheduler)
    alerts = await service.schedule_routine_alerts(user_id)
    return {
        "scheduled": [
            {
                "id": a.id,
                "type": a.type.value,
                "scheduled_time": a.scheduled_time.isoformat(),
            }
            for a in alerts
        ]
    }


@router.post("/routines/alerts/test")
async def send_test_alert(
    user_id: UUID = Depends(get_user_id),
    store: RoutineStore = Depends(get_routine_store),
    scheduler: NotificationScheduler = Depends(get_scheduler),
) -> dict:
    alert = await RoutineAlertService(store, scheduler).send_test_notification(user_id)
    return {"id": alert.id}


@router.get("/executions/today")
async def list_today_executions(
    status_filter: Optional[ExecutionStatus] = Query(default=None, alias="status"),
    user_id: UUID = Depends(get_user_id),
    store: RoutineStore = Depends(get_routine_store),
) -> dict:
    today = local_now().date()
    executions = await store.list_executions(user_id, today, status=status_filter)
    return {
        "date": today.isoformat(),
        "items": [e.model_dump(mode="json") for e in executions],
    }
