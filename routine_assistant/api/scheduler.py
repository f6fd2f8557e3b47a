"""Background scheduler endpoints: protocol messages and wake triggers."""

from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Body, Depends, Request
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, Field, ValidationError

from routine_assistant.api.dependencies import get_optional_user_id, get_scheduler
from routine_assistant.models.messages import (
    NotificationClickEvent,
    PeriodicSyncEvent,
    PushEvent,
    ScheduleNotificationMessage,
    ShowImmediateMessage,
    SyncEvent,
    scheduler_message_adapter,
)
from routine_assistant.models.notification import NotificationData
from routine_assistant.services.notification_scheduler import (
    CHECK_ROUTINES_TAG,
    NotificationScheduler,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/scheduler", tags=["Scheduler"])


class NotificationClickRequest(BaseModel):
    action: str = ""
    tag: Optional[str] = None
    data: NotificationData = Field(default_factory=NotificationData)


@router.post("/messages")
async def post_message(
    payload: dict = Body(...),
    user_id: UUID | None = Depends(get_optional_user_id),
    scheduler: NotificationScheduler = Depends(get_scheduler),
) -> dict:
    """Deliver one protocol message to the scheduler."""
    try:
        message = scheduler_message_adapter.validate_python(payload)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False, include_context=False))

    if isinstance(message, (ScheduleNotificationMessage, ShowImmediateMessage)):
        if message.payload.user_id is None:
            message.payload.user_id = user_id

    reply = await scheduler.handle_message(message)
    return reply if reply is not None else {"status": "ok"}


@router.post("/push")
async def push(
    request: Request,
    user_id: UUID | None = Depends(get_optional_user_id),
    scheduler: NotificationScheduler = Depends(get_scheduler),
) -> dict:
    """Show a pushed notification. The body may be JSON or plain text."""
    raw = await request.body()
    logger.info("push_received", size=len(raw), user_id=str(user_id) if user_id else None)
    await scheduler.handle_event(
        PushEvent(data=raw.decode("utf-8", errors="replace") or None, user_id=user_id)
    )
    return {"status": "ok"}


@router.post("/sync/{tag}")
async def sync(
    tag: str,
    scheduler: NotificationScheduler = Depends(get_scheduler),
) -> dict:
    """Periodic (check-routines) or one-shot background sync."""
    if tag == CHECK_ROUTINES_TAG:
        await scheduler.handle_event(PeriodicSyncEvent(tag=tag))
    else:
        await scheduler.handle_event(SyncEvent(tag=tag))
    return {"status": "ok"}


@router.post("/notifications/click")
async def notification_click(
    body: NotificationClickRequest,
    user_id: UUID | None = Depends(get_optional_user_id),
    scheduler: NotificationScheduler = Depends(get_scheduler),
) -> dict:
    """Hand a notification interaction to the foreground app."""
    result = await scheduler.handle_event(
        NotificationClickEvent(
            user_id=user_id,
            action=body.action,
            tag=body.tag,
            data=body.data,
        )
    )
    return result or {"url": None}
