"""FastAPI dependencies for the caller identity and shared components."""

from uuid import UUID

from fastapi import Header, HTTPException, Request, status
from fastapi.requests import HTTPConnection

from routine_assistant.services.client_hub import ClientHub
from routine_assistant.services.notification_scheduler import NotificationScheduler
from routine_assistant.services.notification_service import NotificationService
from routine_assistant.services.routine_queue import QueueRegistry
from routine_assistant.services.routine_store import RoutineStore


async def get_user_id(x_user_id: str = Header(...)) -> UUID:
    """Identify the caller from the X-User-Id header. No credentials are checked."""
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-Id must be a valid UUID",
        )


async def get_optional_user_id(x_user_id: str | None = Header(default=None)) -> UUID | None:
    if x_user_id is None:
        return None
    return await get_user_id(x_user_id)


def get_routine_store() -> RoutineStore:
    return RoutineStore()


def get_scheduler(request: Request) -> NotificationScheduler:
    return request.app.state.scheduler


def get_queue_registry(request: HTTPConnection) -> QueueRegistry:
    return request.app.state.queues


def get_client_hub(request: HTTPConnection) -> ClientHub:
    return request.app.state.hub


def get_notification_service(request: Request) -> NotificationService:
    return request.app.state.scheduler.notifier
