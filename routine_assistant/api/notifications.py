"""Notification inbox and permission endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from routine_assistant.api.dependencies import get_notification_service, get_user_id
from routine_assistant.models.notification import NotificationPermission
from routine_assistant.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


class PermissionUpdate(BaseModel):
    permission: NotificationPermission


@router.get("")
async def list_notifications(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user_id: UUID = Depends(get_user_id),
    service: NotificationService = Depends(get_notification_service),
) -> dict:
    notifications, total = await service.list_notifications(user_id, limit=limit, offset=offset)
    return {
        "items": [n.model_dump(mode="json") for n in notifications],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_notification(
    notification_id: UUID,
    user_id: UUID = Depends(get_user_id),
    service: NotificationService = Depends(get_notification_service),
) -> None:
    if not await service.dismiss_notification(notification_id, user_id):
        raise HTTPException(status_code=404, detail="Notification not found")


@router.get("/permission")
async def get_permission(
    user_id: UUID = Depends(get_user_id),
    service: NotificationService = Depends(get_notification_service),
) -> dict:
    permission = await service.get_permission(user_id)
    return {"permission": permission.value}


@router.put("/permission")
async def update_permission(
    body: PermissionUpdate,
    user_id: UUID = Depends(get_user_id),
    service: NotificationService = Depends(get_notification_service),
) -> dict:
    """Grant or deny notifications. Denied requests stay scheduled until granted."""
    permission = await service.set_permission(user_id, body.permission)
    return {"permission": permission.value}
