"""Notification presentation: the per-user notification inbox."""

import json
from datetime import datetime, timezone
from typing import Any, Optional, Sequence
from uuid import UUID, uuid4

import structlog

from routine_assistant.config import get_settings
from routine_assistant.database import get_pool
from routine_assistant.exceptions import NotificationPermissionDenied
from routine_assistant.models.notification import (
    Notification,
    NotificationAction,
    NotificationPermission,
)

logger = structlog.get_logger(__name__)

# Owner of notifications not addressed to a specific user.
BROADCAST_USER_ID = UUID(int=0)


def _row_to_notification(row) -> Notification:
    return Notification(
        id=row["id"],
        user_id=None if row["user_id"] == BROADCAST_USER_ID else row["user_id"],
        tag=row["tag"],
        title=row["title"],
        body=row["body"],
        icon=row["icon"],
        actions=[NotificationAction(**a) for a in json.loads(row["actions"])],
        data=json.loads(row["data"]),
        created_at=row["created_at"],
    )


class NotificationService:
    """Shows, lists and dismisses notifications.

    Showing a notification whose tag is already present for the same user
    replaces the existing one, so re-delivery is deduplicated.
    """

    def __init__(self, hub=None):
        self.hub = hub

    async def show_notification(
        self,
        user_id: Optional[UUID],
        title: str,
        body: str = "",
        tag: Optional[str] = None,
        actions: Sequence[NotificationAction] = (),
        data: Optional[dict[str, Any]] = None,
    ) -> Notification:
        """Present a notification.

        Raises:
            NotificationPermissionDenied: if the user denied notifications
        """
        settings = get_settings()
        owner = user_id or BROADCAST_USER_ID
        tag = tag or f"notification-{uuid4()}"

        if user_id is not None:
            permission = await self.get_permission(user_id)
            if permission == NotificationPermission.DENIED:
                logger.warning("notification_permission_denied", user_id=str(user_id), tag=tag)
                raise NotificationPermissionDenied(f"Notifications denied for {user_id}")

        pool = await get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO notifications (id, user_id, tag, title, body, icon, actions, data, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                ON CONFLICT (user_id, tag) DO UPDATE SET
                    title = EXCLUDED.title,
                    body = EXCLUDED.body,
                    icon = EXCLUDED.icon,
                    actions = EXCLUDED.actions,
                    data = EXCLUDED.data,
                    dismissed_at = NULL,
                    created_at = EXCLUDED.created_at
                RETURNING id, user_id, tag, title, body, icon, actions, data, created_at
                """,
                uuid4(),
                owner,
                tag,
                title,
                body,
                settings.notification_icon,
                json.dumps([a.model_dump() for a in actions]),
                json.dumps(data or {}),
                datetime.now(timezone.utc),
            )

        notification = _row_to_notification(row)

        logger.info(
            "notification_shown",
            notification_id=str(notification.id),
            user_id=str(user_id) if user_id else None,
            tag=tag,
        )

        if self.hub is not None and user_id is not None:
            await self.hub.send_to_user(
                user_id, {"type": "NOTIFICATION", "notification": notification.model_dump(mode="json")}
            )

        return notification

    async def list_notifications(
        self, user_id: UUID, limit: int = 20, offset: int = 0
    ) -> tuple[list[Notification], int]:
        """List a user's notifications that have not been dismissed, newest first."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            total = await conn.fetchval(
                "SELECT COUNT(*) FROM notifications WHERE user_id = $1 AND dismissed_at IS NULL",
                user_id,
            )
            rows = await conn.fetch(
                """
                SELECT id, user_id, tag, title, body, icon, actions, data, created_at
                FROM notifications
                WHERE user_id = $1 AND dismissed_at IS NULL
                ORDER BY created_at DESC
                LIMIT $2 OFFSET $3
                """,
                user_id,
                limit,
                offset,
            )

        return [_row_to_notification(row) for row in rows], total or 0

    async def dismiss_notification(self, notification_id: UUID, user_id: UUID) -> bool:
        """Close a notification. Returns False if not found."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE notifications
                SET dismissed_at = $1
                WHERE id = $2 AND user_id = $3 AND dismissed_at IS NULL
                """,
                datetime.now(timezone.utc),
                notification_id,
                user_id,
            )

        if result == "UPDATE 1":
            logger.info(
                "notification_dismissed",
                notification_id=str(notification_id),
                user_id=str(user_id),
            )
            return True
        return False

    async def close_notification(self, user_id: UUID, tag: str) -> bool:
        """Close the notification shown under ``tag``, as after a click."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE notifications
                SET dismissed_at = NOW()
                WHERE user_id = $1 AND tag = $2 AND dismissed_at IS NULL
                """,
                user_id,
                tag,
            )

        return result == "UPDATE 1"

    async def get_permission(self, user_id: UUID) -> NotificationPermission:
        pool = await get_pool()

        async with pool.acquire() as conn:
            value = await conn.fetchval(
                "SELECT permission FROM notification_permissions WHERE user_id = $1",
                user_id,
            )

        return NotificationPermission(value) if value else NotificationPermission.DEFAULT

    async def set_permission(
        self, user_id: UUID, permission: NotificationPermission
    ) -> NotificationPermission:
        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO notification_permissions (user_id, permission, updated_at)
                VALUES ($1, $2, NOW())
                ON CONFLICT (user_id) DO UPDATE SET
                    permission = EXCLUDED.permission,
                    updated_at = EXCLUDED.updated_at
                """,
                user_id,
                permission.value,
            )

        logger.info("notification_permission_updated", user_id=str(user_id), permission=permission.value)
        return permission
