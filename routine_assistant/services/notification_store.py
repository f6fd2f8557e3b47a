"""Persisted store of scheduled notification requests.

A single Redis hash keyed by request id. Every operation is best-effort:
failures are logged and reported through the return value, never raised.
"""

from typing import Optional

import structlog
from pydantic import ValidationError

from routine_assistant.config import get_settings
from routine_assistant.models.notification import ScheduledNotificationRequest
from routine_assistant.services.redis_service import get_redis

logger = structlog.get_logger(__name__)


class NotificationRequestStore:
    """Keyed table of ScheduledNotificationRequest records."""

    def __init__(self, key: Optional[str] = None):
        self.key = key or get_settings().notification_store_key

    async def put(self, request: ScheduledNotificationRequest) -> bool:
        """Insert or overwrite the request stored under its id.

        Returns:
            True if persisted, False otherwise
        """
        client = await get_redis()
        if client is None:
            logger.warning("notification_store_unavailable", op="put", id=request.id)
            return False

        try:
            await client.hset(
                self.key, request.id, request.model_dump_json(by_alias=True)
            )
            return True
        except Exception as e:
            logger.error("notification_store_put_failed", id=request.id, error=str(e))
            return False

    async def delete(self, request_id: str) -> bool:
        """Remove a request. A missing id is not an error."""
        client = await get_redis()
        if client is None:
            logger.warning("notification_store_unavailable", op="delete", id=request_id)
            return False

        try:
            await client.hdel(self.key, request_id)
            return True
        except Exception as e:
            logger.error("notification_store_delete_failed", id=request_id, error=str(e))
            return False

    async def get(self, request_id: str) -> Optional[ScheduledNotificationRequest]:
        client = await get_redis()
        if client is None:
            return None

        try:
            raw = await client.hget(self.key, request_id)
        except Exception as e:
            logger.error("notification_store_get_failed", id=request_id, error=str(e))
            return None

        return self._parse(request_id, raw) if raw else None

    async def get_all(self) -> list[ScheduledNotificationRequest]:
        """All persisted requests, in store enumeration order."""
        client = await get_redis()
        if client is None:
            logger.warning("notification_store_unavailable", op="get_all")
            return []

        try:
            rows = await client.hgetall(self.key)
        except Exception as e:
            logger.error("notification_store_get_all_failed", error=str(e))
            return []

        requests = []
        for request_id, raw in rows.items():
            request = self._parse(request_id, raw)
            if request is not None:
                requests.append(request)
        return requests

    @staticmethod
    def _parse(request_id: str, raw: str) -> Optional[ScheduledNotificationRequest]:
        try:
            return ScheduledNotificationRequest.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(
                "notification_store_corrupt_entry", id=request_id, error=str(e)
            )
            return None
