"""Notification models: scheduled requests, presented notifications, permissions."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AlertType(str, Enum):
    """Kind of routine alert carried by a scheduled request."""

    ADVANCE = "advance"
    START = "start"
    END = "end"
    REMINDER = "reminder"
    ROUTINE = "routine"


class NotificationPermission(str, Enum):
    """Per-user permission to display notifications."""

    GRANTED = "granted"
    DENIED = "denied"
    DEFAULT = "default"


class NotificationAction(BaseModel):
    """An action button attached to a presented notification."""

    action: str
    title: str


START_ACTION = NotificationAction(action="start", title="Start")
DISMISS_ACTION = NotificationAction(action="dismiss", title="Dismiss")
DEFAULT_ACTIONS = (START_ACTION, DISMISS_ACTION)


class NotificationData(BaseModel):
    """Routine references carried by a notification back to the click handler."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    routine_id: Optional[str] = Field(default=None, alias="routineId")
    execution_id: Optional[str] = Field(default=None, alias="executionId")
    type: Optional[str] = None


class ScheduledNotificationRequest(BaseModel):
    """A future alert persisted by the background scheduler.

    ``scheduled_time`` accepts epoch milliseconds or ISO-8601 on the wire.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1, max_length=200)
    title: str
    body: str = ""
    scheduled_time: datetime = Field(..., alias="scheduledTime")
    routine_id: Optional[str] = Field(default=None, alias="routineId")
    execution_id: Optional[str] = Field(default=None, alias="executionId")
    type: AlertType = AlertType.ROUTINE
    user_id: Optional[UUID] = Field(default=None, alias="userId")

    @field_validator("scheduled_time")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Naive timestamps are taken as UTC."""
        return v if v.tzinfo is not None else v.replace(tzinfo=timezone.utc)

    @property
    def dedupe_key(self) -> tuple[Optional[str], Optional[str], str]:
        """At most one live request exists per routine, execution and type."""
        return (self.routine_id, self.execution_id, self.type.value)

    def is_due(self, now: datetime) -> bool:
        return self.scheduled_time <= now


class ImmediateNotification(BaseModel):
    """Payload of a notification shown right away, bypassing persistence."""

    title: str
    body: str = ""
    tag: Optional[str] = None
    actions: Optional[list[NotificationAction]] = None
    data: dict[str, Any] = Field(default_factory=dict)
    user_id: Optional[UUID] = Field(default=None, alias="userId")

    model_config = ConfigDict(populate_by_name=True)


class Notification(BaseModel):
    """A notification as presented to the user."""

    id: UUID
    user_id: Optional[UUID] = None
    tag: str
    title: str
    body: str
    icon: Optional[str] = None
    actions: list[NotificationAction] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)
    require_interaction: bool = True
    created_at: datetime
