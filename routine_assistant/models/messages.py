"""Message protocol between the foreground app and the background scheduler.

Inbound messages and worker wake events are discriminated unions so that
handlers can match them exhaustively.
"""

from typing import Annotated, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from routine_assistant.models.notification import (
    ImmediateNotification,
    NotificationData,
    ScheduledNotificationRequest,
)


class CancelPayload(BaseModel):
    id: str


class ScheduleNotificationMessage(BaseModel):
    type: Literal["SCHEDULE_NOTIFICATION"] = "SCHEDULE_NOTIFICATION"
    payload: ScheduledNotificationRequest


class CancelNotificationMessage(BaseModel):
    type: Literal["CANCEL_NOTIFICATION"] = "CANCEL_NOTIFICATION"
    payload: CancelPayload


class GetScheduledMessage(BaseModel):
    type: Literal["GET_SCHEDULED"] = "GET_SCHEDULED"


class ShowImmediateMessage(BaseModel):
    type: Literal["SHOW_IMMEDIATE"] = "SHOW_IMMEDIATE"
    payload: ImmediateNotification


SchedulerMessage = Annotated[
    Union[
        ScheduleNotificationMessage,
        CancelNotificationMessage,
        GetScheduledMessage,
        ShowImmediateMessage,
    ],
    Field(discriminator="type"),
]

scheduler_message_adapter: TypeAdapter[SchedulerMessage] = TypeAdapter(SchedulerMessage)


class NotificationActionMessage(BaseModel):
    """Outbound hand-off from the scheduler to an open foreground client."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["NOTIFICATION_ACTION"] = "NOTIFICATION_ACTION"
    action: str
    routine_id: Optional[str] = Field(default=None, alias="routineId")
    execution_id: Optional[str] = Field(default=None, alias="executionId")


# Background wake triggers


class InstallEvent(BaseModel):
    kind: Literal["install"] = "install"


class ActivateEvent(BaseModel):
    kind: Literal["activate"] = "activate"


class PushEvent(BaseModel):
    kind: Literal["push"] = "push"
    data: Optional[str] = None
    user_id: Optional[UUID] = None


class PeriodicSyncEvent(BaseModel):
    kind: Literal["periodicsync"] = "periodicsync"
    tag: str


class SyncEvent(BaseModel):
    kind: Literal["sync"] = "sync"
    tag: str


class MessageEvent(BaseModel):
    kind: Literal["message"] = "message"
    message: SchedulerMessage


class NotificationClickEvent(BaseModel):
    kind: Literal["notificationclick"] = "notificationclick"
    user_id: Optional[UUID] = None
    action: str = ""
    tag: Optional[str] = None
    data: NotificationData = Field(default_factory=NotificationData)


WorkerEvent = Annotated[
    Union[
        InstallEvent,
        ActivateEvent,
        PushEvent,
        PeriodicSyncEvent,
        SyncEvent,
        MessageEvent,
        NotificationClickEvent,
    ],
    Field(discriminator="kind"),
]
