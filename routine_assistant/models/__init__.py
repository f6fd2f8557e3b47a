"""Models package exports."""

from routine_assistant.models.messages import (
    NotificationActionMessage,
    SchedulerMessage,
    WorkerEvent,
)
from routine_assistant.models.notification import (
    AlertType,
    Notification,
    NotificationAction,
    NotificationPermission,
    ScheduledNotificationRequest,
)
from routine_assistant.models.queue import QueueItem, QueueSnapshot, QueueState, QueueType
from routine_assistant.models.routine import (
    Category,
    Execution,
    ExecutionStatus,
    Priority,
    Routine,
    RoutineCreate,
    RoutineUpdate,
    Weekday,
)

__all__ = [
    "AlertType",
    "Category",
    "Execution",
    "ExecutionStatus",
    "Notification",
    "NotificationAction",
    "NotificationActionMessage",
    "NotificationPermission",
    "Priority",
    "QueueItem",
    "QueueSnapshot",
    "QueueState",
    "QueueType",
    "Routine",
    "RoutineCreate",
    "RoutineUpdate",
    "ScheduledNotificationRequest",
    "SchedulerMessage",
    "Weekday",
    "WorkerEvent",
]
