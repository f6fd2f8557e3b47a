"""Services package exports."""

from routine_assistant.services.logging_service import configure_logging, get_logger
from routine_assistant.services.notification_scheduler import NotificationScheduler
from routine_assistant.services.routine_queue import QueueRegistry, RoutineQueue
from routine_assistant.services.routine_store import RoutineStore

__all__ = [
    "NotificationScheduler",
    "QueueRegistry",
    "RoutineQueue",
    "RoutineStore",
    "configure_logging",
    "get_logger",
]
