"""API package exports."""

from routine_assistant.api.middleware import CorrelationIdMiddleware
from routine_assistant.api.notifications import router as notifications_router
from routine_assistant.api.queue import router as queue_router
from routine_assistant.api.routines import router as routines_router
from routine_assistant.api.scheduler import router as scheduler_router

__all__ = [
    "CorrelationIdMiddleware",
    "notifications_router",
    "queue_router",
    "routines_router",
    "scheduler_router",
]
