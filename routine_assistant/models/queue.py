"""In-memory queue models for the foreground routine prompts."""

from datetime import time
from enum import Enum
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from routine_assistant.models.routine import Category, ExecutionStatus


class QueueType(str, Enum):
    """Which prompt the item asks for: begin the routine or close it."""

    START = "start"
    END = "end"


class QueueState(str, Enum):
    IDLE = "idle"
    DRAINING = "draining"


class QueueItem(BaseModel):
    """A prompt awaiting a user response."""

    execution_id: UUID
    routine_id: UUID
    title: str
    start_time: time
    end_time: Optional[time] = None
    category: Category = Category.PERSONAL
    queue_type: QueueType
    status: ExecutionStatus = ExecutionStatus.PENDING

    @property
    def key(self) -> tuple[UUID, QueueType]:
        return (self.execution_id, self.queue_type)


class QueueSnapshot(BaseModel):
    """What observers receive after every state change."""

    queue: list[QueueItem] = Field(default_factory=list)
    current: Optional[QueueItem] = None
    state: QueueState = QueueState.IDLE


class QueueUpdateMessage(BaseModel):
    """Outbound WebSocket frame carrying a queue snapshot."""

    type: Literal["QUEUE_UPDATE"] = "QUEUE_UPDATE"
    snapshot: QueueSnapshot
