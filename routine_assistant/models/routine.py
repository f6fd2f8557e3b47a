"""Routine and execution models."""

import datetime as dt
from datetime import date, datetime, time
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from routine_assistant.exceptions import RoutineValidationError


class Weekday(str, Enum):
    """Days of the week, keyed to match ``date.weekday()`` via ``number``."""

    MON = "mon"
    TUE = "tue"
    WED = "wed"
    THU = "thu"
    FRI = "fri"
    SAT = "sat"
    SUN = "sun"

    @property
    def number(self) -> int:
        """Python weekday number (Monday == 0)."""
        return list(Weekday).index(self)

    @classmethod
    def from_date(cls, day: date) -> "Weekday":
        return list(cls)[day.weekday()]


class Category(str, Enum):
    """Routine category."""

    WORK = "work"
    STUDY = "study"
    PERSONAL = "personal"
    HEALTH = "health"
    OTHER = "other"


class Priority(str, Enum):
    """Routine priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ExecutionStatus(str, Enum):
    """Status of one dated routine instance."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    NOT_DONE = "not_done"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.DONE, ExecutionStatus.NOT_DONE)

    def can_transition_to(self, target: "ExecutionStatus") -> bool:
        """Check the forward-only transition table."""
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.PENDING: frozenset(
        {ExecutionStatus.IN_PROGRESS, ExecutionStatus.DONE, ExecutionStatus.NOT_DONE}
    ),
    ExecutionStatus.IN_PROGRESS: frozenset(
        {ExecutionStatus.DONE, ExecutionStatus.NOT_DONE}
    ),
    ExecutionStatus.DONE: frozenset(),
    ExecutionStatus.NOT_DONE: frozenset(),
}


def validate_routine_window(
    weekdays: list[Weekday], start_time: time, end_time: Optional[time]
) -> None:
    """Reject definitions the scheduler cannot evaluate.

    Raises:
        RoutineValidationError: with a message suitable for the user
    """
    if not weekdays:
        raise RoutineValidationError("Choose at least one day of the week")
    if end_time is not None and end_time <= start_time:
        raise RoutineValidationError("End time must be later than start time")


def _dedupe_weekdays(v: list[Weekday]) -> list[Weekday]:
    return sorted(set(v), key=lambda d: d.number)


class Routine(BaseModel):
    """A recurring activity definition."""

    id: UUID
    user_id: UUID
    title: str
    description: Optional[str] = None
    weekdays: list[Weekday]
    start_time: time
    end_time: Optional[time] = None
    category: Category = Category.PERSONAL
    priority: Priority = Priority.MEDIUM
    active: bool = True
    advance_minutes: int = 15
    created_at: datetime
    updated_at: datetime


class RoutineCreate(BaseModel):
    """Validated input for creating a routine."""

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    weekdays: list[Weekday]
    start_time: time
    end_time: Optional[time] = None
    category: Category = Category.PERSONAL
    priority: Priority = Priority.MEDIUM
    advance_minutes: int = Field(default=15, ge=0, le=720)

    @field_validator("weekdays")
    @classmethod
    def unique_weekdays(cls, v: list[Weekday]) -> list[Weekday]:
        return _dedupe_weekdays(v)

    @model_validator(mode="after")
    def check_window(self) -> "RoutineCreate":
        validate_routine_window(self.weekdays, self.start_time, self.end_time)
        return self


class RoutineUpdate(BaseModel):
    """Partial routine edit. Cross-field checks run against the merged routine."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    weekdays: Optional[list[Weekday]] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    category: Optional[Category] = None
    priority: Optional[Priority] = None
    advance_minutes: Optional[int] = Field(default=None, ge=0, le=720)

    @field_validator("weekdays")
    @classmethod
    def unique_weekdays(cls, v: Optional[list[Weekday]]) -> Optional[list[Weekday]]:
        return None if v is None else _dedupe_weekdays(v)


class Execution(BaseModel):
    """One instance of a routine for one calendar date."""

    id: UUID
    routine_id: UUID
    user_id: UUID
    date: dt.date
    scheduled_time: time
    planned_end_time: Optional[time] = None
    status: ExecutionStatus = ExecutionStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ExecutionWithRoutine(Execution):
    """An execution joined with the fields of its owning routine."""

    title: str
    routine_start_time: time
    routine_end_time: Optional[time] = None
    category: Category = Category.PERSONAL
