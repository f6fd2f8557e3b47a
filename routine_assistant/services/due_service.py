"""Due and overdue computation for routines and their executions.

Pure functions, no I/O. All comparisons are made in local wall-clock time
on the execution's own calendar day; routines never span midnight.
"""

from datetime import date, datetime, time
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from routine_assistant.config import get_settings
from routine_assistant.models.routine import (
    Execution,
    ExecutionStatus,
    Routine,
    Weekday,
)

_OPEN_STATUSES = (ExecutionStatus.PENDING, ExecutionStatus.IN_PROGRESS)


def local_timezone() -> ZoneInfo:
    return ZoneInfo(get_settings().timezone)


def to_local(now: datetime) -> datetime:
    """Return ``now`` as naive local wall-clock time.

    Naive datetimes are assumed to already be local.
    """
    if now.tzinfo is None:
        return now
    return now.astimezone(local_timezone()).replace(tzinfo=None)


def local_now() -> datetime:
    return datetime.now(local_timezone()).replace(tzinfo=None)


def weekday_of(day: date) -> Weekday:
    return Weekday.from_date(day)


def is_occurrence(routine: Routine, day: date) -> bool:
    """True when the routine is active and scheduled on the given date."""
    return routine.active and weekday_of(day) in routine.weekdays


def occurrences_for(routines: Iterable[Routine], day: date) -> list[Routine]:
    """Routines that occur on ``day``, ordered by start time."""
    return sorted(
        (r for r in routines if is_occurrence(r, day)),
        key=lambda r: r.start_time,
    )


def scheduled_at(execution: Execution) -> datetime:
    """Local datetime at which the execution is due to start."""
    return datetime.combine(execution.date, execution.scheduled_time)


def effective_end_time(
    execution: Execution, routine_end_time: Optional[time] = None
) -> time:
    """Planned end, else the routine's end, else the start time itself."""
    return execution.planned_end_time or routine_end_time or execution.scheduled_time


def is_due(execution: Execution, now: datetime) -> bool:
    """A pending execution whose start time has arrived."""
    return (
        execution.status == ExecutionStatus.PENDING
        and to_local(now) >= scheduled_at(execution)
    )


def is_overdue_for_closure(
    execution: Execution,
    now: datetime,
    routine_end_time: Optional[time] = None,
) -> bool:
    """An unresolved execution whose effective end time has passed.

    Without any end time the start time doubles as the end time.
    """
    if execution.status not in _OPEN_STATUSES:
        return False
    end_at = datetime.combine(
        execution.date, effective_end_time(execution, routine_end_time)
    )
    return to_local(now) >= end_at
