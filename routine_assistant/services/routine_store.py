"""Routine store: routine definitions and their dated executions in Postgres."""

from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import structlog
from pydantic import ValidationError

from routine_assistant.database import get_pool
from routine_assistant.exceptions import InvalidTransitionError, RoutineValidationError
from routine_assistant.models.routine import (
    Execution,
    ExecutionStatus,
    ExecutionWithRoutine,
    Routine,
    RoutineCreate,
    RoutineUpdate,
    validate_routine_window,
)
from routine_assistant.services.due_service import occurrences_for

logger = structlog.get_logger(__name__)

_ROUTINE_COLUMNS = """
    id, user_id, title, description, weekdays, start_time, end_time,
    category, priority, active, advance_minutes, created_at, updated_at
"""

_EXECUTION_COLUMNS = """
    id, routine_id, user_id, date, scheduled_time, planned_end_time,
    status, started_at, completed_at
"""

_JOINED_COLUMNS = """
    e.id, e.routine_id, e.user_id, e.date, e.scheduled_time, e.planned_end_time,
    e.status, e.started_at, e.completed_at,
    r.title, r.start_time AS routine_start_time, r.end_time AS routine_end_time,
    r.category
"""


class RoutineStore:
    """Reads and writes routines and executions.

    Executions are created lazily, only for active routines on days in their
    weekday set, and only move forward through their status machine.
    """

    # Routines

    async def create_routine(self, user_id: UUID, data: RoutineCreate) -> Routine:
        routine_id = uuid4()
        now = datetime.now(timezone.utc)
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO routines
                (id, user_id, title, description, weekdays, start_time, end_time,
                 category, priority, active, advance_minutes, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, TRUE, $10, $11, $11)
                RETURNING {_ROUTINE_COLUMNS}
                """,
                routine_id,
                user_id,
                data.title,
                data.description,
                [d.value for d in data.weekdays],
                data.start_time,
                data.end_time,
                data.category.value,
                data.priority.value,
                data.advance_minutes,
                now,
            )

        logger.info(
            "routine_created",
            routine_id=str(routine_id),
            user_id=str(user_id),
            weekdays=[d.value for d in data.weekdays],
        )
        return Routine(**dict(row))

    async def get_routine(self, routine_id: UUID, user_id: UUID) -> Optional[Routine]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_ROUTINE_COLUMNS} FROM routines WHERE id = $1 AND user_id = $2",
                routine_id,
                user_id,
            )

        return Routine(**dict(row)) if row else None

    async def list_routines(self, user_id: UUID, active_only: bool = False) -> list[Routine]:
        pool = await get_pool()
        query = f"SELECT {_ROUTINE_COLUMNS} FROM routines WHERE user_id = $1"
        if active_only:
            query += " AND active = TRUE"
        query += " ORDER BY start_time ASC"

        async with pool.acquire() as conn:
            rows = await conn.fetch(query, user_id)

        return [Routine(**dict(row)) for row in rows]

    async def update_routine(
        self, routine_id: UUID, user_id: UUID, updates: RoutineUpdate
    ) -> Optional[Routine]:
        """Apply a partial edit. Existing executions keep their copied times.

        Raises:
            RoutineValidationError: if the merged routine is invalid
        """
        existing = await self.get_routine(routine_id, user_id)
        if existing is None:
            return None

        changes = updates.model_dump(exclude_unset=True)
        try:
            merged = Routine.model_validate({**existing.model_dump(), **changes})
        except ValidationError as e:
            field = ".".join(str(loc) for loc in e.errors()[0]["loc"])
            raise RoutineValidationError(f"Field '{field}' cannot be empty") from e
        validate_routine_window(merged.weekdays, merged.start_time, merged.end_time)

        pool = await get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE routines
                SET title = $3, description = $4, weekdays = $5, start_time = $6,
                    end_time = $7, category = $8, priority = $9, advance_minutes = $10,
                    updated_at = NOW()
                WHERE id = $1 AND user_id = $2
                RETURNING {_ROUTINE_COLUMNS}
                """,
                routine_id,
                user_id,
                merged.title,
                merged.description,
                [d.value for d in merged.weekdays],
                merged.start_time,
                merged.end_time,
                merged.category.value,
                merged.priority.value,
                merged.advance_minutes,
            )

        if row is None:
            return None

        logger.info("routine_updated", routine_id=str(routine_id), fields=sorted(changes))
        return Routine(**dict(row))

    async def set_active(
        self, routine_id: UUID, user_id: UUID, active: bool
    ) -> Optional[Routine]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE routines SET active = $3, updated_at = NOW()
                WHERE id = $1 AND user_id = $2
                RETURNING {_ROUTINE_COLUMNS}
                """,
                routine_id,
                user_id,
                active,
            )

        if row is None:
            return None

        logger.info("routine_activation_changed", routine_id=str(routine_id), active=active)
        return Routine(**dict(row))

    async def delete_routine(self, routine_id: UUID, user_id: UUID) -> bool:
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM routines WHERE id = $1 AND user_id = $2",
                routine_id,
                user_id,
            )

        deleted = result == "DELETE 1"
        if deleted:
            logger.info("routine_deleted", routine_id=str(routine_id))
        return deleted

    # Executions

    async def ensure_executions(self, user_id: UUID, day: date) -> int:
        """Create the pending executions for every occurrence on ``day``.

        Existing executions are left untouched.

        Returns:
            Number of routines that occur on ``day``
        """
        routines = occurrences_for(await self.list_routines(user_id, active_only=True), day)
        if not routines:
            return 0

        pool = await get_pool()
        async with pool.acquire() as conn:
            await conn.executemany(
                """
                INSERT INTO routine_executions
                (id, routine_id, user_id, date, scheduled_time, planned_end_time, status)
                VALUES ($1, $2, $3, $4, $5, $6, 'pending')
                ON CONFLICT (routine_id, date) DO NOTHING
                """,
                [
                    (uuid4(), r.id, user_id, day, r.start_time, r.end_time)
                    for r in routines
                ],
            )

        logger.debug(
            "executions_ensured",
            user_id=str(user_id),
            date=day.isoformat(),
            count=len(routines),
        )
        return len(routines)

    async def get_execution(self, execution_id: UUID) -> Optional[Execution]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_EXECUTION_COLUMNS} FROM routine_executions WHERE id = $1",
                execution_id,
            )

        return Execution(**dict(row)) if row else None

    async def get_execution_with_routine(
        self, execution_id: UUID
    ) -> Optional[ExecutionWithRoutine]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_JOINED_COLUMNS}
                FROM routine_executions e
                JOIN routines r ON r.id = e.routine_id
                WHERE e.id = $1
                """,
                execution_id,
            )

        return ExecutionWithRoutine(**dict(row)) if row else None

    async def list_executions(
        self,
        user_id: UUID,
        day: date,
        status: Optional[ExecutionStatus] = None,
    ) -> list[ExecutionWithRoutine]:
        """Executions for a day joined with their routines, by scheduled time."""
        pool = await get_pool()
        params: list = [user_id, day]
        query = f"""
            SELECT {_JOINED_COLUMNS}
            FROM routine_executions e
            JOIN routines r ON r.id = e.routine_id
            WHERE e.user_id = $1 AND e.date = $2
        """
        if status is not None:
            query += " AND e.status = $3"
            params.append(status.value)
        query += " ORDER BY e.scheduled_time ASC"

        async with pool.acquire() as conn:
            rows = await conn.fetch(query, *params)

        return [ExecutionWithRoutine(**dict(row)) for row in rows]

    async def transition_execution(
        self,
        execution_id: UUID,
        target: ExecutionStatus,
        at: Optional[datetime] = None,
    ) -> Optional[Execution]:
        """Move an execution forward, stamping the matching timestamp.

        ``started_at`` is set on in_progress, ``completed_at`` on done only.

        Returns:
            The updated execution, or None if it does not exist

        Raises:
            InvalidTransitionError: if the current status cannot reach ``target``
        """
        at = at or datetime.now(timezone.utc)
        allowed_from = [s.value for s in ExecutionStatus if s.can_transition_to(target)]
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE routine_executions
                SET status = $2::varchar,
                    started_at = CASE WHEN $2::varchar = 'in_progress' THEN $3::timestamptz ELSE started_at END,
                    completed_at = CASE WHEN $2::varchar = 'done' THEN $3::timestamptz ELSE completed_at END,
                    updated_at = NOW()
                WHERE id = $1 AND status = ANY($4::varchar[])
                RETURNING {_EXECUTION_COLUMNS}
                """,
                execution_id,
                target.value,
                at,
                allowed_from,
            )

            if row is None:
                current = await conn.fetchval(
                    "SELECT status FROM routine_executions WHERE id = $1",
                    execution_id,
                )

        if row is None:
            if current is None:
                return None
            logger.warning(
                "execution_transition_rejected",
                execution_id=str(execution_id),
                current=current,
                target=target.value,
            )
            raise InvalidTransitionError(str(execution_id), current, target.value)

        logger.info(
            "execution_transitioned",
            execution_id=str(execution_id),
            status=target.value,
        )
        return Execution(**dict(row))
