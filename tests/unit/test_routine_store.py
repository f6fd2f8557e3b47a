"""Unit tests for RoutineStore."""

from datetime import date, datetime, time, timezone
from unittest.mock import patch
from uuid import uuid4

import pytest

from routine_assistant.exceptions import InvalidTransitionError, RoutineValidationError
from routine_assistant.models.routine import ExecutionStatus, RoutineCreate, RoutineUpdate
from routine_assistant.services.routine_store import RoutineStore

MONDAY = date(2024, 1, 1)


def _routine_row(routine_id=None, user_id=None, weekdays=("mon", "wed", "fri"),
                 start=time(7, 0), end=time(8, 0), active=True, title="Gym"):
    now = datetime.now(timezone.utc)
    return {
        "id": routine_id or uuid4(),
        "user_id": user_id or uuid4(),
        "title": title,
        "description": None,
        "weekdays": list(weekdays),
        "start_time": start,
        "end_time": end,
        "category": "health",
        "priority": "medium",
        "active": active,
        "advance_minutes": 15,
        "created_at": now,
        "updated_at": now,
    }


def _execution_row(execution_id=None, status="pending", started_at=None, completed_at=None):
    return {
        "id": execution_id or uuid4(),
        "routine_id": uuid4(),
        "user_id": uuid4(),
        "date": MONDAY,
        "scheduled_time": time(7, 0),
        "planned_end_time": time(8, 0),
        "status": status,
        "started_at": started_at,
        "completed_at": completed_at,
    }


@pytest.fixture
def store():
    return RoutineStore()


class TestCreateRoutine:
    @pytest.mark.asyncio
    async def test_inserts_and_returns_routine(self, store, mock_pool):
        pool, conn = mock_pool
        user_id = uuid4()
        conn.fetchrow.return_value = _routine_row(user_id=user_id)

        with patch("routine_assistant.services.routine_store.get_pool", return_value=pool):
            routine = await store.create_routine(
                user_id,
                RoutineCreate(
                    title="Gym",
                    weekdays=["mon", "wed", "fri"],
                    start_time=time(7, 0),
                    end_time=time(8, 0),
                    category="health",
                ),
            )

        assert routine.user_id == user_id
        assert routine.active is True
        args = conn.fetchrow.call_args[0]
        assert args[5] == ["mon", "wed", "fri"]


class TestUpdateRoutine:
    @pytest.mark.asyncio
    async def test_returns_none_when_missing(self, store, mock_pool):
        pool, conn = mock_pool
        conn.fetchrow.return_value = None

        with patch("routine_assistant.services.routine_store.get_pool", return_value=pool):
            result = await store.update_routine(uuid4(), uuid4(), RoutineUpdate(title="New"))

        assert result is None

    @pytest.mark.asyncio
    async def test_merged_window_is_validated(self, store, mock_pool):
        pool, conn = mock_pool
        conn.fetchrow.return_value = _routine_row(start=time(7, 0), end=time(8, 0))

        with patch("routine_assistant.services.routine_store.get_pool", return_value=pool):
            with pytest.raises(RoutineValidationError, match="End time"):
                await store.update_routine(
                    uuid4(), uuid4(), RoutineUpdate(start_time=time(9, 0))
                )

        assert conn.fetchrow.call_count == 1

    @pytest.mark.asyncio
    async def test_clearing_weekdays_rejected(self, store, mock_pool):
        pool, conn = mock_pool
        conn.fetchrow.return_value = _routine_row()

        with patch("routine_assistant.services.routine_store.get_pool", return_value=pool):
            with pytest.raises(RoutineValidationError, match="at least one day"):
                await store.update_routine(uuid4(), uuid4(), RoutineUpdate(weekdays=[]))

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body,field",
        [
            ({"start_time": None}, "start_time"),
            ({"category": None}, "category"),
            ({"title": None}, "title"),
            ({"weekdays": None}, "weekdays"),
        ],
    )
    async def test_explicit_null_on_required_field_rejected(self, store, mock_pool, body, field):
        pool, conn = mock_pool
        conn.fetchrow.return_value = _routine_row(start=time(7, 0), end=time(8, 0))

        with patch("routine_assistant.services.routine_store.get_pool", return_value=pool):
            with pytest.raises(RoutineValidationError, match=field):
                await store.update_routine(uuid4(), uuid4(), RoutineUpdate.model_validate(body))

        assert conn.fetchrow.call_count == 1

    @pytest.mark.asyncio
    async def test_null_end_time_clears_window_end(self, store, mock_pool):
        pool, conn = mock_pool
        existing = _routine_row(start=time(7, 0), end=time(8, 0))
        conn.fetchrow.side_effect = [existing, {**existing, "end_time": None}]

        with patch("routine_assistant.services.routine_store.get_pool", return_value=pool):
            result = await store.update_routine(
                existing["id"], existing["user_id"], RoutineUpdate.model_validate({"end_time": None})
            )

        assert result.end_time is None
        assert conn.fetchrow.call_args[0][7] is None

    @pytest.mark.asyncio
    async def test_applies_partial_update(self, store, mock_pool):
        pool, conn = mock_pool
        routine_id = uuid4()
        existing = _routine_row(routine_id=routine_id)
        updated = {**existing, "title": "Morning gym"}
        conn.fetchrow.side_effect = [existing, updated]

        with patch("routine_assistant.services.routine_store.get_pool", return_value=pool):
            result = await store.update_routine(
                routine_id, existing["user_id"], RoutineUpdate(title="Morning gym")
            )

        assert result.title == "Morning gym"
        args = conn.fetchrow.call_args[0]
        assert args[3] == "Morning gym"
        assert args[6] == time(7, 0)


class TestDeleteRoutine:
    @pytest.mark.asyncio
    async def test_reports_whether_deleted(self, store, mock_pool):
        pool, conn = mock_pool

        with patch("routine_assistant.services.routine_store.get_pool", return_value=pool):
            conn.execute.return_value = "DELETE 1"
            assert await store.delete_routine(uuid4(), uuid4()) is True
            conn.execute.return_value = "DELETE 0"
            assert await store.delete_routine(uuid4(), uuid4()) is False


class TestEnsureExecutions:
    @pytest.mark.asyncio
    async def test_creates_pending_execution_per_occurrence(self, store, mock_pool):
        pool, conn = mock_pool
        user_id = uuid4()
        gym = _routine_row(user_id=user_id, weekdays=["mon", "wed"], start=time(7, 0))
        swim = _routine_row(user_id=user_id, weekdays=["tue"], start=time(6, 0))
        read = _routine_row(user_id=user_id, weekdays=["mon"], start=time(6, 30), end=None)
        conn.fetch.return_value = [gym, swim, read]

        with patch("routine_assistant.services.routine_store.get_pool", return_value=pool):
            count = await store.ensure_executions(user_id, MONDAY)

        assert count == 2
        rows = conn.executemany.call_args[0][1]
        assert [row[1] for row in rows] == [read["id"], gym["id"]]
        assert all(row[3] == MONDAY for row in rows)
        assert rows[0][5] is None
        assert "ON CONFLICT (routine_id, date) DO NOTHING" in conn.executemany.call_args[0][0]

    @pytest.mark.asyncio
    async def test_no_occurrences_skips_insert(self, store, mock_pool):
        pool, conn = mock_pool
        conn.fetch.return_value = [_routine_row(weekdays=["sat"])]

        with patch("routine_assistant.services.routine_store.get_pool", return_value=pool):
            count = await store.ensure_executions(uuid4(), MONDAY)

        assert count == 0
        conn.executemany.assert_not_called()


class TestTransitionExecution:
    @pytest.mark.asyncio
    async def test_start_stamps_started_at(self, store, mock_pool):
        pool, conn = mock_pool
        execution_id = uuid4()
        at = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
        conn.fetchrow.return_value = _execution_row(
            execution_id, status="in_progress", started_at=at
        )

        with patch("routine_assistant.services.routine_store.get_pool", return_value=pool):
            result = await store.transition_execution(
                execution_id, ExecutionStatus.IN_PROGRESS, at=at
            )

        assert result.status == ExecutionStatus.IN_PROGRESS
        args = conn.fetchrow.call_args[0]
        assert args[2] == "in_progress"
        assert args[3] == at
        assert args[4] == ["pending"]

    @pytest.mark.asyncio
    async def test_close_allowed_from_pending_and_in_progress(self, store, mock_pool):
        pool, conn = mock_pool
        execution_id = uuid4()
        conn.fetchrow.return_value = _execution_row(execution_id, status="not_done")

        with patch("routine_assistant.services.routine_store.get_pool", return_value=pool):
            await store.transition_execution(execution_id, ExecutionStatus.NOT_DONE)

        allowed_from = conn.fetchrow.call_args[0][4]
        assert sorted(allowed_from) == ["in_progress", "pending"]

    @pytest.mark.asyncio
    async def test_terminal_execution_rejects_transition(self, store, mock_pool):
        pool, conn = mock_pool
        conn.fetchrow.return_value = None
        conn.fetchval.return_value = "done"

        with patch("routine_assistant.services.routine_store.get_pool", return_value=pool):
            with pytest.raises(InvalidTransitionError) as exc_info:
                await store.transition_execution(uuid4(), ExecutionStatus.NOT_DONE)

        assert exc_info.value.current == "done"
        assert exc_info.value.target == "not_done"

    @pytest.mark.asyncio
    async def test_missing_execution_returns_none(self, store, mock_pool):
        pool, conn = mock_pool
        conn.fetchrow.return_value = None
        conn.fetchval.return_value = None

        with patch("routine_assistant.services.routine_store.get_pool", return_value=pool):
            result = await store.transition_execution(uuid4(), ExecutionStatus.DONE)

        assert result is None


class TestListExecutions:
    @pytest.mark.asyncio
    async def test_filters_by_status(self, store, mock_pool):
        pool, conn = mock_pool
        row = {
            **_execution_row(),
            "title": "Gym",
            "routine_start_time": time(7, 0),
            "routine_end_time": time(8, 0),
            "category": "health",
        }
        conn.fetch.return_value = [row]
        user_id = uuid4()

        with patch("routine_assistant.services.routine_store.get_pool", return_value=pool):
            result = await store.list_executions(user_id, MONDAY, status=ExecutionStatus.PENDING)

        assert result[0].title == "Gym"
        query, *params = conn.fetch.call_args[0]
        assert "e.status = $3" in query
        assert params == [user_id, MONDAY, "pending"]
