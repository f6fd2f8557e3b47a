"""Unit tests for routine alert planning."""

from datetime import date, datetime, time, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4
from zoneinfo import ZoneInfo

import pytest

from routine_assistant.models.messages import ScheduleNotificationMessage, ShowImmediateMessage
from routine_assistant.models.notification import AlertType
from routine_assistant.models.routine import Routine, Weekday
from routine_assistant.services.client_hub import ClientHub
from routine_assistant.services.alert_planner import (
    RoutineAlertService,
    actions_for,
    plan_routine_alerts,
)
from routine_assistant.services.notification_scheduler import NotificationScheduler

MONDAY = date(2024, 1, 1)
LOCAL = ZoneInfo("America/Sao_Paulo")


class InMemoryRequestStore:
    def __init__(self):
        self.rows = {}

    async def put(self, request):
        self.rows[request.id] = request
        return True

    async def delete(self, request_id):
        self.rows.pop(request_id, None)
        return True

    async def get_all(self):
        return list(self.rows.values())


def _store_with_executions(routine, days):
    """Store double holding one execution per day for ``routine``."""
    execution_ids = {day: uuid4() for day in days}
    store = MagicMock()
    store.list_routines = AsyncMock(return_value=[routine])
    store.ensure_executions = AsyncMock(return_value=1)
    store.list_executions = AsyncMock(
        side_effect=lambda user_id, day: [
            MagicMock(routine_id=routine.id, id=execution_ids[day])
        ]
    )
    return store, execution_ids


def _make_routine(start=time(7, 0), end=time(8, 0), weekdays=(Weekday.MON,), advance=15):
    now = datetime.now(timezone.utc)
    return Routine(
        id=uuid4(),
        user_id=uuid4(),
        title="Gym",
        weekdays=list(weekdays),
        start_time=start,
        end_time=end,
        advance_minutes=advance,
        created_at=now,
        updated_at=now,
    )


class TestPlanRoutineAlerts:
    def test_plans_advance_start_and_end(self):
        routine = _make_routine()

        alerts = plan_routine_alerts([routine], MONDAY, datetime(2024, 1, 1, 6, 0))

        assert [a.type for a in alerts] == [AlertType.ADVANCE, AlertType.START, AlertType.END]
        assert [a.id for a in alerts] == [
            f"advance-{routine.id}-2024-01-01",
            f"start-{routine.id}-2024-01-01",
            f"end-{routine.id}-2024-01-01",
        ]
        assert alerts[0].scheduled_time == datetime(2024, 1, 1, 6, 45, tzinfo=LOCAL)
        assert alerts[2].scheduled_time == datetime(2024, 1, 1, 8, 0, tzinfo=LOCAL)
        assert all(a.routine_id == str(routine.id) for a in alerts)
        assert all(a.user_id == routine.user_id for a in alerts)

    def test_past_alerts_skipped(self):
        alerts = plan_routine_alerts([_make_routine()], MONDAY, datetime(2024, 1, 1, 7, 0))
        assert [a.type for a in alerts] == [AlertType.END]

    def test_aware_now_converted(self):
        # 09:55 UTC is 06:55 local
        now = datetime(2024, 1, 1, 9, 55, tzinfo=timezone.utc)
        alerts = plan_routine_alerts([_make_routine()], MONDAY, now)
        assert [a.type for a in alerts] == [AlertType.START, AlertType.END]

    def test_no_end_alert_without_end_time(self):
        alerts = plan_routine_alerts(
            [_make_routine(end=None, advance=0)], MONDAY, datetime(2024, 1, 1, 6, 0)
        )
        assert [a.type for a in alerts] == [AlertType.START]

    def test_routines_not_occurring_today_skipped(self):
        routine = _make_routine(weekdays=(Weekday.TUE,))
        assert plan_routine_alerts([routine], MONDAY, datetime(2024, 1, 1, 6, 0)) == []


class TestActions:
    def test_buttons_per_alert_type(self):
        assert [a.action for a in actions_for(AlertType.ADVANCE)] == ["start", "dismiss"]
        assert [a.action for a in actions_for(AlertType.START)] == ["start", "skip"]
        assert [a.action for a in actions_for(AlertType.END)] == ["complete", "incomplete"]
        assert [a.action for a in actions_for(AlertType.REMINDER)] == ["open", "dismiss"]


class TestRoutineAlertService:
    @pytest.mark.asyncio
    async def test_sends_schedule_messages(self):
        routine = _make_routine()
        store, execution_ids = _store_with_executions(routine, [MONDAY])
        scheduler = MagicMock()
        scheduler.handle_message = AsyncMock(return_value=None)
        service = RoutineAlertService(store, scheduler)

        alerts = await service.schedule_routine_alerts(
            routine.user_id, day=MONDAY, now=datetime(2024, 1, 1, 6, 0, tzinfo=LOCAL)
        )

        assert len(alerts) == 3
        store.list_routines.assert_called_once_with(routine.user_id, active_only=True)
        messages = [c.args[0] for c in scheduler.handle_message.call_args_list]
        assert all(isinstance(m, ScheduleNotificationMessage) for m in messages)
        assert [m.payload.id for m in messages] == [a.id for a in alerts]
        store.ensure_executions.assert_called_once_with(routine.user_id, MONDAY)
        assert all(a.execution_id == str(execution_ids[MONDAY]) for a in alerts)

    @pytest.mark.asyncio
    async def test_next_day_alerts_keep_todays_pending(self):
        routine = _make_routine(weekdays=(Weekday.MON, Weekday.TUE))
        tuesday = MONDAY + timedelta(days=1)
        store, _ = _store_with_executions(routine, [MONDAY, tuesday])
        requests = InMemoryRequestStore()
        scheduler = NotificationScheduler(
            store=requests, notifier=MagicMock(), hub=ClientHub(), alarm=None
        )
        service = RoutineAlertService(store, scheduler)
        now = datetime(2024, 1, 1, 6, 0, tzinfo=LOCAL)

        today = await service.schedule_routine_alerts(routine.user_id, day=MONDAY, now=now)
        tomorrow = await service.schedule_routine_alerts(routine.user_id, day=tuesday, now=now)

        assert set(requests.rows) == {a.id for a in today + tomorrow}
        assert len(requests.rows) == 6

    @pytest.mark.asyncio
    async def test_test_notification_shown_immediately(self):
        scheduler = MagicMock()
        scheduler.handle_message = AsyncMock(return_value=None)
        user_id = uuid4()

        alert = await RoutineAlertService(MagicMock(), scheduler).send_test_notification(user_id)

        message = scheduler.handle_message.call_args.args[0]
        assert isinstance(message, ShowImmediateMessage)
        assert message.payload.tag == alert.id
        assert message.payload.user_id == user_id
        assert message.payload.data["type"] == "reminder"
