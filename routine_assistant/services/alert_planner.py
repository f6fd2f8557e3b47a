"""Plans the advance, start and end alerts for a day's routines."""

from datetime import date, datetime, time, timedelta
from typing import Iterable, Mapping, Optional
from uuid import UUID

import structlog

from routine_assistant.models.messages import ScheduleNotificationMessage, ShowImmediateMessage
from routine_assistant.models.notification import (
    AlertType,
    ImmediateNotification,
    NotificationAction,
    ScheduledNotificationRequest,
)
from routine_assistant.models.routine import Routine
from routine_assistant.services.due_service import local_timezone, occurrences_for, to_local

logger = structlog.get_logger(__name__)

_ACTIONS = {
    AlertType.ADVANCE: [
        NotificationAction(action="start", title="Start now"),
        NotificationAction(action="dismiss", title="Wait"),
    ],
    AlertType.START: [
        NotificationAction(action="start", title="Start"),
        NotificationAction(action="skip", title="Skip"),
    ],
    AlertType.END: [
        NotificationAction(action="complete", title="Yes"),
        NotificationAction(action="incomplete", title="No"),
    ],
}

_FALLBACK_ACTIONS = [
    NotificationAction(action="open", title="Open"),
    NotificationAction(action="dismiss", title="Dismiss"),
]


def actions_for(alert_type: AlertType) -> list[NotificationAction]:
    return list(_ACTIONS.get(alert_type, _FALLBACK_ACTIONS))


def _at(day: date, at: time) -> datetime:
    """Local wall-clock time on ``day`` as an aware datetime."""
    return datetime.combine(day, at, tzinfo=local_timezone())


def plan_routine_alerts(
    routines: Iterable[Routine],
    day: date,
    now: datetime,
    executions: Optional[Mapping[UUID, UUID]] = None,
) -> list[ScheduledNotificationRequest]:
    """Build the alerts still ahead of ``now`` for routines occurring on ``day``.

    Ids are stable per routine, day and alert type, so planning twice
    overwrites instead of duplicating. ``executions`` maps routine id to the
    day's execution id; alerts carry it so days never replace each other.
    """
    executions = executions or {}
    if now.tzinfo is None:
        now = now.replace(tzinfo=local_timezone())
    alerts = []
    stamp = day.isoformat()

    for routine in occurrences_for(routines, day):
        start_at = _at(day, routine.start_time)
        label = routine.start_time.strftime("%H:%M")
        execution_id = executions.get(routine.id)
        execution_ref = str(execution_id) if execution_id else None

        if routine.advance_minutes > 0:
            advance_at = start_at - timedelta(minutes=routine.advance_minutes)
            if advance_at > now:
                alerts.append(
                    ScheduledNotificationRequest(
                        id=f"advance-{routine.id}-{stamp}",
                        title=f"{routine.title} in {routine.advance_minutes} minutes",
                        body=f'Get ready! "{routine.title}" starts at {label}',
                        scheduled_time=advance_at,
                        routine_id=str(routine.id),
                        execution_id=execution_ref,
                        type=AlertType.ADVANCE,
                        user_id=routine.user_id,
                    )
                )

        if start_at > now:
            alerts.append(
                ScheduledNotificationRequest(
                    id=f"start-{routine.id}-{stamp}",
                    title=f"Time for: {routine.title}",
                    body="Your routine is starting now",
                    scheduled_time=start_at,
                    routine_id=str(routine.id),
                    execution_id=execution_ref,
                    type=AlertType.START,
                    user_id=routine.user_id,
                )
            )

        if routine.end_time is not None:
            end_at = _at(day, routine.end_time)
            if end_at > now:
                alerts.append(
                    ScheduledNotificationRequest(
                        id=f"end-{routine.id}-{stamp}",
                        title=f"Wrap up: {routine.title}",
                        body="Did you finish this routine?",
                        scheduled_time=end_at,
                        routine_id=str(routine.id),
                        execution_id=execution_ref,
                        type=AlertType.END,
                        user_id=routine.user_id,
                    )
                )

    return alerts


class RoutineAlertService:
    """Asks the background scheduler to arrange a day's routine alerts."""

    def __init__(self, store, scheduler):
        self.store = store
        self.scheduler = scheduler

    async def schedule_routine_alerts(
        self, user_id: UUID, day: Optional[date] = None, now: Optional[datetime] = None
    ) -> list[ScheduledNotificationRequest]:
        now = now or datetime.now(local_timezone())
        day = day or to_local(now).date()

        routines = await self.store.list_routines(user_id, active_only=True)
        await self.store.ensure_executions(user_id, day)
        executions = {
            e.routine_id: e.id for e in await self.store.list_executions(user_id, day)
        }
        alerts = plan_routine_alerts(routines, day, now, executions)

        for alert in alerts:
            await self.scheduler.handle_message(ScheduleNotificationMessage(payload=alert))

        logger.info(
            "routine_alerts_scheduled",
            user_id=str(user_id),
            date=day.isoformat(),
            routines=len(routines),
            alerts=len(alerts),
        )
        return alerts

    async def show_alert(self, alert: ScheduledNotificationRequest) -> None:
        """Show an alert right away with the buttons for its type."""
        await self.scheduler.handle_message(
            ShowImmediateMessage(
                payload=ImmediateNotification(
                    title=alert.title,
                    body=alert.body,
                    tag=alert.id,
                    actions=actions_for(alert.type),
                    data={
                        "routineId": alert.routine_id,
                        "executionId": alert.execution_id,
                        "type": alert.type.value,
                    },
                    user_id=alert.user_id,
                )
            )
        )

    async def send_test_notification(self, user_id: UUID) -> ScheduledNotificationRequest:
        now = datetime.now(local_timezone())
        alert = ScheduledNotificationRequest(
            id=f"test-{int(now.timestamp() * 1000)}",
            title="Test notification",
            body="Routine notifications are working!",
            scheduled_time=now,
            routine_id="test",
            type=AlertType.REMINDER,
            user_id=user_id,
        )
        await self.show_alert(alert)
        return alert
