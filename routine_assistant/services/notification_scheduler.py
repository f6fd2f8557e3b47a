"""Background notification scheduler.

Keeps a durable list of pending alerts and fires each one once its time has
come, whether or not a foreground client is open. Wakes on discrete triggers
(startup, poll interval, alarms, push, sync, messages, notification clicks)
and runs each to completion. Errors are logged and never propagated: there is
no user present to show them to.
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol
from uuid import UUID

import structlog

from routine_assistant.config import get_settings
from routine_assistant.exceptions import NotificationPermissionDenied
from routine_assistant.models.messages import (
    ActivateEvent,
    CancelNotificationMessage,
    GetScheduledMessage,
    InstallEvent,
    MessageEvent,
    NotificationActionMessage,
    NotificationClickEvent,
    PeriodicSyncEvent,
    PushEvent,
    ScheduleNotificationMessage,
    SchedulerMessage,
    ShowImmediateMessage,
    SyncEvent,
    WorkerEvent,
)
from routine_assistant.models.notification import (
    DEFAULT_ACTIONS,
    ImmediateNotification,
    Notification,
    NotificationAction,
    NotificationData,
    ScheduledNotificationRequest,
)
from routine_assistant.services.client_hub import ClientHub
from routine_assistant.services.notification_service import NotificationService
from routine_assistant.services.notification_store import NotificationRequestStore

logger = structlog.get_logger(__name__)

CHECK_ROUTINES_TAG = "check-routines"
SYNC_ROUTINES_TAG = "sync-routines"
IMMEDIATE_TAG = "routine-immediate"


class Alarm(Protocol):
    """A wake-up primitive: run ``callback`` once after ``delay_seconds``."""

    def set(self, name: str, delay_seconds: float, callback: Callable[[], None]) -> None: ...

    def cancel(self, name: str) -> None: ...

    def clear(self) -> None: ...


class AsyncioAlarm:
    """Named one-shot timers on the running event loop. Re-setting a name replaces it."""

    def __init__(self):
        self._handles: dict[str, asyncio.TimerHandle] = {}

    def set(self, name: str, delay_seconds: float, callback: Callable[[], None]) -> None:
        self.cancel(name)
        loop = asyncio.get_running_loop()

        def fire() -> None:
            self._handles.pop(name, None)
            callback()

        self._handles[name] = loop.call_later(delay_seconds, fire)

    def cancel(self, name: str) -> None:
        handle = self._handles.pop(name, None)
        if handle is not None:
            handle.cancel()

    def clear(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()


def _alarm_name(request_id: str) -> str:
    return f"routine-{request_id}"


def _as_utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    return now if now.tzinfo is not None else now.replace(tzinfo=timezone.utc)


class NotificationScheduler:
    """Persists, sweeps and presents scheduled routine notifications."""

    def __init__(
        self,
        store: Optional[NotificationRequestStore] = None,
        notifier: Optional[NotificationService] = None,
        hub: Optional[ClientHub] = None,
        alarm: Optional[Alarm] = None,
    ):
        self.hub = hub or ClientHub()
        self.store = store or NotificationRequestStore()
        self.notifier = notifier or NotificationService(self.hub)
        self.alarm = alarm
        # Requests whose persisted write failed; still swept.
        self._unpersisted: dict[str, ScheduledNotificationRequest] = {}
        self._sweep_lock = asyncio.Lock()
        self._background: set[asyncio.Task] = set()
        self._task: Optional[asyncio.Task] = None
        self._running = False

    # Scheduling

    async def schedule(self, request: ScheduledNotificationRequest) -> None:
        """Persist a request, replacing any with the same id or the same
        routine, execution and type."""
        if request.routine_id is not None or request.execution_id is not None:
            for other in await self.list_pending():
                if other.id != request.id and other.dedupe_key == request.dedupe_key:
                    logger.info(
                        "notification_superseded",
                        id=other.id,
                        replaced_by=request.id,
                    )
                    await self.cancel(other.id)

        if await self.store.put(request):
            self._unpersisted.pop(request.id, None)
        else:
            self._unpersisted[request.id] = request

        logger.info(
            "notification_scheduled",
            id=request.id,
            type=request.type.value,
            scheduled_time=request.scheduled_time.isoformat(),
        )

        if self.alarm is not None:
            delay = (request.scheduled_time - datetime.now(timezone.utc)).total_seconds()
            if delay > 0:
                try:
                    self.alarm.set(_alarm_name(request.id), delay, self._on_alarm)
                except Exception as e:
                    logger.warning("notification_alarm_failed", id=request.id, error=str(e))

    async def cancel(self, request_id: str) -> None:
        """Forget a request. Unknown ids are ignored."""
        await self._forget(request_id)
        if self.alarm is not None:
            self.alarm.cancel(_alarm_name(request_id))
        logger.info("notification_canceled", id=request_id)

    async def list_pending(self) -> list[ScheduledNotificationRequest]:
        persisted = await self.store.get_all()
        known = {r.id for r in persisted}
        return persisted + [r for r in self._unpersisted.values() if r.id not in known]

    async def _forget(self, request_id: str) -> None:
        self._unpersisted.pop(request_id, None)
        await self.store.delete(request_id)

    # Presentation

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """Show every request that is due, then delete it.

        A request whose notification could not be shown stays persisted and
        is retried on the next sweep.

        Returns:
            Number of notifications shown
        """
        now = _as_utc(now)
        shown = 0

        async with self._sweep_lock:
            try:
                pending = await self.list_pending()
            except Exception as e:
                logger.error("notification_sweep_failed", error=str(e))
                return 0

            for request in pending:
                if not request.is_due(now):
                    continue

                try:
                    await self.notifier.show_notification(
                        user_id=request.user_id,
                        title=request.title,
                        body=request.body,
                        tag=_alarm_name(request.id),
                        actions=DEFAULT_ACTIONS,
                        data={
                            "routineId": request.routine_id,
                            "executionId": request.execution_id,
                            "type": request.type.value,
                        },
                    )
                except NotificationPermissionDenied:
                    logger.info("notification_deferred_permission", id=request.id)
                    continue
                except Exception as e:
                    logger.error("notification_show_failed", id=request.id, error=str(e))
                    continue

                shown += 1
                await self._forget(request.id)

        if shown:
            logger.info("notification_sweep_completed", shown=shown)
        return shown

    async def show_immediate(self, payload: ImmediateNotification) -> Optional[Notification]:
        """Show a notification right away, bypassing persistence."""
        try:
            return await self.notifier.show_notification(
                user_id=payload.user_id,
                title=payload.title,
                body=payload.body,
                tag=payload.tag or IMMEDIATE_TAG,
                actions=payload.actions or DEFAULT_ACTIONS,
                data=payload.data,
            )
        except Exception as e:
            logger.error("notification_immediate_failed", title=payload.title, error=str(e))
            return None

    async def handle_push(
        self, data: Optional[str | bytes], user_id: Optional[UUID] = None
    ) -> Optional[Notification]:
        """Show a pushed notification. Unparseable payloads become the body."""
        settings = get_settings()
        fields = {
            "title": settings.default_push_title,
            "body": settings.default_push_body,
            "tag": settings.default_push_tag,
            "actions": None,
            "data": {},
        }

        text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
        if text:
            try:
                payload = json.loads(text)
            except json.JSONDecodeError:
                payload = None

            if isinstance(payload, dict):
                fields.update({k: v for k, v in payload.items() if k in fields and v is not None})
            else:
                fields["body"] = text

        try:
            actions = [NotificationAction.model_validate(a) for a in fields["actions"] or []]
        except Exception:
            logger.warning("push_actions_invalid", actions=fields["actions"])
            actions = []

        notification = ImmediateNotification(
            title=str(fields["title"]),
            body=str(fields["body"]),
            tag=str(fields["tag"]),
            actions=actions or None,
            data=fields["data"] if isinstance(fields["data"], dict) else {},
            user_id=user_id,
        )
        return await self.show_immediate(notification)

    async def handle_notification_click(
        self,
        user_id: Optional[UUID],
        action: str,
        data: NotificationData,
        tag: Optional[str] = None,
    ) -> Optional[str]:
        """Hand a notification interaction to the foreground.

        Posts NOTIFICATION_ACTION to an open client when there is one;
        otherwise asks for a fresh app view. Execution status is never
        changed here.

        Returns:
            URL of the requested app view, or None if a client took the action
        """
        if tag and user_id is not None:
            try:
                await self.notifier.close_notification(user_id, tag)
            except Exception as e:
                logger.warning("notification_close_failed", tag=tag, error=str(e))

        message = NotificationActionMessage(
            action=action,
            routine_id=data.routine_id,
            execution_id=data.execution_id,
        )
        if await self.hub.post_to_first(user_id, message.model_dump(by_alias=True)):
            logger.info("notification_action_posted", action=action, routine_id=data.routine_id)
            return None

        path = get_settings().app_routines_path
        if action == "start" and data.routine_id:
            url = f"{path}?start={data.routine_id}"
        else:
            url = path
        self.hub.open_window(user_id, url)
        return url

    # Triggers

    async def handle_message(self, message: SchedulerMessage) -> Optional[dict]:
        """Apply one protocol message. Only GET_SCHEDULED produces a reply."""
        match message:
            case ScheduleNotificationMessage(payload=request):
                await self.schedule(request)
                return None
            case CancelNotificationMessage(payload=payload):
                await self.cancel(payload.id)
                return None
            case GetScheduledMessage():
                pending = await self.list_pending()
                return {
                    "notifications": [r.model_dump(mode="json", by_alias=True) for r in pending]
                }
            case ShowImmediateMessage(payload=payload):
                await self.show_immediate(payload)
                return None
            case _:
                raise TypeError(f"Unsupported scheduler message: {type(message).__name__}")

    async def handle_event(self, event: WorkerEvent) -> Optional[dict]:
        """Dispatch one background wake trigger."""
        logger.debug("scheduler_event", kind=event.kind)
        match event:
            case InstallEvent():
                logger.info("scheduler_installed")
            case ActivateEvent():
                logger.info("scheduler_activated")
            case PushEvent(data=data, user_id=user_id):
                await self.handle_push(data, user_id)
            case PeriodicSyncEvent(tag=tag):
                if tag == CHECK_ROUTINES_TAG:
                    await self.sweep()
            case SyncEvent(tag=tag):
                if tag == SYNC_ROUTINES_TAG:
                    logger.info("scheduler_sync_requested", tag=tag)
            case MessageEvent(message=message):
                return await self.handle_message(message)
            case NotificationClickEvent(user_id=user_id, action=action, data=data, tag=tag):
                url = await self.handle_notification_click(user_id, action, data, tag)
                return {"url": url}
            case _:
                raise TypeError(f"Unsupported worker event: {type(event).__name__}")
        return None

    def _on_alarm(self) -> None:
        task = asyncio.create_task(self.sweep())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # Lifecycle

    def start(self) -> None:
        """Start the poll loop. The first sweep runs immediately."""
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info("notification_scheduler_started")

    async def stop(self) -> None:
        self._running = False
        if self.alarm is not None:
            self.alarm.clear()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("notification_scheduler_stopped")

    async def _poll_loop(self) -> None:
        interval = get_settings().scheduler_poll_interval_seconds

        while self._running:
            try:
                await self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("notification_poll_error", error=str(e))

            try:
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break
