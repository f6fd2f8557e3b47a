"""Foreground routine queue: one routine prompt on screen at a time.

Items move queued -> current -> resolved. The queue is only ever mutated
through its own methods, each running to completion on the event loop.
Observers receive a snapshot after every state change.
"""

from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import UUID

import structlog

from routine_assistant.exceptions import InvalidTransitionError
from routine_assistant.models.messages import NotificationActionMessage
from routine_assistant.models.queue import QueueItem, QueueSnapshot, QueueState, QueueType
from routine_assistant.models.routine import ExecutionStatus, ExecutionWithRoutine
from routine_assistant.services.due_service import is_overdue_for_closure, to_local
from routine_assistant.services.routine_store import RoutineStore

logger = structlog.get_logger(__name__)

QueueObserver = Callable[[QueueSnapshot], None]


def queue_item_from_execution(
    execution: ExecutionWithRoutine, queue_type: QueueType
) -> QueueItem:
    return QueueItem(
        execution_id=execution.id,
        routine_id=execution.routine_id,
        title=execution.title,
        start_time=execution.scheduled_time,
        end_time=execution.planned_end_time or execution.routine_end_time,
        category=execution.category,
        queue_type=queue_type,
        status=execution.status,
    )


class RoutineQueue:
    """Sequential prompt queue for one user session."""

    def __init__(self, store: Optional[RoutineStore] = None):
        self.store = store or RoutineStore()
        self._queue: list[QueueItem] = []
        self._current: Optional[QueueItem] = None
        self._observers: list[QueueObserver] = []

    # Observation

    def subscribe(self, observer: QueueObserver) -> Callable[[], None]:
        """Register an observer. Returns a callable that unregisters it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def snapshot(self) -> QueueSnapshot:
        return QueueSnapshot(
            queue=list(self._queue),
            current=self._current,
            state=self.state,
        )

    @property
    def state(self) -> QueueState:
        return QueueState.IDLE if self._current is None else QueueState.DRAINING

    @property
    def current(self) -> Optional[QueueItem]:
        return self._current

    def __len__(self) -> int:
        return len(self._queue)

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception as e:
                logger.warning("queue_observer_failed", error=str(e))

    # Loading and enqueueing

    def _contains(self, item: QueueItem) -> bool:
        if self._current is not None and self._current.key == item.key:
            return True
        return any(queued.key == item.key for queued in self._queue)

    async def load_overdue_routines(self, user_id: UUID, now: Optional[datetime] = None) -> int:
        """Queue end prompts for today's pending executions past their end time.

        Today's executions are materialised first. Items are appended in
        scheduled-time order; duplicates are skipped.

        Returns:
            Number of items added
        """
        local = to_local(now or datetime.now(timezone.utc))
        today = local.date()

        try:
            await self.store.ensure_executions(user_id, today)
            executions = await self.store.list_executions(
                user_id, today, status=ExecutionStatus.PENDING
            )
        except Exception as e:
            logger.error("queue_load_failed", user_id=str(user_id), error=str(e))
            return 0

        overdue = [
            e for e in executions
            if is_overdue_for_closure(e, local, routine_end_time=e.routine_end_time)
        ]
        overdue.sort(key=lambda e: e.scheduled_time)

        added = 0
        for execution in overdue:
            item = queue_item_from_execution(execution, QueueType.END)
            if self._contains(item):
                continue
            self._queue.append(item)
            added += 1

        logger.info("queue_overdue_loaded", user_id=str(user_id), added=added)

        if self._current is None and self._queue:
            self.process_next()
        else:
            self._notify()
        return added

    def add_to_queue(self, item: QueueItem) -> bool:
        """Append an item unless the same execution and prompt type is present.

        Returns:
            True if the item was added
        """
        if self._contains(item):
            return False

        self._queue.append(item)

        if self._current is None:
            self.process_next()
        else:
            self._notify()
        return True

    async def enqueue_from_action(
        self, user_id: UUID, message: NotificationActionMessage
    ) -> bool:
        """Queue a start prompt for the execution a notification was tapped for."""
        if message.action != "start" or not message.execution_id:
            return False

        try:
            execution = await self.store.get_execution_with_routine(UUID(message.execution_id))
        except Exception as e:
            logger.error("queue_action_lookup_failed", error=str(e))
            return False

        if execution is None or execution.user_id != user_id:
            return False
        if execution.status != ExecutionStatus.PENDING:
            return False

        return self.add_to_queue(queue_item_from_execution(execution, QueueType.START))

    def process_next(self) -> Optional[QueueItem]:
        """Promote the head of the queue to current, or go idle."""
        self._current = self._queue.pop(0) if self._queue else None
        self._notify()
        return self._current

    # Responses

    def _is_current(self, execution_id: UUID) -> bool:
        return self._current is not None and self._current.execution_id == execution_id

    async def _resolve(self, execution_id: UUID, target: ExecutionStatus) -> bool:
        if not self._is_current(execution_id):
            logger.debug("queue_response_ignored", execution_id=str(execution_id))
            return False

        try:
            await self.store.transition_execution(execution_id, target)
        except InvalidTransitionError as e:
            # Already resolved elsewhere; the prompt is stale.
            logger.warning("queue_stale_prompt", execution_id=str(execution_id), current=e.current)
        except Exception as e:
            logger.error("queue_update_failed", execution_id=str(execution_id), error=str(e))
            return False

        self.process_next()
        return True

    async def start_routine(self, execution_id: UUID) -> bool:
        """Mark the current execution in progress and advance."""
        return await self._resolve(execution_id, ExecutionStatus.IN_PROGRESS)

    async def mark_as_processed(self, execution_id: UUID, completed: bool) -> bool:
        """Close the current execution as done or not done and advance."""
        target = ExecutionStatus.DONE if completed else ExecutionStatus.NOT_DONE
        return await self._resolve(execution_id, target)

    async def cancel_routine(self, execution_id: UUID) -> bool:
        """Mark the current execution not done and advance."""
        return await self._resolve(execution_id, ExecutionStatus.NOT_DONE)

    def clear_queue(self) -> None:
        """Drop every item without touching execution state."""
        self._queue = []
        self._current = None
        self._notify()


class QueueRegistry:
    """One RoutineQueue per user session."""

    def __init__(self, store: Optional[RoutineStore] = None):
        self.store = store or RoutineStore()
        self._queues: dict[UUID, RoutineQueue] = {}

    def get(self, user_id: UUID) -> RoutineQueue:
        if user_id not in self._queues:
            self._queues[user_id] = RoutineQueue(self.store)
        return self._queues[user_id]

    def discard(self, user_id: UUID) -> None:
        queue = self._queues.pop(user_id, None)
        if queue is not None:
            queue.clear_queue()
