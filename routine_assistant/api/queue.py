"""Routine queue endpoints and the foreground client WebSocket."""

import asyncio
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from routine_assistant.api.dependencies import get_client_hub, get_queue_registry, get_user_id
from routine_assistant.models.messages import NotificationActionMessage
from routine_assistant.models.queue import QueueSnapshot, QueueUpdateMessage
from routine_assistant.services.client_hub import ClientHub
from routine_assistant.services.routine_queue import QueueRegistry, RoutineQueue

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Queue"])


def _snapshot_response(queue: RoutineQueue) -> dict:
    return queue.snapshot().model_dump(mode="json")


def _resolved_or_409(resolved: bool, queue: RoutineQueue) -> dict:
    if not resolved:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Execution is not the current routine prompt",
        )
    return _snapshot_response(queue)


@router.get("/queue")
async def get_queue(
    user_id: UUID = Depends(get_user_id),
    registry: QueueRegistry = Depends(get_queue_registry),
) -> dict:
    return _snapshot_response(registry.get(user_id))


@router.post("/queue/load")
async def load_overdue(
    user_id: UUID = Depends(get_user_id),
    registry: QueueRegistry = Depends(get_queue_registry),
) -> dict:
    """Queue end prompts for today's routines whose end time has passed."""
    queue = registry.get(user_id)
    added = await queue.load_overdue_routines(user_id)
    return {"added": added, **_snapshot_response(queue)}


@router.post("/queue/{execution_id}/start")
async def start_routine(
    execution_id: UUID,
    user_id: UUID = Depends(get_user_id),
    registry: QueueRegistry = Depends(get_queue_registry),
) -> dict:
    queue = registry.get(user_id)
    return _resolved_or_409(await queue.start_routine(execution_id), queue)


@router.post("/queue/{execution_id}/complete")
async def complete_routine(
    execution_id: UUID,
    user_id: UUID = Depends(get_user_id),
    registry: QueueRegistry = Depends(get_queue_registry),
) -> dict:
    queue = registry.get(user_id)
    return _resolved_or_409(await queue.mark_as_processed(execution_id, True), queue)


@router.post("/queue/{execution_id}/skip")
async def skip_routine(
    execution_id: UUID,
    user_id: UUID = Depends(get_user_id),
    registry: QueueRegistry = Depends(get_queue_registry),
) -> dict:
    queue = registry.get(user_id)
    return _resolved_or_409(await queue.mark_as_processed(execution_id, False), queue)


@router.post("/queue/{execution_id}/cancel")
async def cancel_routine(
    execution_id: UUID,
    user_id: UUID = Depends(get_user_id),
    registry: QueueRegistry = Depends(get_queue_registry),
) -> dict:
    queue = registry.get(user_id)
    return _resolved_or_409(await queue.cancel_routine(execution_id), queue)


@router.delete("/queue", status_code=status.HTTP_204_NO_CONTENT)
async def clear_queue(
    user_id: UUID = Depends(get_user_id),
    registry: QueueRegistry = Depends(get_queue_registry),
) -> None:
    """End the session's queue without touching any execution."""
    registry.discard(user_id)


async def _apply_command(queue: RoutineQueue, user_id: UUID, frame: Any) -> None:
    if not isinstance(frame, dict):
        raise ValueError("Command frame must be a JSON object")

    command = frame.get("type")
    execution_id = frame.get("executionId")

    if command == "LOAD":
        await queue.load_overdue_routines(user_id)
    elif command == "NOTIFICATION_ACTION":
        await queue.enqueue_from_action(user_id, NotificationActionMessage.model_validate(frame))
    elif command in ("START", "COMPLETE", "SKIP", "CANCEL") and execution_id:
        if not isinstance(execution_id, str):
            raise ValueError("executionId must be a string")
        target = UUID(execution_id)
        if command == "START":
            await queue.start_routine(target)
        elif command == "COMPLETE":
            await queue.mark_as_processed(target, True)
        elif command == "SKIP":
            await queue.mark_as_processed(target, False)
        else:
            await queue.cancel_routine(target)
    else:
        logger.warning("client_command_unknown", command=command)


@router.websocket("/ws/{user_id}")
async def client_socket(
    websocket: WebSocket,
    user_id: UUID,
    hub: ClientHub = Depends(get_client_hub),
    registry: QueueRegistry = Depends(get_queue_registry),
) -> None:
    """Foreground client session: queue snapshots out, queue commands in.

    A malformed command is logged and dropped; the queue keeps its state.
    """
    await websocket.accept()
    await hub.connect(websocket, user_id)

    queue = registry.get(user_id)
    sends: set[asyncio.Task] = set()

    def push_snapshot(snapshot: QueueSnapshot) -> None:
        frame = QueueUpdateMessage(snapshot=snapshot).model_dump(mode="json")
        task = asyncio.create_task(hub.send_to(websocket, user_id, frame))
        sends.add(task)
        task.add_done_callback(sends.discard)

    unsubscribe = queue.subscribe(push_snapshot)
    await websocket.send_json(QueueUpdateMessage(snapshot=queue.snapshot()).model_dump(mode="json"))

    try:
        while True:
            try:
                frame = await websocket.receive_json()
                await _apply_command(queue, user_id, frame)
            except (ValidationError, ValueError) as e:
                logger.warning("client_command_invalid", user_id=str(user_id), error=str(e))
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
        hub.disconnect(websocket, user_id)
        if not hub.has_clients(user_id):
            registry.discard(user_id)
