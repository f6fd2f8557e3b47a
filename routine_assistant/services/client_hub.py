"""Registry of open foreground clients (WebSocket connections) per user.

Messages to clients are delivered at most once: a send that fails drops the
connection and the message is not retried.
"""

from typing import Any, Optional
from uuid import UUID

import structlog
from fastapi import WebSocket

logger = structlog.get_logger(__name__)


class ClientHub:
    def __init__(self):
        self.active_connections: dict[UUID, list[WebSocket]] = {}
        self.pending_navigation: dict[UUID, str] = {}

    async def connect(self, websocket: WebSocket, user_id: UUID) -> None:
        """Register an accepted WebSocket and hand it any pending navigation."""
        self.active_connections.setdefault(user_id, []).append(websocket)
        logger.info(
            "client_connected",
            user_id=str(user_id),
            connections=len(self.active_connections[user_id]),
        )

        url = self.pending_navigation.pop(user_id, None)
        if url is not None:
            await self._send(websocket, user_id, {"type": "NAVIGATE", "url": url})

    def disconnect(self, websocket: WebSocket, user_id: UUID) -> None:
        connections = self.active_connections.get(user_id)
        if not connections:
            return

        if websocket in connections:
            connections.remove(websocket)
        if not connections:
            del self.active_connections[user_id]

        logger.info(
            "client_disconnected",
            user_id=str(user_id),
            remaining=len(self.active_connections.get(user_id, [])),
        )

    def has_clients(self, user_id: Optional[UUID]) -> bool:
        return user_id is not None and bool(self.active_connections.get(user_id))

    async def send_to_user(self, user_id: UUID, message: dict[str, Any]) -> int:
        """Send to every connection of a user. Returns the number delivered."""
        delivered = 0
        for websocket in list(self.active_connections.get(user_id, [])):
            if await self._send(websocket, user_id, message):
                delivered += 1
        return delivered

    async def post_to_first(self, user_id: Optional[UUID], message: dict[str, Any]) -> bool:
        """Send to the user's first reachable connection only."""
        if user_id is None:
            return False
        for websocket in list(self.active_connections.get(user_id, [])):
            if await self._send(websocket, user_id, message):
                return True
        return False

    def open_window(self, user_id: Optional[UUID], url: str) -> None:
        """Ask the next client the user opens to start at ``url``."""
        if user_id is None:
            logger.warning("open_window_without_user", url=url)
            return
        self.pending_navigation[user_id] = url
        logger.info("client_navigation_pending", user_id=str(user_id), url=url)

    async def send_to(self, websocket: WebSocket, user_id: UUID, message: dict[str, Any]) -> bool:
        """Send to one connection of a user."""
        return await self._send(websocket, user_id, message)

    def connection_count(self, user_id: UUID) -> int:
        return len(self.active_connections.get(user_id, []))

    async def _send(self, websocket: WebSocket, user_id: UUID, message: dict[str, Any]) -> bool:
        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.error("client_send_failed", user_id=str(user_id), error=str(e))
            self.disconnect(websocket, user_id)
            return False
