"""
In-process registry of live websocket connections.

One ``ConnectionRegistry`` is created per application in its lifespan and
reached through ``app.state.registry``. It maps each user to their open
sockets (the user's personal room) and each message thread to the users
joined to it (the thread room). Nothing is shared across processes.

Frames sent to clients are JSON objects ``{"event": <name>, "data": {...}}``.
"""

import uuid
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Set

from fastapi import Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from libs.common.logging import get_logger

logger = get_logger(__name__)

GOING_AWAY = 1001


class ConnectionRegistry:
    def __init__(self) -> None:
        self._sockets: Dict[uuid.UUID, Set[WebSocket]] = defaultdict(set)
        self._thread_members: Dict[uuid.UUID, Set[uuid.UUID]] = defaultdict(set)

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def connect(self, user_id: uuid.UUID, websocket: WebSocket) -> bool:
        """Register an accepted socket. Returns True when the user just came online."""
        came_online = not self._sockets.get(user_id)
        self._sockets[user_id].add(websocket)
        logger.info(
            "User %s connected (%d open sockets)", user_id, len(self._sockets[user_id])
        )
        return came_online

    def disconnect(self, user_id: uuid.UUID, websocket: WebSocket) -> bool:
        """Forget a socket. Returns True when the user's last socket went away."""
        sockets = self._sockets.get(user_id)
        if not sockets:
            return False
        sockets.discard(websocket)
        if sockets:
            return False

        del self._sockets[user_id]
        for thread_id in list(self._thread_members):
            self._leave(thread_id, user_id)
        logger.info("User %s disconnected", user_id)
        return True

    def join_thread(self, user_id: uuid.UUID, thread_id: uuid.UUID) -> None:
        self._thread_members[thread_id].add(user_id)

    def leave_thread(self, user_id: uuid.UUID, thread_id: uuid.UUID) -> None:
        self._leave(thread_id, user_id)

    def _leave(self, thread_id: uuid.UUID, user_id: uuid.UUID) -> None:
        members = self._thread_members.get(thread_id)
        if members is None:
            return
        members.discard(user_id)
        if not members:
            del self._thread_members[thread_id]

    def is_online(self, user_id: uuid.UUID) -> bool:
        return bool(self._sockets.get(user_id))

    def online_users(self) -> List[uuid.UUID]:
        return [user_id for user_id, sockets in self._sockets.items() if sockets]

    def thread_members(self, thread_id: uuid.UUID) -> Set[uuid.UUID]:
        return set(self._thread_members.get(thread_id, ()))

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def emit_to_user(self, user_id: uuid.UUID, event: str, data: Any) -> int:
        """Send to every socket of the user. Returns the number of sockets reached."""
        frame = {"event": event, "data": jsonable_encoder(data)}
        delivered = 0
        for websocket in list(self._sockets.get(user_id, ())):
            if await self._send(user_id, websocket, frame):
                delivered += 1
        return delivered

    async def emit_to_thread(
        self,
        thread_id: uuid.UUID,
        event: str,
        data: Any,
        exclude: Optional[uuid.UUID] = None,
    ) -> int:
        return await self._emit_to_users(
            self.thread_members(thread_id), event, data, exclude
        )

    async def broadcast(
        self, event: str, data: Any, exclude: Optional[uuid.UUID] = None
    ) -> int:
        return await self._emit_to_users(self.online_users(), event, data, exclude)

    async def _emit_to_users(
        self,
        user_ids: Iterable[uuid.UUID],
        event: str,
        data: Any,
        exclude: Optional[uuid.UUID],
    ) -> int:
        delivered = 0
        for user_id in user_ids:
            if user_id == exclude:
                continue
            delivered += await self.emit_to_user(user_id, event, data)
        return delivered

    async def _send(self, user_id: uuid.UUID, websocket: WebSocket, frame: dict) -> bool:
        try:
            await websocket.send_json(frame)
            return True
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            logger.warning("Dropping dead socket for user %s: %s", user_id, exc)
            self.disconnect(user_id, websocket)
            return False

    async def close(self) -> None:
        """Close every open socket; called at application shutdown."""
        for user_id, sockets in list(self._sockets.items()):
            for websocket in list(sockets):
                try:
                    await websocket.close(code=GOING_AWAY)
                except (RuntimeError, OSError) as exc:
                    logger.debug("Socket for user %s already closed: %s", user_id, exc)
        self._sockets.clear()
        self._thread_members.clear()


def get_registry(request: Request) -> ConnectionRegistry:
    """FastAPI dependency returning the application's registry."""
    return request.app.state.registry
