"""
Realtime websocket endpoint.

Clients connect to ``/ws?token=<jwt>`` and exchange JSON frames of the form
``{"event": <name>, "data": {...}}``. Client events: ``join_thread``,
``leave_thread``, ``send_message``, ``typing_start``, ``typing_stop``.
"""

import json
import uuid
from typing import Any, Optional, Tuple

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from libs.auth.dependencies import load_principal
from libs.common.errors import (
    AppError,
    ForbiddenError,
    UnauthorizedError,
    ValidationError,
)
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.communications_service.services import messaging
from services.communications_service.services.realtime import ConnectionRegistry
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["realtime"])
logger = get_logger(__name__)

CLOSE_UNAUTHORIZED = 4401
CLOSE_FORBIDDEN = 4403


def _thread_id(data: dict) -> uuid.UUID:
    try:
        return uuid.UUID(str(data.get("thread_id")))
    except ValueError:
        raise ValidationError("thread_id must be a UUID")


def parse_frame(raw: str) -> Tuple[Optional[str], dict]:
    """Split a client frame into ``(event, data)``; bad shapes raise ValidationError."""
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationError("Frames must be JSON")
    if not isinstance(frame, dict):
        raise ValidationError("Frames must be JSON objects")

    data = frame.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Frame data must be a JSON object")
    return frame.get("event"), data


async def handle_client_event(
    db: AsyncSession,
    registry: ConnectionRegistry,
    user_id: uuid.UUID,
    websocket: Any,
    event: Optional[str],
    data: dict,
) -> None:
    """Act on one frame received from a connected client."""
    if event == "join_thread":
        thread_id = _thread_id(data)
        if await messaging.get_participant(db, thread_id, user_id) is None:
            await websocket.send_json(
                {"event": "error", "data": {"message": "Not a participant of this thread"}}
            )
            return
        registry.join_thread(user_id, thread_id)
        await websocket.send_json(
            {"event": "thread_joined", "data": {"thread_id": str(thread_id)}}
        )

    elif event == "leave_thread":
        registry.leave_thread(user_id, _thread_id(data))

    elif event == "send_message":
        await messaging.post_message(
            db,
            thread_id=_thread_id(data),
            sender_id=user_id,
            content=str(data.get("content") or ""),
            registry=registry,
        )

    elif event in ("typing_start", "typing_stop"):
        thread_id = _thread_id(data)
        await registry.emit_to_thread(
            thread_id,
            "user_typing" if event == "typing_start" else "user_stopped_typing",
            {"thread_id": thread_id, "user_id": user_id},
            exclude=user_id,
        )

    else:
        await websocket.send_json(
            {"event": "error", "data": {"message": f"Unknown event: {event}"}}
        )


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    token: Optional[str] = None,
    db: AsyncSession = Depends(get_async_db),
):
    registry: ConnectionRegistry = websocket.app.state.registry
    try:
        user = await load_principal(db, token or "")
        user_id = user.member_id
    except UnauthorizedError as exc:
        logger.info("Rejected websocket connection: %s", exc.message)
        await websocket.close(code=CLOSE_UNAUTHORIZED)
        return
    except ForbiddenError:
        await websocket.close(code=CLOSE_FORBIDDEN)
        return

    await websocket.accept()
    came_online = registry.connect(user_id, websocket)
    for thread_id in await messaging.active_thread_ids(db, user_id):
        registry.join_thread(user_id, thread_id)
    if came_online:
        await registry.broadcast(
            "user_status_change", {"user_id": user_id, "status": "online"}, exclude=user_id
        )

    try:
        while True:
            try:
                event, data = parse_frame(await websocket.receive_text())
                await handle_client_event(db, registry, user_id, websocket, event, data)
            except AppError as exc:
                await websocket.send_json(
                    {"event": "error", "data": {"message": exc.message}}
                )
    except WebSocketDisconnect:
        logger.debug("Websocket closed by user %s", user_id)
    finally:
        if registry.disconnect(user_id, websocket):
            await registry.broadcast(
                "user_status_change", {"user_id": user_id, "status": "offline"}
            )
