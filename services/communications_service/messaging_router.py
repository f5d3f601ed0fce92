"""
Messaging router for Communications Service.

Threads between members, messages, read receipts and unread counts.
"""

import uuid
from typing import List

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.responses import (
    Envelope,
    ListEnvelope,
    MessageEnvelope,
    Pagination,
    page_offset,
)
from libs.db.session import get_async_db
from services.communications_service.schemas import (
    MessageCreate,
    MessageResponse,
    ParticipantResponse,
    ParticipantsAdd,
    ThreadCreate,
    ThreadCreatedResponse,
    ThreadDetailResponse,
    ThreadResponse,
    UnreadCountResponse,
)
from services.communications_service.services import messaging
from services.communications_service.services.realtime import (
    ConnectionRegistry,
    get_registry,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/messages", tags=["messaging"])


@router.get("/threads", response_model=ListEnvelope[ThreadResponse])
async def list_my_threads(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """List the caller's threads with unread counts, most recent first."""
    threads, total = await messaging.list_user_threads(
        db,
        current_user.member_id,
        offset=page_offset(page, limit),
        limit=limit,
        registry=registry,
    )
    return ListEnvelope(
        count=len(threads),
        data=threads,
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/unread-count", response_model=Envelope[UnreadCountResponse])
async def get_unread_message_count(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Total unread messages across the caller's threads."""
    threads, _ = await messaging.list_user_threads(
        db, current_user.member_id, limit=1000
    )
    return Envelope(
        data=UnreadCountResponse(unread_count=sum(t.unread_count for t in threads))
    )


@router.post(
    "/threads",
    response_model=Envelope[ThreadCreatedResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_thread(
    payload: ThreadCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """Start a thread with an opening message."""
    creator_id = current_user.member_id
    thread, first = await messaging.create_thread(
        db,
        creator_id=creator_id,
        subject=payload.subject,
        participant_ids=payload.participants,
        message=payload.message,
        thread_type=payload.thread_type,
    )
    viewer = await messaging.get_participant(db, thread.id, creator_id)
    response = ThreadCreatedResponse(
        thread=await messaging.thread_response(db, thread, viewer, registry),
        first_message=(await messaging.message_responses(db, [first]))[0],
    )

    for participant in response.thread.participants:
        if participant.user_id != creator_id:
            await registry.emit_to_user(
                participant.user_id,
                "new_thread",
                {"thread_id": thread.id, "subject": thread.subject, "created_by": creator_id},
            )
    return Envelope(data=response, message="Thread created")


@router.get("/threads/{thread_id}", response_model=Envelope[ThreadDetailResponse])
async def get_thread(
    thread_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """Get a thread with its messages; marks the thread read for the caller."""
    user_id = current_user.member_id
    thread, participant = await messaging.require_participant(db, thread_id, user_id)
    messages, _ = await messaging.get_thread_messages(
        db, thread_id, offset=page_offset(page, limit), limit=limit
    )
    if await messaging.mark_thread_read(db, participant):
        await registry.emit_to_thread(
            thread_id,
            "messages_read",
            {"thread_id": thread_id, "user_id": user_id},
            exclude=user_id,
        )

    return Envelope(
        data=ThreadDetailResponse(
            thread=await messaging.thread_response(db, thread, participant, registry),
            messages=await messaging.message_responses(db, messages),
        )
    )


@router.get(
    "/threads/{thread_id}/participants",
    response_model=ListEnvelope[ParticipantResponse],
)
async def list_thread_participants(
    thread_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    await messaging.require_participant(db, thread_id, current_user.member_id)
    participants = await messaging.participant_responses(db, thread_id, registry)
    return ListEnvelope(count=len(participants), data=participants)


@router.post(
    "/threads/{thread_id}/participants",
    response_model=Envelope[List[uuid.UUID]],
)
async def add_thread_participants(
    thread_id: uuid.UUID,
    payload: ParticipantsAdd,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """Add members to a group thread (thread admins only)."""
    added = await messaging.add_participants(
        db,
        thread_id=thread_id,
        actor_id=current_user.member_id,
        user_ids=payload.user_ids,
        registry=registry,
    )
    for user_id in added:
        if registry.is_online(user_id):
            registry.join_thread(user_id, thread_id)
    return Envelope(data=added, message=f"{len(added)} participant(s) added")


@router.post(
    "/threads/{thread_id}/messages",
    response_model=Envelope[MessageResponse],
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    thread_id: uuid.UUID,
    payload: MessageCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """Post a message to a thread the caller takes part in."""
    message = await messaging.post_message(
        db,
        thread_id=thread_id,
        sender_id=current_user.member_id,
        content=payload.content,
        reply_to=payload.reply_to,
        registry=registry,
    )
    (response,) = await messaging.message_responses(db, [message])
    return Envelope(data=response)


@router.patch("/threads/{thread_id}/read", response_model=MessageEnvelope)
async def mark_thread_read(
    thread_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    user_id = current_user.member_id
    _, participant = await messaging.require_participant(db, thread_id, user_id)
    marked = await messaging.mark_thread_read(db, participant)
    if marked:
        await registry.emit_to_thread(
            thread_id,
            "messages_read",
            {"thread_id": thread_id, "user_id": user_id},
            exclude=user_id,
        )
    return MessageEnvelope(message=f"Thread marked as read ({marked} messages)")


@router.post("/threads/{thread_id}/leave", response_model=MessageEnvelope)
async def leave_thread(
    thread_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    await messaging.leave_thread(
        db, thread_id=thread_id, user_id=current_user.member_id, registry=registry
    )
    return MessageEnvelope(message="Left thread")


@router.patch("/{message_id}/read", response_model=MessageEnvelope)
async def mark_message_read(
    message_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await messaging.mark_message_read(
        db, message_id=message_id, user_id=current_user.member_id
    )
    return MessageEnvelope(message="Message marked as read")


@router.delete("/{message_id}", response_model=MessageEnvelope)
async def delete_message(
    message_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    await messaging.delete_message(
        db, message_id=message_id, user_id=current_user.member_id, registry=registry
    )
    return MessageEnvelope(message="Message deleted")
