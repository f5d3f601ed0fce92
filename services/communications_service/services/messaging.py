"""
Message threads: participants, messages, read receipts and unread counts.

A participant's unread messages are the thread's messages created after
their ``last_read_at`` that they did not send and that are not deleted. A
participant who never read the thread has every such message unread.
"""

import uuid
from typing import Dict, List, Optional, Sequence, Tuple

from libs.common.datetime_utils import utc_now
from libs.common.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from libs.common.logging import get_logger
from services.communications_service.models import (
    MessageReadReceipt,
    MessageThread,
    ParticipantRole,
    ThreadMessage,
    ThreadParticipant,
    ThreadType,
)
from services.communications_service.schemas import (
    MessageResponse,
    ParticipantResponse,
    ThreadResponse,
)
from services.communications_service.services.realtime import ConnectionRegistry
from services.members_service.models import Member, MemberStatus
from services.members_service.schemas import MemberSummary
from services.members_service.services.member_service import find_members
from sqlalchemy import exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def get_participant(
    db: AsyncSession, thread_id: uuid.UUID, user_id: uuid.UUID
) -> Optional[ThreadParticipant]:
    """Active participant record of ``user_id`` in the thread, if any."""
    result = await db.execute(
        select(ThreadParticipant).where(
            ThreadParticipant.thread_id == thread_id,
            ThreadParticipant.user_id == user_id,
            ThreadParticipant.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def require_participant(
    db: AsyncSession, thread_id: uuid.UUID, user_id: uuid.UUID
) -> Tuple[MessageThread, ThreadParticipant]:
    participant = await get_participant(db, thread_id, user_id)
    if participant is None:
        raise NotFoundError("Thread not found or access denied")
    thread = await db.get(MessageThread, thread_id)
    if thread is None or not thread.is_active:
        raise NotFoundError("Thread not found")
    return thread, participant


async def active_thread_ids(db: AsyncSession, user_id: uuid.UUID) -> List[uuid.UUID]:
    result = await db.execute(
        select(ThreadParticipant.thread_id)
        .join(MessageThread, MessageThread.id == ThreadParticipant.thread_id)
        .where(
            ThreadParticipant.user_id == user_id,
            ThreadParticipant.is_active.is_(True),
            MessageThread.is_active.is_(True),
        )
    )
    return list(result.scalars().all())


def _unread_conditions(participant: ThreadParticipant) -> list:
    conditions = [
        ThreadMessage.thread_id == participant.thread_id,
        ThreadMessage.sender_id != participant.user_id,
        ThreadMessage.is_deleted.is_(False),
    ]
    if participant.last_read_at is not None:
        conditions.append(ThreadMessage.created_at > participant.last_read_at)
    return conditions


async def unread_count(db: AsyncSession, participant: ThreadParticipant) -> int:
    count = await db.scalar(
        select(func.count(ThreadMessage.id)).where(*_unread_conditions(participant))
    )
    return int(count or 0)


async def _participants(db: AsyncSession, thread_id: uuid.UUID) -> List[ThreadParticipant]:
    result = await db.execute(
        select(ThreadParticipant)
        .where(
            ThreadParticipant.thread_id == thread_id,
            ThreadParticipant.is_active.is_(True),
        )
        .order_by(ThreadParticipant.joined_at)
    )
    return list(result.scalars().all())


async def _read_by(
    db: AsyncSession, message_ids: Sequence[uuid.UUID]
) -> Dict[uuid.UUID, List[uuid.UUID]]:
    if not message_ids:
        return {}
    result = await db.execute(
        select(MessageReadReceipt.message_id, MessageReadReceipt.user_id).where(
            MessageReadReceipt.message_id.in_(message_ids)
        )
    )
    readers: Dict[uuid.UUID, List[uuid.UUID]] = {}
    for message_id, user_id in result.all():
        readers.setdefault(message_id, []).append(user_id)
    return readers


# ---------------------------------------------------------------------------
# Response building
# ---------------------------------------------------------------------------


async def participant_responses(
    db: AsyncSession,
    thread_id: uuid.UUID,
    registry: Optional[ConnectionRegistry] = None,
) -> List[ParticipantResponse]:
    participants = await _participants(db, thread_id)
    members = {m.id: m for m in await find_members(db, [p.user_id for p in participants])}
    responses = []
    for participant in participants:
        member = members.get(participant.user_id)
        responses.append(
            ParticipantResponse.model_validate(participant).model_copy(
                update={
                    "member": MemberSummary.model_validate(member) if member else None,
                    "is_online": bool(registry and registry.is_online(participant.user_id)),
                }
            )
        )
    return responses


async def thread_response(
    db: AsyncSession,
    thread: MessageThread,
    viewer: ThreadParticipant,
    registry: Optional[ConnectionRegistry] = None,
) -> ThreadResponse:
    return ThreadResponse.model_validate(thread).model_copy(
        update={
            "unread_count": await unread_count(db, viewer),
            "participants": await participant_responses(db, thread.id, registry),
        }
    )


async def message_responses(
    db: AsyncSession, messages: Sequence[ThreadMessage]
) -> List[MessageResponse]:
    readers = await _read_by(db, [m.id for m in messages])
    return [
        MessageResponse.model_validate(m).model_copy(
            update={"read_by": readers.get(m.id, [])}
        )
        for m in messages
    ]


# ---------------------------------------------------------------------------
# Threads
# ---------------------------------------------------------------------------


async def list_user_threads(
    db: AsyncSession,
    user_id: uuid.UUID,
    *,
    offset: int = 0,
    limit: int = 20,
    registry: Optional[ConnectionRegistry] = None,
) -> Tuple[List[ThreadResponse], int]:
    """Threads the user takes part in, most recently active first, with unread counts."""
    base = (
        select(MessageThread, ThreadParticipant)
        .join(ThreadParticipant, ThreadParticipant.thread_id == MessageThread.id)
        .where(
            ThreadParticipant.user_id == user_id,
            ThreadParticipant.is_active.is_(True),
            MessageThread.is_active.is_(True),
        )
    )
    total = await db.scalar(select(func.count()).select_from(base.subquery()))
    result = await db.execute(
        base.order_by(
            func.coalesce(MessageThread.last_message_at, MessageThread.created_at).desc()
        )
        .offset(offset)
        .limit(limit)
    )
    threads = [
        await thread_response(db, thread, participant, registry)
        for thread, participant in result.all()
    ]
    return threads, int(total or 0)


async def _existing_direct_thread(
    db: AsyncSession, user_ids: Sequence[uuid.UUID]
) -> Optional[uuid.UUID]:
    result = await db.execute(
        select(MessageThread.id)
        .join(ThreadParticipant, ThreadParticipant.thread_id == MessageThread.id)
        .where(
            MessageThread.thread_type == ThreadType.DIRECT,
            MessageThread.is_active.is_(True),
            ThreadParticipant.user_id.in_(user_ids),
        )
        .group_by(MessageThread.id)
        .having(func.count(ThreadParticipant.id) == len(user_ids))
    )
    return result.scalars().first()


async def _require_active_members(
    db: AsyncSession, user_ids: Sequence[uuid.UUID]
) -> List[Member]:
    members = [
        m for m in await find_members(db, user_ids) if m.status == MemberStatus.ACTIVE
    ]
    if len(members) != len(set(user_ids)):
        raise ValidationError("Some participants not found")
    return members


async def create_thread(
    db: AsyncSession,
    *,
    creator_id: uuid.UUID,
    subject: str,
    participant_ids: Sequence[uuid.UUID],
    message: str,
    thread_type: ThreadType = ThreadType.DIRECT,
) -> Tuple[MessageThread, ThreadMessage]:
    """Create a thread with its first message; the creator becomes its admin."""
    requested = list(dict.fromkeys(participant_ids))
    await _require_active_members(db, requested)

    all_ids = list(dict.fromkeys([creator_id, *requested]))
    if thread_type == ThreadType.DIRECT:
        if len(all_ids) != 2:
            raise ValidationError("A direct thread has exactly one other participant")
        if await _existing_direct_thread(db, all_ids):
            raise ConflictError("Direct conversation already exists")

    now = utc_now()
    thread = MessageThread(subject=subject, thread_type=thread_type, created_by=creator_id)
    db.add(thread)
    await db.flush()

    for user_id in all_ids:
        db.add(
            ThreadParticipant(
                thread_id=thread.id,
                user_id=user_id,
                role=ParticipantRole.ADMIN if user_id == creator_id else ParticipantRole.PARTICIPANT,
                joined_at=now,
            )
        )

    first = ThreadMessage(
        thread_id=thread.id, sender_id=creator_id, content=message, created_at=now
    )
    db.add(first)
    thread.record_message(first)
    await db.commit()
    await db.refresh(thread)
    await db.refresh(first)

    logger.info(
        "Thread %s (%s) created by %s with %d participants",
        thread.id,
        thread_type.value,
        creator_id,
        len(all_ids),
    )
    return thread, first


async def mark_thread_read(db: AsyncSession, participant: ThreadParticipant) -> int:
    """Set ``last_read_at`` and add receipts for unread messages. Returns receipts added."""
    already_read = exists().where(
        MessageReadReceipt.message_id == ThreadMessage.id,
        MessageReadReceipt.user_id == participant.user_id,
    )
    result = await db.execute(
        select(ThreadMessage.id).where(
            ThreadMessage.thread_id == participant.thread_id,
            ThreadMessage.sender_id != participant.user_id,
            ThreadMessage.is_deleted.is_(False),
            ~already_read,
        )
    )
    message_ids = list(result.scalars().all())

    now = utc_now()
    for message_id in message_ids:
        db.add(
            MessageReadReceipt(message_id=message_id, user_id=participant.user_id, read_at=now)
        )
    participant.last_read_at = now
    await db.commit()
    return len(message_ids)


async def get_thread_messages(
    db: AsyncSession, thread_id: uuid.UUID, *, offset: int = 0, limit: int = 50
) -> Tuple[List[ThreadMessage], int]:
    base = select(ThreadMessage).where(
        ThreadMessage.thread_id == thread_id, ThreadMessage.is_deleted.is_(False)
    )
    total = await db.scalar(select(func.count()).select_from(base.subquery()))
    result = await db.execute(
        base.order_by(ThreadMessage.created_at).offset(offset).limit(limit)
    )
    return list(result.scalars().all()), int(total or 0)


async def leave_thread(
    db: AsyncSession,
    *,
    thread_id: uuid.UUID,
    user_id: uuid.UUID,
    registry: Optional[ConnectionRegistry] = None,
) -> None:
    _, participant = await require_participant(db, thread_id, user_id)
    participant.is_active = False
    participant.left_at = utc_now()
    await db.commit()

    if registry is not None:
        registry.leave_thread(user_id, thread_id)
        await registry.emit_to_thread(
            thread_id, "participant_left", {"thread_id": thread_id, "user_id": user_id}
        )


async def add_participants(
    db: AsyncSession,
    *,
    thread_id: uuid.UUID,
    actor_id: uuid.UUID,
    user_ids: Sequence[uuid.UUID],
    registry: Optional[ConnectionRegistry] = None,
) -> List[uuid.UUID]:
    """Add members to a group thread (thread admins only). Returns the ids added."""
    thread, actor = await require_participant(db, thread_id, actor_id)
    if thread.thread_type != ThreadType.GROUP:
        raise ValidationError("Participants can only be added to group threads")
    if actor.role != ParticipantRole.ADMIN:
        raise ForbiddenError("Only thread admins can add participants")

    requested = list(dict.fromkeys(user_ids))
    await _require_active_members(db, requested)

    result = await db.execute(
        select(ThreadParticipant).where(
            ThreadParticipant.thread_id == thread_id,
            ThreadParticipant.user_id.in_(requested),
        )
    )
    existing = {p.user_id: p for p in result.scalars().all()}

    now = utc_now()
    added = []
    for user_id in requested:
        participant = existing.get(user_id)
        if participant is not None and participant.is_active:
            continue
        if participant is not None:
            participant.is_active = True
            participant.left_at = None
            participant.joined_at = now
        else:
            db.add(ThreadParticipant(thread_id=thread_id, user_id=user_id, joined_at=now))
        added.append(user_id)
    await db.commit()

    if added and registry is not None:
        await registry.emit_to_thread(
            thread_id, "participants_added", {"thread_id": thread_id, "user_ids": added}
        )
    return added


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


async def post_message(
    db: AsyncSession,
    *,
    thread_id: uuid.UUID,
    sender_id: uuid.UUID,
    content: str,
    reply_to: Optional[uuid.UUID] = None,
    registry: Optional[ConnectionRegistry] = None,
) -> ThreadMessage:
    """Store a message, refresh the thread preview and emit ``new_message`` to the room."""
    if not content.strip():
        raise ValidationError("Message content is required")
    thread, _ = await require_participant(db, thread_id, sender_id)
    if reply_to is not None:
        original = await db.get(ThreadMessage, reply_to)
        if original is None or original.thread_id != thread_id:
            raise ValidationError("Replied-to message is not in this thread")

    message = ThreadMessage(
        thread_id=thread_id,
        sender_id=sender_id,
        content=content,
        reply_to=reply_to,
        created_at=utc_now(),
    )
    db.add(message)
    thread.record_message(message)
    await db.commit()
    await db.refresh(message)

    if registry is not None:
        (payload,) = await message_responses(db, [message])
        await registry.emit_to_thread(
            thread_id,
            "new_message",
            {
                "thread_id": thread_id,
                "sender_id": sender_id,
                "message": payload.model_dump(mode="json"),
            },
        )
    return message


async def _get_message(db: AsyncSession, message_id: uuid.UUID) -> ThreadMessage:
    message = await db.get(ThreadMessage, message_id)
    if message is None or message.is_deleted:
        raise NotFoundError("Message not found")
    return message


async def mark_message_read(
    db: AsyncSession, *, message_id: uuid.UUID, user_id: uuid.UUID
) -> ThreadMessage:
    message = await _get_message(db, message_id)
    await require_participant(db, message.thread_id, user_id)

    already = await db.scalar(
        select(MessageReadReceipt.id).where(
            MessageReadReceipt.message_id == message_id,
            MessageReadReceipt.user_id == user_id,
        )
    )
    if already is None and message.sender_id != user_id:
        db.add(MessageReadReceipt(message_id=message_id, user_id=user_id))
        await db.commit()
    return message


async def delete_message(
    db: AsyncSession,
    *,
    message_id: uuid.UUID,
    user_id: uuid.UUID,
    registry: Optional[ConnectionRegistry] = None,
) -> None:
    """Soft-delete one of the caller's own messages."""
    message = await _get_message(db, message_id)
    if message.sender_id != user_id:
        raise ForbiddenError("You can only delete your own messages")

    message.is_deleted = True
    message.deleted_at = utc_now()
    await db.commit()

    if registry is not None:
        await registry.emit_to_thread(
            message.thread_id,
            "message_deleted",
            {"thread_id": message.thread_id, "message_id": message_id},
        )
