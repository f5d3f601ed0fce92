"""
Notifications router for Communications Service.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import get_current_user, require_admin
from libs.auth.models import AuthUser
from libs.common.datetime_utils import utc_now
from libs.common.errors import NotFoundError
from libs.common.responses import (
    Envelope,
    ListEnvelope,
    MessageEnvelope,
    Pagination,
    page_offset,
)
from libs.db.session import get_async_db
from services.communications_service.models import UserNotification
from services.communications_service.schemas import (
    NotificationCreate,
    NotificationResponse,
    UnreadCountResponse,
)
from services.communications_service.services.notifications import (
    not_expired,
    notify_user,
    unread_notification_count,
)
from services.communications_service.services.realtime import (
    ConnectionRegistry,
    get_registry,
)
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/notifications", tags=["notifications"])


async def _get_own_notification(
    db: AsyncSession, notification_id: uuid.UUID, user_id: uuid.UUID
) -> UserNotification:
    notification = await db.get(UserNotification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotFoundError("Notification not found")
    return notification


@router.get("/", response_model=ListEnvelope[NotificationResponse])
async def list_my_notifications(
    unread_only: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """List the caller's notifications, newest first."""
    query = select(UserNotification).where(
        UserNotification.user_id == current_user.member_id, not_expired()
    )
    if unread_only:
        query = query.where(UserNotification.is_read.is_(False))

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(
        query.order_by(UserNotification.created_at.desc())
        .offset(page_offset(page, limit))
        .limit(limit)
    )
    notifications = [
        NotificationResponse.model_validate(n) for n in result.scalars().all()
    ]
    return ListEnvelope(
        count=len(notifications),
        data=notifications,
        pagination=Pagination.build(page, limit, total or 0),
    )


@router.get("/unread-count", response_model=Envelope[UnreadCountResponse])
async def get_unread_count(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    count = await unread_notification_count(db, current_user.member_id)
    return Envelope(data=UnreadCountResponse(unread_count=count))


@router.post(
    "/",
    response_model=ListEnvelope[NotificationResponse],
    status_code=status.HTTP_201_CREATED,
)
async def send_notifications(
    payload: NotificationCreate,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """Send a notification to the given members (admin only)."""
    created = []
    for user_id in dict.fromkeys(payload.user_ids):
        notification = await notify_user(
            db,
            user_id=user_id,
            title=payload.title,
            message=payload.message,
            type=payload.type,
            data=payload.data,
            priority=payload.priority,
            expires_at=payload.expires_at,
            registry=registry,
        )
        created.append(NotificationResponse.model_validate(notification))
    return ListEnvelope(count=len(created), data=created)


@router.patch("/read-all", response_model=MessageEnvelope)
async def mark_all_read(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    result = await db.execute(
        update(UserNotification)
        .where(
            UserNotification.user_id == current_user.member_id,
            UserNotification.is_read.is_(False),
        )
        .values(is_read=True, read_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return MessageEnvelope(message=f"{result.rowcount} notification(s) marked as read")


@router.patch("/{notification_id}/read", response_model=Envelope[NotificationResponse])
async def mark_notification_read(
    notification_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    notification = await _get_own_notification(
        db, notification_id, current_user.member_id
    )
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utc_now()
        await db.commit()
        await db.refresh(notification)
    return Envelope(data=NotificationResponse.model_validate(notification))


@router.delete("/{notification_id}", response_model=MessageEnvelope)
async def delete_notification(
    notification_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    notification = await _get_own_notification(
        db, notification_id, current_user.member_id
    )
    await db.execute(
        delete(UserNotification).where(UserNotification.id == notification.id)
    )
    await db.commit()
    return MessageEnvelope(message="Notification deleted")
