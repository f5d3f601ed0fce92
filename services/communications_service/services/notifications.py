"""
User notifications: persisted, then pushed to the user's live sockets.
"""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.communications_service.models import (
    NotificationPriority,
    NotificationType,
    UserNotification,
)
from services.communications_service.schemas import NotificationResponse
from services.communications_service.services.realtime import ConnectionRegistry
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def notify_user(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    title: str,
    message: str,
    type: NotificationType = NotificationType.SYSTEM,
    data: Optional[dict] = None,
    priority: NotificationPriority = NotificationPriority.NORMAL,
    expires_at: Optional[datetime] = None,
    registry: Optional[ConnectionRegistry] = None,
) -> UserNotification:
    """Create a notification and push it as a ``notification`` event if the user is online."""
    notification = UserNotification(
        user_id=user_id,
        type=type,
        title=title[:200],
        message=message[:500],
        data=data or {},
        priority=priority,
        expires_at=expires_at,
    )
    db.add(notification)
    await db.commit()
    await db.refresh(notification)

    if registry is not None and registry.is_online(user_id):
        await registry.emit_to_user(
            user_id,
            "notification",
            NotificationResponse.model_validate(notification).model_dump(mode="json"),
        )
    logger.info("Notified user %s: %s (%s)", user_id, title, type.value)
    return notification


def not_expired():
    return or_(
        UserNotification.expires_at.is_(None), UserNotification.expires_at > utc_now()
    )


async def unread_notification_count(db: AsyncSession, user_id: uuid.UUID) -> int:
    count = await db.scalar(
        select(func.count(UserNotification.id)).where(
            UserNotification.user_id == user_id,
            UserNotification.is_read.is_(False),
            not_expired(),
        )
    )
    return int(count or 0)
