"""
Event registration: members sign up for events, capped by ``capacity``.

Registering for a fee-bearing event leaves the registration's payment
pending; a paid registration can only be undone by an administrator.
"""

import uuid
from decimal import Decimal
from typing import List, Optional

from libs.common.errors import ConflictError, NotFoundError, ValidationError
from libs.common.logging import get_logger
from services.events_service.models import (
    Event,
    EventRegistration,
    EventStatus,
    RegistrationPaymentStatus,
)
from services.events_service.services.attendance import get_event_or_404
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def count_registrations(db: AsyncSession, event_id: uuid.UUID) -> int:
    total = await db.scalar(
        select(func.count(EventRegistration.id)).where(
            EventRegistration.event_id == event_id
        )
    )
    return int(total or 0)


async def get_registration(
    db: AsyncSession, event_id: uuid.UUID, user_id: uuid.UUID
) -> Optional[EventRegistration]:
    return await db.scalar(
        select(EventRegistration).where(
            EventRegistration.event_id == event_id,
            EventRegistration.user_id == user_id,
        )
    )


async def register_for_event(
    db: AsyncSession, event_id: uuid.UUID, user_id: uuid.UUID
) -> EventRegistration:
    event = await get_event_or_404(db, event_id)
    current = event.clock_status()
    if current == EventStatus.CANCELLED:
        raise ValidationError("Cannot register for a cancelled event")
    if current == EventStatus.COMPLETED:
        raise ValidationError("Cannot register for a completed event")

    if await get_registration(db, event_id, user_id) is not None:
        raise ConflictError("You are already registered for this event")
    if event.capacity is not None:
        if await count_registrations(db, event_id) >= event.capacity:
            raise ValidationError("Event has reached maximum capacity")

    fee = event.registration_fee or Decimal("0")
    registration = EventRegistration(
        event_id=event_id,
        user_id=user_id,
        payment_status=(
            RegistrationPaymentStatus.PENDING
            if fee > 0
            else RegistrationPaymentStatus.NOT_REQUIRED
        ),
    )
    db.add(registration)
    await db.commit()
    await db.refresh(registration)

    logger.info("Member %s registered for event %s", user_id, event_id)
    return registration


async def unregister_from_event(
    db: AsyncSession, event_id: uuid.UUID, user_id: uuid.UUID
) -> None:
    event = await get_event_or_404(db, event_id)
    if event.clock_status() == EventStatus.COMPLETED:
        raise ValidationError("Cannot unregister from a completed event")

    registration = await get_registration(db, event_id, user_id)
    if registration is None:
        raise NotFoundError("You are not registered for this event")
    if registration.payment_status == RegistrationPaymentStatus.PAID:
        raise ValidationError(
            "Cannot unregister from an event you have already paid for. "
            "Please contact the administrator."
        )

    await db.delete(registration)
    await db.commit()
    logger.info("Member %s unregistered from event %s", user_id, event_id)


async def list_member_registrations(
    db: AsyncSession, user_id: uuid.UUID
) -> List[EventRegistration]:
    result = await db.execute(
        select(EventRegistration)
        .where(EventRegistration.user_id == user_id)
        .order_by(EventRegistration.registered_at.desc())
    )
    return list(result.scalars().all())


async def list_member_events(db: AsyncSession, user_id: uuid.UUID) -> List[Event]:
    """Events the member is registered for, soonest first."""
    result = await db.execute(
        select(Event)
        .join(EventRegistration, EventRegistration.event_id == Event.id)
        .where(EventRegistration.user_id == user_id)
        .order_by(Event.start_date)
    )
    return list(result.scalars().all())
