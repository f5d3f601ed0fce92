"""
Attendance warnings: members the year's penalty policy would penalize, while
meetings remain in the year, get an email and an ``attendance_warning``
notification.
"""

from typing import Optional

from libs.common.datetime_utils import utc_now, year_bounds
from libs.common.logging import get_logger
from services.communications_service.models import (
    NotificationPriority,
    NotificationType,
)
from services.communications_service.services.notifications import notify_user
from services.communications_service.services.realtime import ConnectionRegistry
from services.communications_service.templates.attendance import (
    send_attendance_warning_email,
)
from services.dues_service.services.ledger import sum_regular_dues
from services.events_service.models import Event, EventStatus, EventType
from services.events_service.services.penalties import count_attended, held_meeting_ids
from services.events_service.services.penalty_policy import (
    attendance_percent,
    resolve_policy,
)
from services.members_service.services.member_service import list_active_members
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

UPCOMING_STATUSES = (EventStatus.PUBLISHED, EventStatus.DRAFT)


async def count_remaining_meetings(db: AsyncSession, year: int) -> int:
    """Meetings of ``year`` that have not started yet."""
    _, end = year_bounds(year)
    count = await db.scalar(
        select(func.count(Event.id)).where(
            Event.event_type == EventType.MEETINGS,
            Event.status.in_(UPCOMING_STATUSES),
            Event.start_date >= utc_now(),
            Event.start_date < end,
        )
    )
    return int(count or 0)


async def send_attendance_warnings(
    db: AsyncSession,
    year: int,
    registry: Optional[ConnectionRegistry] = None,
) -> int:
    """Warn every active member the penalty policy would penalize. Returns the number warned."""
    meeting_ids = await held_meeting_ids(db, year)
    if not meeting_ids:
        logger.info("No meetings found for %s; skipping attendance warnings", year)
        return 0

    remaining = await count_remaining_meetings(db, year)
    if remaining == 0:
        logger.info("No meetings left in %s; skipping attendance warnings", year)
        return 0

    policy = await resolve_policy(db, year)
    total = len(meeting_ids)
    members = await list_active_members(db)
    logger.info("Checking attendance of %d members for %s warnings", len(members), year)

    warned = 0
    for member in members:
        attended = await count_attended(db, member.id, meeting_ids)
        regular_dues = await sum_regular_dues(db, member_id=member.id, year=year)
        assessment = policy.assess(
            attended=attended, total=total, regular_dues=regular_dues
        )
        if not assessment.penalize:
            continue

        percentage = attendance_percent(attended, total)
        sent = await send_attendance_warning_email(
            to_email=member.email,
            member_name=member.first_name,
            year=year,
            total_meetings=total,
            attended_meetings=attended,
            attendance_percentage=percentage,
            remaining_meetings=remaining,
        )
        if not sent:
            logger.warning("Attendance warning email to %s was not sent", member.email)

        await notify_user(
            db,
            user_id=member.id,
            type=NotificationType.ATTENDANCE_WARNING,
            priority=NotificationPriority.HIGH,
            title=f"Meeting attendance warning: {assessment.description}",
            message=(
                f"You have attended {attended} of {total} meetings in {year} "
                f"({percentage}%). {remaining} meeting(s) remain this year."
            ),
            data={
                "year": year,
                "attended_meetings": attended,
                "total_meetings": total,
                "attendance_percentage": percentage,
                "remaining_meetings": remaining,
            },
            registry=registry,
        )
        warned += 1

    logger.info("Sent %d attendance warnings for %s", warned, year)
    return warned
