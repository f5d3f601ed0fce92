"""
Attendance marking for events.

Marking attendance for a meeting reconciles the current year's penalties
before returning, then sends attendance warnings. A failed warning run is
logged and does not fail the marking.
"""

import uuid
from dataclasses import dataclass
from typing import List, Optional, Sequence

from libs.common.datetime_utils import utc_now
from libs.common.errors import NotFoundError, ValidationError
from libs.common.logging import get_logger
from services.communications_service.services.realtime import ConnectionRegistry
from services.events_service.models import Event, EventAttendance
from services.events_service.services.penalties import (
    ReconciliationReport,
    reconcile_meeting_penalties,
)
from services.events_service.services.warnings import send_attendance_warnings
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class AttendanceEntry:
    user_id: uuid.UUID
    attended: bool
    notes: Optional[str] = None


@dataclass
class AttendanceResult:
    records: List[EventAttendance]
    reconciliation: Optional[ReconciliationReport] = None
    warnings_sent: Optional[int] = None


async def get_event_or_404(db: AsyncSession, event_id: uuid.UUID) -> Event:
    event = await db.get(Event, event_id)
    if event is None:
        raise NotFoundError("Event not found")
    return event


async def upsert_attendance(
    db: AsyncSession,
    *,
    event_id: uuid.UUID,
    entries: Sequence[AttendanceEntry],
    marked_by: uuid.UUID,
) -> List[EventAttendance]:
    """One record per (event, user): later entries for a user overwrite earlier ones."""
    result = await db.execute(
        select(EventAttendance).where(
            EventAttendance.event_id == event_id,
            EventAttendance.user_id.in_(list({e.user_id for e in entries})),
        )
    )
    existing = {record.user_id: record for record in result.scalars().all()}

    now = utc_now()
    for entry in entries:
        record = existing.get(entry.user_id)
        if record is None:
            record = EventAttendance(event_id=event_id, user_id=entry.user_id)
            db.add(record)
            existing[entry.user_id] = record
        record.attended = entry.attended
        record.marked_by = marked_by
        record.marked_at = now
        if entry.notes is not None:
            record.notes = entry.notes

    await db.commit()
    return list(existing.values())


async def mark_attendance(
    db: AsyncSession,
    *,
    event_id: uuid.UUID,
    entries: Sequence[AttendanceEntry],
    marked_by: uuid.UUID,
    registry: Optional[ConnectionRegistry] = None,
) -> AttendanceResult:
    if not entries:
        raise ValidationError("Attendance list is required")

    event = await get_event_or_404(db, event_id)
    records = await upsert_attendance(
        db, event_id=event_id, entries=entries, marked_by=marked_by
    )
    logger.info(
        "Marked attendance for %d members at event %s by %s",
        len(records),
        event_id,
        marked_by,
    )

    result = AttendanceResult(records=records)
    if not event.is_meeting:
        return result

    year = utc_now().year
    result.reconciliation = await reconcile_meeting_penalties(db, year)
    try:
        result.warnings_sent = await send_attendance_warnings(db, year, registry)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Attendance warnings for %s failed after marking event %s", year, event_id)
    return result
