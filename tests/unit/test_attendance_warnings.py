"""Unit tests for attendance warnings and attendance marking."""

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from libs.common.datetime_utils import utc_now
from libs.common.errors import NotFoundError, ValidationError
from services.communications_service.models import NotificationType, UserNotification
from services.communications_service.services.realtime import ConnectionRegistry
from services.dues_service.services.ledger import get_penalty_due
from services.events_service.models import EventStatus, EventType
from services.events_service.services.attendance import AttendanceEntry, mark_attendance
from services.events_service.services.warnings import (
    count_remaining_meetings,
    send_attendance_warnings,
)
from sqlalchemy import select
from tests.factories import (
    AttendanceFactory,
    DueFactory,
    EventFactory,
    MeetingFactory,
    MemberFactory,
    PenaltyConfigFactory,
)
from tests.fakes import FakeSocket

WARNING_EMAIL = "services.events_service.services.warnings.send_attendance_warning_email"


def _upcoming_meeting():
    return EventFactory.create(
        event_type=EventType.MEETINGS,
        status=EventStatus.DRAFT,
        start_date=utc_now() + timedelta(hours=1),
    )


async def _seed(db_session, *, attended: bool, upcoming: bool = True):
    year = utc_now().year
    member = MemberFactory.create(first_name="Ada")
    meeting = MeetingFactory.create(year)
    db_session.add_all([member, meeting])
    if upcoming:
        db_session.add(_upcoming_meeting())
    await db_session.commit()
    db_session.add(
        AttendanceFactory.create(event_id=meeting.id, user_id=member.id, attended=attended)
    )
    await db_session.commit()
    return year, member, meeting


async def _notifications(db_session, user_id):
    result = await db_session.execute(
        select(UserNotification).where(UserNotification.user_id == user_id)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
@pytest.mark.unit
async def test_member_below_threshold_is_warned(db_session):
    year, member, _ = await _seed(db_session, attended=False)

    with patch(WARNING_EMAIL, new_callable=AsyncMock, return_value=True) as email:
        warned = await send_attendance_warnings(db_session, year)

    assert warned == 1
    email.assert_awaited_once()
    kwargs = email.await_args.kwargs
    assert kwargs["to_email"] == member.email
    assert kwargs["attended_meetings"] == 0
    assert kwargs["total_meetings"] == 1
    assert kwargs["remaining_meetings"] == 1

    (notification,) = await _notifications(db_session, member.id)
    assert notification.type == NotificationType.ATTENDANCE_WARNING
    assert notification.data["attendance_percentage"] == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_failed_email_still_notifies(db_session):
    year, member, _ = await _seed(db_session, attended=False)

    with patch(WARNING_EMAIL, new_callable=AsyncMock, return_value=False):
        warned = await send_attendance_warnings(db_session, year)

    assert warned == 1
    assert len(await _notifications(db_session, member.id)) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_member_meeting_threshold_is_not_warned(db_session):
    year, member, _ = await _seed(db_session, attended=True)

    with patch(WARNING_EMAIL, new_callable=AsyncMock, return_value=True) as email:
        warned = await send_attendance_warnings(db_session, year)

    assert warned == 0
    email.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_tiered_config_exemption_suppresses_warning(db_session):
    year, member, _ = await _seed(db_session, attended=False)
    db_session.add(
        PenaltyConfigFactory.create(
            year,
            penalty_rules=[],
            default_penalty={"penalty_type": "fixed", "penalty_value": 0},
        )
    )
    await db_session.commit()

    with patch(WARNING_EMAIL, new_callable=AsyncMock, return_value=True) as email:
        warned = await send_attendance_warnings(db_session, year)

    assert warned == 0
    email.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_tiered_config_warns_members_it_would_penalize(db_session):
    year, member, _ = await _seed(db_session, attended=True)
    db_session.add(
        PenaltyConfigFactory.create(
            year,
            penalty_rules=[],
            default_penalty={"penalty_type": "fixed", "penalty_value": 1000},
        )
    )
    await db_session.commit()

    with patch(WARNING_EMAIL, new_callable=AsyncMock, return_value=True):
        warned = await send_attendance_warnings(db_session, year)

    assert warned == 1
    (notification,) = await _notifications(db_session, member.id)
    assert notification.title == "Meeting attendance warning: Default penalty"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_no_warnings_without_remaining_meetings(db_session):
    year, member, _ = await _seed(db_session, attended=False, upcoming=False)

    with patch(WARNING_EMAIL, new_callable=AsyncMock, return_value=True) as email:
        warned = await send_attendance_warnings(db_session, year)

    assert await count_remaining_meetings(db_session, year) == 0
    assert warned == 0
    email.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_online_member_receives_notification_event(db_session):
    year, member, _ = await _seed(db_session, attended=False)
    registry, socket = ConnectionRegistry(), FakeSocket()
    registry.connect(member.id, socket)

    with patch(WARNING_EMAIL, new_callable=AsyncMock, return_value=True):
        await send_attendance_warnings(db_session, year, registry)

    assert socket.events() == ["notification"]
    assert socket.frames[0]["data"]["type"] == "attendance_warning"


# ---------------------------------------------------------------------------
# Attendance marking
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_marking_meeting_attendance_reconciles_penalties(db_session):
    year = utc_now().year
    member, marker = MemberFactory.create(), MemberFactory.create()
    meetings = [MeetingFactory.create(year) for _ in range(2)]
    db_session.add_all([member, marker, *meetings])
    db_session.add(DueFactory.create(assigned_to=member.id, year=year))
    await db_session.commit()

    result = await mark_attendance(
        db_session,
        event_id=meetings[0].id,
        entries=[AttendanceEntry(user_id=member.id, attended=False, notes="Travelling")],
        marked_by=marker.id,
    )

    (record,) = result.records
    assert record.attended is False
    assert record.notes == "Travelling"
    assert record.marked_by == marker.id
    assert result.reconciliation.year == year
    penalty = await get_penalty_due(db_session, member_id=member.id, year=year)
    assert penalty is not None
    assert result.warnings_sent == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_marking_twice_updates_the_same_record(db_session):
    year = utc_now().year
    member, marker = MemberFactory.create(), MemberFactory.create()
    meeting = MeetingFactory.create(year)
    db_session.add_all([member, marker, meeting])
    await db_session.commit()

    first = await mark_attendance(
        db_session,
        event_id=meeting.id,
        entries=[AttendanceEntry(user_id=member.id, attended=False)],
        marked_by=marker.id,
    )
    second = await mark_attendance(
        db_session,
        event_id=meeting.id,
        entries=[AttendanceEntry(user_id=member.id, attended=True)],
        marked_by=marker.id,
    )

    assert first.records[0].id == second.records[0].id
    assert second.records[0].attended is True


@pytest.mark.asyncio
@pytest.mark.unit
async def test_non_meeting_attendance_skips_reconciliation(db_session):
    member = MemberFactory.create()
    event = EventFactory.create(event_type=EventType.WORKSHOP)
    db_session.add_all([member, event])
    await db_session.commit()

    result = await mark_attendance(
        db_session,
        event_id=event.id,
        entries=[AttendanceEntry(user_id=member.id, attended=True)],
        marked_by=member.id,
    )

    assert result.reconciliation is None
    assert result.warnings_sent is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_empty_attendance_list_is_rejected(db_session):
    with pytest.raises(ValidationError):
        await mark_attendance(
            db_session, event_id=uuid.uuid4(), entries=[], marked_by=uuid.uuid4()
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unknown_event_is_not_found(db_session):
    member = MemberFactory.create()
    with pytest.raises(NotFoundError):
        await mark_attendance(
            db_session,
            event_id=member.id,
            entries=[AttendanceEntry(user_id=member.id, attended=True)],
            marked_by=member.id,
        )
