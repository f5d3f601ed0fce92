"""
Model factories for creating valid test data.

Every factory produces a valid, insertable SQLAlchemy model instance.
Override any field via kwargs.

Usage:
    member = MemberFactory.create(email="custom@test.com")
    db_session.add(member)
    await db_session.commit()
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _uuid() -> uuid.UUID:
    return uuid.uuid4()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _unique_email() -> str:
    return f"test-{uuid.uuid4().hex[:8]}@test.com"


def start_of_year(year: int) -> datetime:
    """A moment on Jan 1 that has passed for any date in ``year``."""
    return datetime(year, 1, 1, 0, 0, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Members Service
# ---------------------------------------------------------------------------


class MemberFactory:
    @staticmethod
    def create(**overrides):
        from services.members_service.models import Member, MemberRole, MemberStatus

        defaults = {
            "id": _uuid(),
            "email": _unique_email(),
            "first_name": "Test",
            "last_name": "Member",
            "role": MemberRole.MEMBER,
            "status": MemberStatus.ACTIVE,
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return Member(**defaults)


# ---------------------------------------------------------------------------
# Dues Service
# ---------------------------------------------------------------------------


class DueFactory:
    @staticmethod
    def create(assigned_to=None, **overrides):
        from services.dues_service.models import Due, DueStatus

        year = overrides.pop("year", _now().year)
        defaults = {
            "id": _uuid(),
            "assigned_to": assigned_to or _uuid(),
            "year": year,
            "title": f"Annual Dues {year}",
            "amount": Decimal("20000.00"),
            "due_date": datetime(year, 12, 31, tzinfo=timezone.utc),
            "status": DueStatus.PENDING,
            "is_penalty": False,
        }
        defaults.update(overrides)
        return Due(**defaults)


class PenaltyDueFactory:
    """A meeting penalty as reconciliation writes it."""

    @staticmethod
    def create(assigned_to, year: int, **overrides):
        from services.dues_service.services.ledger import (
            penalty_due_date,
            penalty_key,
            penalty_title,
        )

        defaults = {
            "title": penalty_title(year),
            "amount": Decimal("10000.00"),
            "due_date": penalty_due_date(year),
            "is_penalty": True,
            "penalty_key": penalty_key(assigned_to, year),
        }
        defaults.update(overrides)
        return DueFactory.create(assigned_to=assigned_to, year=year, **defaults)


# ---------------------------------------------------------------------------
# Events Service
# ---------------------------------------------------------------------------


class EventFactory:
    @staticmethod
    def create(**overrides):
        from services.events_service.models import Event, EventStatus, EventType

        start = overrides.pop("start_date", _now() + timedelta(days=7))
        defaults = {
            "id": _uuid(),
            "title": "Monthly General Meeting",
            "event_type": EventType.CONFERENCE,
            "start_date": start,
            "end_date": start + timedelta(hours=2),
            "location": "Main Hall",
            "status": EventStatus.PUBLISHED,
        }
        defaults.update(overrides)
        return Event(**defaults)


class MeetingFactory:
    """A held meeting (completed) in the given year."""

    @staticmethod
    def create(year: int, **overrides):
        from services.events_service.models import EventStatus, EventType

        defaults = {
            "event_type": EventType.MEETINGS,
            "status": EventStatus.COMPLETED,
            "start_date": start_of_year(year),
        }
        defaults.update(overrides)
        return EventFactory.create(**defaults)


class AttendanceFactory:
    @staticmethod
    def create(event_id=None, user_id=None, **overrides):
        from services.events_service.models import EventAttendance

        defaults = {
            "id": _uuid(),
            "event_id": event_id or _uuid(),
            "user_id": user_id or _uuid(),
            "attended": True,
            "marked_at": _now(),
        }
        defaults.update(overrides)
        return EventAttendance(**defaults)


class RegistrationFactory:
    @staticmethod
    def create(event_id, user_id, **overrides):
        from services.events_service.models import (
            EventRegistration,
            RegistrationPaymentStatus,
        )

        defaults = {
            "id": _uuid(),
            "event_id": event_id,
            "user_id": user_id,
            "payment_status": RegistrationPaymentStatus.NOT_REQUIRED,
            "registered_at": _now(),
        }
        defaults.update(overrides)
        return EventRegistration(**defaults)


class PenaltyConfigFactory:
    @staticmethod
    def create(year: int, **overrides):
        from services.events_service.models import MeetingPenaltyConfig

        defaults = {
            "id": _uuid(),
            "year": year,
            "is_active": True,
            "penalty_rules": [
                {
                    "min_attendance": 0,
                    "max_attendance": 0,
                    "penalty_type": "fixed",
                    "penalty_value": 5000,
                    "description": "Missed every meeting",
                },
                {
                    "min_attendance": 1,
                    "max_attendance": 2,
                    "penalty_type": "multiplier",
                    "penalty_value": 0.25,
                    "description": "Attended one or two meetings",
                },
            ],
            "default_penalty": {"penalty_type": "fixed", "penalty_value": 0},
        }
        defaults.update(overrides)
        return MeetingPenaltyConfig(**defaults)


# ---------------------------------------------------------------------------
# Communications Service
# ---------------------------------------------------------------------------


class ThreadFactory:
    @staticmethod
    def create(created_by=None, **overrides):
        from services.communications_service.models import MessageThread, ThreadType

        defaults = {
            "id": _uuid(),
            "subject": "Committee planning",
            "thread_type": ThreadType.GROUP,
            "created_by": created_by or _uuid(),
            "is_active": True,
        }
        defaults.update(overrides)
        return MessageThread(**defaults)


class ParticipantFactory:
    @staticmethod
    def create(thread_id, user_id, **overrides):
        from services.communications_service.models import (
            ParticipantRole,
            ThreadParticipant,
        )

        defaults = {
            "id": _uuid(),
            "thread_id": thread_id,
            "user_id": user_id,
            "role": ParticipantRole.PARTICIPANT,
            "is_active": True,
            "joined_at": _now(),
        }
        defaults.update(overrides)
        return ThreadParticipant(**defaults)


class MessageFactory:
    @staticmethod
    def create(thread_id, sender_id, **overrides):
        from services.communications_service.models import ThreadMessage

        defaults = {
            "id": _uuid(),
            "thread_id": thread_id,
            "sender_id": sender_id,
            "content": "Hello everyone",
            "created_at": _now(),
        }
        defaults.update(overrides)
        return ThreadMessage(**defaults)


class NotificationFactory:
    @staticmethod
    def create(user_id=None, **overrides):
        from services.communications_service.models import (
            NotificationType,
            UserNotification,
        )

        defaults = {
            "id": _uuid(),
            "user_id": user_id or _uuid(),
            "type": NotificationType.SYSTEM,
            "title": "Welcome",
            "message": "Welcome to the association",
            "data": {},
            "is_read": False,
        }
        defaults.update(overrides)
        return UserNotification(**defaults)
