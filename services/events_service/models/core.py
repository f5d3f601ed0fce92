"""Events Service models: events, attendance and penalty configuration."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import as_utc, utc_now
from libs.db.base import Base
from services.events_service.models.enums import (
    EventStatus,
    EventType,
    RegistrationPaymentStatus,
    enum_values,
)
from sqlalchemy import JSON, Boolean, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import (
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column

# Statuses the clock never rewrites.
FINAL_STATUSES = (EventStatus.COMPLETED, EventStatus.CANCELLED)
# Statuses that count an event as held for attendance purposes.
HELD_STATUSES = (EventStatus.COMPLETED, EventStatus.PUBLISHED)


class Event(Base):
    """Association events; ``event_type=meetings`` feeds penalty reconciliation."""

    __tablename__ = "events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    event_type: Mapped[EventType] = mapped_column(
        SAEnum(
            EventType,
            name="event_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
        index=True,
    )
    start_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    organizer: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    requires_registration: Mapped[bool] = mapped_column(Boolean, default=False)
    registration_fee: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2), nullable=True
    )
    capacity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[EventStatus] = mapped_column(
        SAEnum(
            EventStatus,
            name="event_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=EventStatus.DRAFT,
        nullable=False,
        index=True,
    )
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    @property
    def is_meeting(self) -> bool:
        return self.event_type == EventType.MEETINGS

    def clock_status(self, now: Optional[datetime] = None) -> EventStatus:
        """Status implied by the clock; completed and cancelled never change."""
        current = self.status or EventStatus.DRAFT
        if current in FINAL_STATUSES:
            return current
        now = now or utc_now()
        start, end = as_utc(self.start_date), as_utc(self.end_date)
        if end is not None and now > end:
            return EventStatus.COMPLETED
        if start is not None and end is not None and start <= now <= end:
            return EventStatus.PUBLISHED
        return current

    def __repr__(self):
        return f"<Event {self.title} ({self.event_type.value})>"


@event.listens_for(Event, "before_insert")
@event.listens_for(Event, "before_update")
def _sync_status_with_clock(mapper, connection, target: Event) -> None:
    """Apply the clock status unless this save sets the status itself."""
    if inspect(target).attrs.status.history.added:
        return
    target.status = target.clock_status()


class EventAttendance(Base):
    """One member's attendance at one event."""

    __tablename__ = "event_attendance"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_attendance_user"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    attended: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    marked_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    marked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    def __repr__(self):
        return f"<EventAttendance event={self.event_id} user={self.user_id} attended={self.attended}>"


class EventRegistration(Base):
    """A member's registration for an event; ``capacity`` caps the rows per event."""

    __tablename__ = "event_registrations"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_registration_user"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    payment_status: Mapped[RegistrationPaymentStatus] = mapped_column(
        SAEnum(
            RegistrationPaymentStatus,
            name="registration_payment_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=RegistrationPaymentStatus.NOT_REQUIRED,
        nullable=False,
    )
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    def __repr__(self):
        return f"<EventRegistration event={self.event_id} user={self.user_id} payment={self.payment_status.value}>"


class MeetingPenaltyConfig(Base):
    """Tiered penalty rules for a year.

    ``penalty_rules`` is a list of ``{min_attendance, max_attendance,
    penalty_type, penalty_value, description}``; ``default_penalty`` is
    ``{penalty_type, penalty_value}`` and applies when no rule matches.
    """

    __tablename__ = "meeting_penalty_configs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    year: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    penalty_rules: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    default_penalty: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    def __repr__(self):
        return f"<MeetingPenaltyConfig {self.year} active={self.is_active}>"
