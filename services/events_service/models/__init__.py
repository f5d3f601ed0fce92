"""Events Service models package."""

from services.events_service.models.core import (  # noqa: F401
    FINAL_STATUSES,
    HELD_STATUSES,
    Event,
    EventAttendance,
    EventRegistration,
    MeetingPenaltyConfig,
)
from services.events_service.models.enums import (  # noqa: F401
    EventStatus,
    EventType,
    PenaltyType,
    RegistrationPaymentStatus,
)

__all__ = [
    "Event",
    "EventAttendance",
    "EventRegistration",
    "EventStatus",
    "EventType",
    "FINAL_STATUSES",
    "HELD_STATUSES",
    "MeetingPenaltyConfig",
    "PenaltyType",
    "RegistrationPaymentStatus",
]
