"""Enum definitions for events service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class EventType(str, enum.Enum):
    CONFERENCE = "conference"
    WORKSHOP = "workshop"
    SEMINAR = "seminar"
    TRAINING = "training"
    MEETINGS = "meetings"
    STATE_EVENTS = "state_events"
    SOCIAL = "social"
    OTHER = "other"


class EventStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PenaltyType(str, enum.Enum):
    MULTIPLIER = "multiplier"  # fraction of the year's regular dues
    FIXED = "fixed"  # absolute amount


class RegistrationPaymentStatus(str, enum.Enum):
    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    PAID = "paid"
