"""Enum definitions for communications service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class ThreadType(str, enum.Enum):
    DIRECT = "direct"
    GROUP = "group"


class ParticipantRole(str, enum.Enum):
    PARTICIPANT = "participant"
    ADMIN = "admin"


class MessageType(str, enum.Enum):
    TEXT = "text"
    SYSTEM = "system"


class NotificationType(str, enum.Enum):
    COMMUNICATION = "communication"
    ANNOUNCEMENT = "announcement"
    SYSTEM = "system"
    PENALTY = "penalty"
    ATTENDANCE_WARNING = "attendance_warning"


class NotificationPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"
