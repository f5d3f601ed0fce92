"""Enum definitions for members service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class MemberRole(str, enum.Enum):
    MEMBER = "member"
    ADMIN = "admin"
    SECRETARY = "secretary"
    TREASURER = "treasurer"
    SUPERADMIN = "superadmin"


class MemberStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    PENDING = "pending"
    REJECTED = "rejected"
