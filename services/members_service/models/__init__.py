"""Members Service models package.

Re-exports models and enums so that
``from services.members_service.models import Member`` works and
SQLAlchemy's mapper registry sees every model class on import.
"""

from services.members_service.models.enums import (  # noqa: F401
    MemberRole,
    MemberStatus,
)
from services.members_service.models.member import Member  # noqa: F401

__all__ = [
    "Member",
    "MemberRole",
    "MemberStatus",
]
