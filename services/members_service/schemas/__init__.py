"""Members Service schemas package."""

from services.members_service.schemas.member import (  # noqa: F401
    MemberResponse,
    MemberStatusUpdate,
    MemberSummary,
)

__all__ = [
    "MemberResponse",
    "MemberStatusUpdate",
    "MemberSummary",
]
