"""Communications Service schemas package."""

from services.communications_service.schemas.messaging import (  # noqa: F401
    MessageCreate,
    MessageResponse,
    ParticipantResponse,
    ParticipantsAdd,
    ThreadCreate,
    ThreadCreatedResponse,
    ThreadDetailResponse,
    ThreadResponse,
)
from services.communications_service.schemas.notifications import (  # noqa: F401
    NotificationCreate,
    NotificationResponse,
    UnreadCountResponse,
)

__all__ = [
    "MessageCreate",
    "MessageResponse",
    "NotificationCreate",
    "NotificationResponse",
    "ParticipantResponse",
    "ParticipantsAdd",
    "ThreadCreate",
    "ThreadCreatedResponse",
    "ThreadDetailResponse",
    "ThreadResponse",
    "UnreadCountResponse",
]
