"""Communications Service models package."""

from services.communications_service.models.core import (  # noqa: F401
    PREVIEW_LENGTH,
    MessageReadReceipt,
    MessageThread,
    ThreadMessage,
    ThreadParticipant,
    UserNotification,
)
from services.communications_service.models.enums import (  # noqa: F401
    MessageType,
    NotificationPriority,
    NotificationType,
    ParticipantRole,
    ThreadType,
)

__all__ = [
    "MessageReadReceipt",
    "MessageThread",
    "MessageType",
    "NotificationPriority",
    "NotificationType",
    "ParticipantRole",
    "PREVIEW_LENGTH",
    "ThreadMessage",
    "ThreadParticipant",
    "ThreadType",
    "UserNotification",
]
