import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from services.communications_service.models.enums import (
    MessageType,
    ParticipantRole,
    ThreadType,
)
from services.members_service.schemas import MemberSummary


class ParticipantResponse(BaseModel):
    user_id: uuid.UUID
    role: ParticipantRole
    is_active: bool
    joined_at: datetime
    last_read_at: Optional[datetime] = None
    member: Optional[MemberSummary] = None
    is_online: bool = False

    model_config = ConfigDict(from_attributes=True)


class ThreadResponse(BaseModel):
    id: uuid.UUID
    subject: str
    thread_type: ThreadType
    created_by: uuid.UUID
    is_active: bool
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None
    last_message_by: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime
    unread_count: int = 0
    participants: List[ParticipantResponse] = []

    model_config = ConfigDict(from_attributes=True)


class MessageResponse(BaseModel):
    id: uuid.UUID
    thread_id: uuid.UUID
    sender_id: uuid.UUID
    content: str
    message_type: MessageType
    reply_to: Optional[uuid.UUID] = None
    is_deleted: bool
    created_at: datetime
    read_by: List[uuid.UUID] = []

    model_config = ConfigDict(from_attributes=True)


class ThreadCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=255)
    participants: List[uuid.UUID] = Field(..., min_length=1)
    message: str = Field(..., min_length=1, max_length=5000)
    thread_type: ThreadType = ThreadType.DIRECT


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)
    reply_to: Optional[uuid.UUID] = None


class ParticipantsAdd(BaseModel):
    user_ids: List[uuid.UUID] = Field(..., min_length=1)


class ThreadCreatedResponse(BaseModel):
    thread: ThreadResponse
    first_message: MessageResponse


class ThreadDetailResponse(BaseModel):
    thread: ThreadResponse
    messages: List[MessageResponse]
