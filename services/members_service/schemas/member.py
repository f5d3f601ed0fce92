import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr
from services.members_service.models.enums import MemberRole, MemberStatus


class MemberResponse(BaseModel):
    id: uuid.UUID
    email: EmailStr
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: MemberRole
    status: MemberStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MemberSummary(BaseModel):
    """Compact member reference embedded in other resources."""

    id: uuid.UUID
    first_name: str
    last_name: str
    email: EmailStr

    model_config = ConfigDict(from_attributes=True)


class MemberStatusUpdate(BaseModel):
    status: MemberStatus
