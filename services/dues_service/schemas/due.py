import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator
from services.dues_service.models.enums import DueStatus


class DueResponse(BaseModel):
    id: uuid.UUID
    assigned_to: uuid.UUID
    year: int
    title: str
    description: Optional[str] = None
    amount: float
    due_date: datetime
    status: DueStatus
    is_penalty: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("amount", mode="before")
    @classmethod
    def _decimal_to_float(cls, v):
        if isinstance(v, Decimal):
            return float(v)
        return v


class DueStatusUpdate(BaseModel):
    status: DueStatus
