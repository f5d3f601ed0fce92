"""Pydantic schemas for Events Service."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from services.dues_service.schemas import DueResponse
from services.events_service.models.enums import (
    EventStatus,
    EventType,
    PenaltyType,
    RegistrationPaymentStatus,
)
from services.members_service.schemas import MemberSummary


def _decimal_to_float(v):
    if isinstance(v, Decimal):
        return float(v)
    return v


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class EventBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    event_type: EventType
    start_date: datetime
    end_date: datetime
    location: Optional[str] = None
    organizer: Optional[str] = None
    requires_registration: bool = False
    registration_fee: Optional[float] = Field(None, ge=0)
    capacity: Optional[int] = Field(None, ge=1)


class EventCreate(EventBase):
    """Schema for creating an event; status follows the clock unless given."""

    status: Optional[EventStatus] = None

    @model_validator(mode="after")
    def _end_after_start(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class EventUpdate(BaseModel):
    """Schema for updating an event."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    event_type: Optional[EventType] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    location: Optional[str] = None
    organizer: Optional[str] = None
    requires_registration: Optional[bool] = None
    registration_fee: Optional[float] = Field(None, ge=0)
    capacity: Optional[int] = Field(None, ge=1)
    status: Optional[EventStatus] = None


class EventResponse(BaseModel):
    id: uuid.UUID
    title: str
    description: Optional[str] = None
    event_type: EventType
    start_date: datetime
    end_date: datetime
    location: Optional[str] = None
    organizer: Optional[str] = None
    requires_registration: bool
    registration_fee: Optional[float] = None
    capacity: Optional[int] = None
    status: EventStatus
    created_by: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime
    attendance_count: int = 0
    attended_count: int = 0

    model_config = ConfigDict(from_attributes=True)

    _fee = field_validator("registration_fee", mode="before")(_decimal_to_float)


class EventStats(BaseModel):
    total: int
    upcoming: int
    by_status: Dict[str, int]
    by_type: Dict[str, int]
    attendance_records: int
    attended: int


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------


class AttendanceEntryIn(BaseModel):
    user_id: uuid.UUID = Field(validation_alias=AliasChoices("user_id", "userId"))
    attended: bool
    notes: Optional[str] = Field(None, max_length=1000)


class AttendanceMarkRequest(BaseModel):
    attendance_list: List[AttendanceEntryIn] = Field(
        validation_alias=AliasChoices("attendance_list", "attendanceList")
    )


class AttendanceResponse(BaseModel):
    id: uuid.UUID
    event_id: uuid.UUID
    user_id: uuid.UUID
    attended: bool
    notes: Optional[str] = None
    marked_by: Optional[uuid.UUID] = None
    marked_at: datetime
    member: Optional[MemberSummary] = None

    model_config = ConfigDict(from_attributes=True)


class RegistrationResponse(BaseModel):
    id: uuid.UUID
    event_id: uuid.UUID
    user_id: uuid.UUID
    payment_status: RegistrationPaymentStatus
    registered_at: datetime
    member: Optional[MemberSummary] = None

    model_config = ConfigDict(from_attributes=True)


class PenaltyOutcomeResponse(BaseModel):
    member_id: uuid.UUID
    kind: str
    attended: int
    total_meetings: int
    attendance_percentage: int
    amount: float

    model_config = ConfigDict(from_attributes=True)

    _amount = field_validator("amount", mode="before")(_decimal_to_float)


class ReconciliationResponse(BaseModel):
    year: int
    total_meetings: int
    policy: Optional[str] = None
    counts: Dict[str, int]
    outcomes: List[PenaltyOutcomeResponse] = []


class AttendanceMarkResponse(BaseModel):
    records: List[AttendanceResponse]
    reconciliation: Optional[ReconciliationResponse] = None
    warnings_sent: Optional[int] = None


# ---------------------------------------------------------------------------
# Penalties
# ---------------------------------------------------------------------------


class PenaltyRuleIn(BaseModel):
    min_attendance: int = Field(..., ge=0)
    max_attendance: int = Field(..., ge=0)
    penalty_type: PenaltyType
    penalty_value: float = Field(..., ge=0)
    description: str = ""

    @model_validator(mode="after")
    def _ordered_bounds(self):
        if self.max_attendance < self.min_attendance:
            raise ValueError("max_attendance must not be below min_attendance")
        return self


class DefaultPenaltyIn(BaseModel):
    penalty_type: PenaltyType
    penalty_value: float = Field(..., ge=0)


class PenaltyConfigCreate(BaseModel):
    year: int = Field(..., ge=2000, le=2100)
    is_active: bool = True
    penalty_rules: List[PenaltyRuleIn] = []
    default_penalty: DefaultPenaltyIn


class PenaltyConfigResponse(BaseModel):
    id: uuid.UUID
    year: int
    is_active: bool
    penalty_rules: List[dict]
    default_penalty: dict
    created_by: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MyPenaltyResponse(BaseModel):
    year: int
    meetings_attended: int
    total_meetings: int
    missed_meetings: int
    attendance_percentage: int
    penalty_amount: float
    penalty_type: str
    penalty_description: str
    policy: str
    is_paid: bool
    penalty_due: Optional[DueResponse] = None

    model_config = ConfigDict(from_attributes=True)

    _amount = field_validator("penalty_amount", mode="before")(_decimal_to_float)


class WarningsResponse(BaseModel):
    year: int
    warned: int
