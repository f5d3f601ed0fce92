"""Events Service schemas package."""

from services.events_service.schemas.main import (
    AttendanceEntryIn,
    AttendanceMarkRequest,
    AttendanceMarkResponse,
    AttendanceResponse,
    DefaultPenaltyIn,
    EventBase,
    EventCreate,
    EventResponse,
    EventStats,
    EventUpdate,
    MyPenaltyResponse,
    PenaltyConfigCreate,
    PenaltyConfigResponse,
    PenaltyOutcomeResponse,
    PenaltyRuleIn,
    ReconciliationResponse,
    RegistrationResponse,
    WarningsResponse,
)

__all__ = [
    "AttendanceEntryIn",
    "AttendanceMarkRequest",
    "AttendanceMarkResponse",
    "AttendanceResponse",
    "DefaultPenaltyIn",
    "EventBase",
    "EventCreate",
    "EventResponse",
    "EventStats",
    "EventUpdate",
    "MyPenaltyResponse",
    "PenaltyConfigCreate",
    "PenaltyConfigResponse",
    "PenaltyOutcomeResponse",
    "PenaltyRuleIn",
    "ReconciliationResponse",
    "RegistrationResponse",
    "WarningsResponse",
]
