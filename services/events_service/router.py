"""Events Service router: events, registrations, attendance and meeting penalties."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from libs.auth.dependencies import (
    ADMIN_ROLES,
    ATTENDANCE_ROLES,
    get_current_user,
    require_roles,
)
from libs.auth.models import AuthUser
from libs.common.datetime_utils import as_utc, utc_now
from libs.common.errors import NotFoundError, ValidationError
from libs.common.logging import get_logger
from libs.common.rate_limit import admin_limit
from libs.common.responses import (
    Envelope,
    ListEnvelope,
    MessageEnvelope,
    Pagination,
    page_offset,
)
from libs.db.session import get_async_db
from services.communications_service.services.realtime import (
    ConnectionRegistry,
    get_registry,
)
from services.events_service.models import (
    FINAL_STATUSES,
    Event,
    EventAttendance,
    EventRegistration,
    EventStatus,
    EventType,
    MeetingPenaltyConfig,
)
from services.events_service.schemas import (
    AttendanceMarkRequest,
    AttendanceMarkResponse,
    AttendanceResponse,
    EventCreate,
    EventResponse,
    EventStats,
    EventUpdate,
    MyPenaltyResponse,
    PenaltyConfigCreate,
    PenaltyConfigResponse,
    PenaltyOutcomeResponse,
    ReconciliationResponse,
    RegistrationResponse,
    WarningsResponse,
)
from services.events_service.services.attendance import (
    AttendanceEntry,
    get_event_or_404,
    mark_attendance,
)
from services.events_service.services.penalties import (
    ReconciliationReport,
    get_member_penalty_view,
    reconcile_meeting_penalties,
)
from services.events_service.services.registrations import (
    list_member_events,
    list_member_registrations,
    register_for_event,
    unregister_from_event,
)
from services.events_service.services.warnings import send_attendance_warnings
from services.members_service.schemas import MemberSummary
from services.members_service.services.member_service import find_members
from sqlalchemy import case, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/events", tags=["events"])
logger = get_logger(__name__)

require_event_admin = require_roles(*ADMIN_ROLES)
require_event_staff = require_roles(*ATTENDANCE_ROLES)

# Earliest year penalties can be calculated for.
FIRST_PENALTY_YEAR = 2000
# Event fields an update may clear by sending null.
NULLABLE_EVENT_FIELDS = {
    "description",
    "location",
    "organizer",
    "registration_fee",
    "capacity",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _attendance_counts(
    db: AsyncSession, event_ids: List[uuid.UUID]
) -> Dict[uuid.UUID, tuple]:
    """Map event id to ``(records, attended)``."""
    if not event_ids:
        return {}
    result = await db.execute(
        select(
            EventAttendance.event_id,
            func.count(EventAttendance.id),
            func.count(case((EventAttendance.attended.is_(True), 1))),
        )
        .where(EventAttendance.event_id.in_(event_ids))
        .group_by(EventAttendance.event_id)
    )
    return {row[0]: (row[1], row[2]) for row in result.all()}


def _event_response(event: Event, counts: Optional[tuple] = None) -> EventResponse:
    response = EventResponse.model_validate(event)
    records, attended = counts or (0, 0)
    response.attendance_count = records
    response.attended_count = attended
    return response


async def _attendance_responses(
    db: AsyncSession, records: List[EventAttendance]
) -> List[AttendanceResponse]:
    members = {m.id: m for m in await find_members(db, {r.user_id for r in records})}
    responses = []
    for record in records:
        response = AttendanceResponse.model_validate(record)
        member = members.get(record.user_id)
        if member is not None:
            response.member = MemberSummary.model_validate(member)
        responses.append(response)
    return responses


async def _registration_responses(
    db: AsyncSession, registrations: List[EventRegistration]
) -> List[RegistrationResponse]:
    members = {
        m.id: m for m in await find_members(db, {r.user_id for r in registrations})
    }
    responses = []
    for registration in registrations:
        response = RegistrationResponse.model_validate(registration)
        member = members.get(registration.user_id)
        if member is not None:
            response.member = MemberSummary.model_validate(member)
        responses.append(response)
    return responses


def _reconciliation_response(report: ReconciliationReport) -> ReconciliationResponse:
    return ReconciliationResponse(
        year=report.year,
        total_meetings=report.total_meetings,
        policy=report.policy,
        counts=report.counts(),
        outcomes=[
            PenaltyOutcomeResponse(
                member_id=outcome.member_id,
                kind=outcome.kind.value,
                attended=outcome.attended,
                total_meetings=outcome.total_meetings,
                attendance_percentage=outcome.attendance_percentage,
                amount=outcome.amount,
            )
            for outcome in report.outcomes
        ],
    )


def _check_penalty_year(year: int) -> None:
    if year < FIRST_PENALTY_YEAR or year > utc_now().year + 1:
        raise ValidationError(f"Invalid year: {year}")


# ---------------------------------------------------------------------------
# Static routes (must be declared before /{event_id})
# ---------------------------------------------------------------------------


@router.get("/", response_model=ListEnvelope[EventResponse])
async def list_events(
    status_filter: Optional[EventStatus] = Query(None, alias="status"),
    event_type: Optional[EventType] = None,
    start_from: Optional[datetime] = None,
    start_to: Optional[datetime] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """List events, most recent start first."""
    query = select(Event)
    if status_filter:
        query = query.where(Event.status == status_filter)
    if event_type:
        query = query.where(Event.event_type == event_type)
    if start_from:
        query = query.where(Event.start_date >= as_utc(start_from))
    if start_to:
        query = query.where(Event.start_date <= as_utc(start_to))
    if search:
        pattern = f"%{search}%"
        query = query.where(
            Event.title.ilike(pattern) | Event.description.ilike(pattern)
        )

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(
        query.order_by(Event.start_date.desc())
        .offset(page_offset(page, limit))
        .limit(limit)
    )
    events = result.scalars().all()
    counts = await _attendance_counts(db, [e.id for e in events])
    data = [_event_response(e, counts.get(e.id)) for e in events]
    return ListEnvelope(
        count=len(data),
        data=data,
        pagination=Pagination.build(page, limit, total or 0),
    )


@router.get("/stats", response_model=Envelope[EventStats])
async def get_event_stats(
    current_user: AuthUser = Depends(require_event_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Event counts by status and type, plus attendance totals."""
    total = await db.scalar(select(func.count(Event.id)))
    upcoming = await db.scalar(
        select(func.count(Event.id)).where(
            Event.start_date >= utc_now(),
            Event.status != EventStatus.CANCELLED,
        )
    )
    by_status = await db.execute(
        select(Event.status, func.count(Event.id)).group_by(Event.status)
    )
    by_type = await db.execute(
        select(Event.event_type, func.count(Event.id)).group_by(Event.event_type)
    )
    records = await db.scalar(select(func.count(EventAttendance.id)))
    attended = await db.scalar(
        select(func.count(EventAttendance.id)).where(
            EventAttendance.attended.is_(True)
        )
    )

    stats = EventStats(
        total=total or 0,
        upcoming=upcoming or 0,
        by_status={s.value: c for s, c in by_status.all()},
        by_type={t.value: c for t, c in by_type.all()},
        attendance_records=records or 0,
        attended=attended or 0,
    )
    return Envelope(data=stats)


@router.get("/my-penalties", response_model=Envelope[MyPenaltyResponse])
async def get_my_penalties(
    year: Optional[int] = None,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """The caller's meeting attendance and penalty for a year (default: this year)."""
    year = year or utc_now().year
    view = await get_member_penalty_view(db, current_user.member_id, year)
    return Envelope(data=MyPenaltyResponse.model_validate(view))


@router.get("/my-registrations", response_model=ListEnvelope[RegistrationResponse])
async def get_my_registrations(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    registrations = await list_member_registrations(db, current_user.member_id)
    data = [RegistrationResponse.model_validate(r) for r in registrations]
    return ListEnvelope(count=len(data), data=data)


@router.get("/my-events", response_model=ListEnvelope[EventResponse])
async def get_my_events(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Events the caller is registered for."""
    events = await list_member_events(db, current_user.member_id)
    counts = await _attendance_counts(db, [e.id for e in events])
    data = [_event_response(e, counts.get(e.id)) for e in events]
    return ListEnvelope(count=len(data), data=data)


@router.get("/penalty-configs", response_model=ListEnvelope[PenaltyConfigResponse])
async def list_penalty_configs(
    current_user: AuthUser = Depends(require_event_admin),
    db: AsyncSession = Depends(get_async_db),
):
    result = await db.execute(
        select(MeetingPenaltyConfig).order_by(MeetingPenaltyConfig.year.desc())
    )
    configs = [PenaltyConfigResponse.model_validate(c) for c in result.scalars().all()]
    return ListEnvelope(count=len(configs), data=configs)


@router.get("/penalty-config/{year}", response_model=Envelope[PenaltyConfigResponse])
async def get_penalty_config(
    year: int,
    current_user: AuthUser = Depends(require_event_admin),
    db: AsyncSession = Depends(get_async_db),
):
    config = await db.scalar(
        select(MeetingPenaltyConfig).where(MeetingPenaltyConfig.year == year)
    )
    if config is None:
        raise NotFoundError(f"No penalty configuration for {year}")
    return Envelope(data=PenaltyConfigResponse.model_validate(config))


@router.post("/penalty-config", response_model=Envelope[PenaltyConfigResponse])
async def upsert_penalty_config(
    payload: PenaltyConfigCreate,
    current_user: AuthUser = Depends(require_event_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Create or replace the penalty configuration for a year."""
    rules = [rule.model_dump(mode="json") for rule in payload.penalty_rules]
    default = payload.default_penalty.model_dump(mode="json")

    config = await db.scalar(
        select(MeetingPenaltyConfig).where(MeetingPenaltyConfig.year == payload.year)
    )
    if config is None:
        config = MeetingPenaltyConfig(
            year=payload.year, created_by=current_user.member_id
        )
        db.add(config)
    config.is_active = payload.is_active
    config.penalty_rules = rules
    config.default_penalty = default

    await db.commit()
    await db.refresh(config)
    logger.info(
        "Penalty config for %s saved by %s (%d rules, active=%s)",
        config.year,
        current_user.user_id,
        len(rules),
        config.is_active,
    )
    return Envelope(
        data=PenaltyConfigResponse.model_validate(config),
        message="Penalty configuration saved",
    )


@router.post(
    "/calculate-penalties/{year}", response_model=Envelope[ReconciliationResponse]
)
@admin_limit
async def calculate_penalties(
    request: Request,
    year: int,
    current_user: AuthUser = Depends(require_event_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Reconcile every active member's meeting penalty for ``year``."""
    _check_penalty_year(year)
    report = await reconcile_meeting_penalties(db, year)
    logger.info(
        "Penalty calculation for %s requested by %s: %s",
        year,
        current_user.user_id,
        report.counts(),
    )
    return Envelope(
        data=_reconciliation_response(report),
        message=f"Penalties calculated for {year}",
    )


@router.post("/send-warnings/{year}", response_model=Envelope[WarningsResponse])
@admin_limit
async def send_warnings(
    request: Request,
    year: int,
    current_user: AuthUser = Depends(require_event_admin),
    db: AsyncSession = Depends(get_async_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """Warn members whose attendance for ``year`` is below the threshold."""
    _check_penalty_year(year)
    warned = await send_attendance_warnings(db, year, registry)
    return Envelope(
        data=WarningsResponse(year=year, warned=warned),
        message=f"Sent {warned} attendance warnings",
    )


@router.post(
    "/",
    response_model=Envelope[EventResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_event(
    payload: EventCreate,
    current_user: AuthUser = Depends(require_event_staff),
    db: AsyncSession = Depends(get_async_db),
):
    """Create an event. Without an explicit status it follows the clock."""
    data = payload.model_dump(exclude_none=True)
    if "registration_fee" in data:
        data["registration_fee"] = Decimal(str(data["registration_fee"]))
    event = Event(**data, created_by=current_user.member_id)
    db.add(event)
    await db.commit()
    await db.refresh(event)

    logger.info(
        "Event %s (%s) created by %s",
        event.id,
        event.event_type.value,
        current_user.user_id,
    )
    return Envelope(data=_event_response(event), message="Event created")


# ---------------------------------------------------------------------------
# Single event
# ---------------------------------------------------------------------------


@router.get("/{event_id}", response_model=Envelope[EventResponse])
async def get_event(
    event_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    event = await get_event_or_404(db, event_id)
    counts = await _attendance_counts(db, [event.id])
    return Envelope(data=_event_response(event, counts.get(event.id)))


@router.put("/{event_id}", response_model=Envelope[EventResponse])
async def update_event(
    event_id: uuid.UUID,
    payload: EventUpdate,
    current_user: AuthUser = Depends(require_event_staff),
    db: AsyncSession = Depends(get_async_db),
):
    event = await get_event_or_404(db, event_id)
    updates = {
        field: value
        for field, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or field in NULLABLE_EVENT_FIELDS
    }
    if updates.get("registration_fee") is not None:
        updates["registration_fee"] = Decimal(str(updates["registration_fee"]))

    start = as_utc(updates.get("start_date") or event.start_date)
    end = as_utc(updates.get("end_date") or event.end_date)
    if end < start:
        raise ValidationError("end_date must not be before start_date")

    for field, value in updates.items():
        setattr(event, field, value)

    await db.commit()
    await db.refresh(event)
    counts = await _attendance_counts(db, [event.id])
    return Envelope(
        data=_event_response(event, counts.get(event.id)), message="Event updated"
    )


@router.delete("/{event_id}", response_model=MessageEnvelope)
async def delete_event(
    event_id: uuid.UUID,
    current_user: AuthUser = Depends(require_event_staff),
    db: AsyncSession = Depends(get_async_db),
):
    """Delete an event together with its attendance and registration records."""
    event = await get_event_or_404(db, event_id)
    await db.execute(delete(EventAttendance).where(EventAttendance.event_id == event_id))
    await db.execute(
        delete(EventRegistration).where(EventRegistration.event_id == event_id)
    )
    await db.delete(event)
    await db.commit()

    logger.info("Event %s deleted by %s", event_id, current_user.user_id)
    return MessageEnvelope(message="Event deleted")


@router.patch("/{event_id}/publish", response_model=Envelope[EventResponse])
async def publish_event(
    event_id: uuid.UUID,
    current_user: AuthUser = Depends(require_event_staff),
    db: AsyncSession = Depends(get_async_db),
):
    """Move a draft event to published. Statuses never move backward."""
    event = await get_event_or_404(db, event_id)
    current = event.clock_status()
    if current == EventStatus.PUBLISHED:
        raise ValidationError("Event is already published")
    if current in FINAL_STATUSES:
        raise ValidationError(
            f"Only draft events can be published (event is {current.value})"
        )

    event.status = EventStatus.PUBLISHED
    await db.commit()
    await db.refresh(event)
    return Envelope(data=_event_response(event), message="Event published")


@router.patch("/{event_id}/cancel", response_model=Envelope[EventResponse])
async def cancel_event(
    event_id: uuid.UUID,
    current_user: AuthUser = Depends(require_event_staff),
    db: AsyncSession = Depends(get_async_db),
):
    event = await get_event_or_404(db, event_id)
    current = event.clock_status()
    if current in FINAL_STATUSES:
        raise ValidationError(
            f"Only draft or published events can be cancelled (event is {current.value})"
        )

    event.status = EventStatus.CANCELLED
    await db.commit()
    await db.refresh(event)
    return Envelope(data=_event_response(event), message="Event cancelled")


@router.post(
    "/{event_id}/register",
    response_model=Envelope[RegistrationResponse],
    status_code=status.HTTP_201_CREATED,
)
async def register(
    event_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    registration = await register_for_event(db, event_id, current_user.member_id)
    return Envelope(
        data=RegistrationResponse.model_validate(registration),
        message="Registered for event",
    )


@router.delete("/{event_id}/register", response_model=MessageEnvelope)
async def unregister(
    event_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await unregister_from_event(db, event_id, current_user.member_id)
    return MessageEnvelope(message="Registration cancelled")


@router.get(
    "/{event_id}/registrations", response_model=ListEnvelope[RegistrationResponse]
)
async def list_event_registrations(
    event_id: uuid.UUID,
    current_user: AuthUser = Depends(require_event_staff),
    db: AsyncSession = Depends(get_async_db),
):
    await get_event_or_404(db, event_id)
    result = await db.execute(
        select(EventRegistration)
        .where(EventRegistration.event_id == event_id)
        .order_by(EventRegistration.registered_at, EventRegistration.id)
    )
    data = await _registration_responses(db, list(result.scalars().all()))
    return ListEnvelope(count=len(data), data=data)


@router.get("/{event_id}/attendance", response_model=ListEnvelope[AttendanceResponse])
async def list_event_attendance(
    event_id: uuid.UUID,
    attended: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_user: AuthUser = Depends(require_event_staff),
    db: AsyncSession = Depends(get_async_db),
):
    await get_event_or_404(db, event_id)
    query = select(EventAttendance).where(EventAttendance.event_id == event_id)
    if attended is not None:
        query = query.where(EventAttendance.attended.is_(attended))

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(
        query.order_by(EventAttendance.marked_at.desc(), EventAttendance.id)
        .offset(page_offset(page, limit))
        .limit(limit)
    )
    data = await _attendance_responses(db, list(result.scalars().all()))
    return ListEnvelope(
        count=len(data),
        data=data,
        pagination=Pagination.build(page, limit, total or 0),
    )


@router.post("/{event_id}/attendance", response_model=Envelope[AttendanceMarkResponse])
async def mark_event_attendance(
    event_id: uuid.UUID,
    payload: AttendanceMarkRequest,
    current_user: AuthUser = Depends(require_event_staff),
    db: AsyncSession = Depends(get_async_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """Record attendance; for meetings this also reconciles this year's penalties."""
    entries = [
        AttendanceEntry(user_id=e.user_id, attended=e.attended, notes=e.notes)
        for e in payload.attendance_list
    ]
    result = await mark_attendance(
        db,
        event_id=event_id,
        entries=entries,
        marked_by=current_user.member_id,
        registry=registry,
    )

    response = AttendanceMarkResponse(
        records=await _attendance_responses(db, result.records),
        reconciliation=(
            _reconciliation_response(result.reconciliation)
            if result.reconciliation is not None
            else None
        ),
        warnings_sent=result.warnings_sent,
    )
    return Envelope(data=response, message="Attendance marked")
