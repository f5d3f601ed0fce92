"""
Meeting attendance penalty reconciliation.

For a calendar year, every active member's attendance ratio over the year's
held meetings is compared against the resolved penalty policy and the dues
ledger is brought in line: a penalty due is upserted, removed, or left alone.
Each member's change is committed before the next member is processed.
"""

import enum
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from libs.common.datetime_utils import year_bounds
from libs.common.logging import get_logger
from services.dues_service.models import Due, DueStatus
from services.dues_service.services.ledger import (
    delete_penalty_due,
    get_penalty_due,
    sum_regular_dues,
    upsert_penalty_due,
)
from services.events_service.models import (
    HELD_STATUSES,
    Event,
    EventAttendance,
    EventType,
)
from services.events_service.services.penalty_policy import (
    PenaltyPolicy,
    attendance_percent,
    resolve_policy,
)
from services.members_service.services.member_service import list_active_members
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


class OutcomeKind(str, enum.Enum):
    APPLIED = "applied"
    REMOVED = "removed"
    SKIPPED_ZERO_AMOUNT = "skipped_zero_amount"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class PenaltyOutcome:
    member_id: uuid.UUID
    kind: OutcomeKind
    attended: int
    total_meetings: int
    amount: Decimal = Decimal("0.00")

    @property
    def attendance_percentage(self) -> int:
        return attendance_percent(self.attended, self.total_meetings)


@dataclass
class ReconciliationReport:
    year: int
    total_meetings: int = 0
    policy: Optional[str] = None
    outcomes: List[PenaltyOutcome] = field(default_factory=list)

    def count(self, kind: OutcomeKind) -> int:
        return sum(1 for outcome in self.outcomes if outcome.kind == kind)

    def counts(self) -> Dict[str, int]:
        return {kind.value: self.count(kind) for kind in OutcomeKind}

    def for_member(self, member_id: uuid.UUID) -> Optional[PenaltyOutcome]:
        for outcome in self.outcomes:
            if outcome.member_id == member_id:
                return outcome
        return None


def penalty_description(attended: int, total: int, year: int) -> str:
    return (
        f"Penalty for attending only {attended} out of {total} meetings "
        f"({attendance_percent(attended, total)}%) in {year}"
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def held_meeting_ids(db: AsyncSession, year: int) -> List[uuid.UUID]:
    """Meetings of the year that count towards attendance.

    Published or completed meetings starting in ``[Jan 1, Jan 1 next year)``
    UTC, so the whole of Dec 31 counts.
    """
    start, end = year_bounds(year)
    result = await db.execute(
        select(Event.id).where(
            Event.event_type == EventType.MEETINGS,
            Event.status.in_(HELD_STATUSES),
            Event.start_date >= start,
            Event.start_date < end,
        )
    )
    return list(result.scalars().all())


async def count_attended(
    db: AsyncSession, member_id: uuid.UUID, meeting_ids: Sequence[uuid.UUID]
) -> int:
    if not meeting_ids:
        return 0
    total = await db.scalar(
        select(func.count(EventAttendance.id)).where(
            EventAttendance.user_id == member_id,
            EventAttendance.event_id.in_(meeting_ids),
            EventAttendance.attended.is_(True),
        )
    )
    return int(total or 0)


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


async def _reconcile_member(
    db: AsyncSession,
    *,
    policy: PenaltyPolicy,
    member_id: uuid.UUID,
    year: int,
    meeting_ids: Sequence[uuid.UUID],
) -> PenaltyOutcome:
    total = len(meeting_ids)
    attended = await count_attended(db, member_id, meeting_ids)
    regular_dues = await sum_regular_dues(db, member_id=member_id, year=year)
    assessment = policy.assess(
        attended=attended, total=total, regular_dues=regular_dues
    )

    if not assessment.penalize:
        removed = await delete_penalty_due(db, member_id=member_id, year=year)
        if removed:
            logger.info(
                "Removed %s penalty for member %s (%d/%d meetings attended)",
                year,
                member_id,
                attended,
                total,
            )
        kind = OutcomeKind.REMOVED if removed else OutcomeKind.UNCHANGED
        return PenaltyOutcome(member_id, kind, attended, total)

    if assessment.amount <= 0:
        logger.info(
            "Skipped %s penalty for member %s: amount is zero (%d/%d meetings attended)",
            year,
            member_id,
            attended,
            total,
        )
        return PenaltyOutcome(
            member_id, OutcomeKind.SKIPPED_ZERO_AMOUNT, attended, total
        )

    await upsert_penalty_due(
        db,
        member_id=member_id,
        year=year,
        amount=assessment.amount,
        description=penalty_description(attended, total, year),
    )
    logger.info(
        "Applied %s penalty of %s to member %s (%d%% attendance)",
        year,
        assessment.amount,
        member_id,
        attendance_percent(attended, total),
    )
    return PenaltyOutcome(
        member_id, OutcomeKind.APPLIED, attended, total, assessment.amount
    )


async def reconcile_meeting_penalties(
    db: AsyncSession, year: int
) -> ReconciliationReport:
    """Bring every active member's penalty due for ``year`` in line with attendance.

    Database errors propagate; members processed before the failure keep
    their committed changes.
    """
    meeting_ids = await held_meeting_ids(db, year)
    report = ReconciliationReport(year=year, total_meetings=len(meeting_ids))
    if not meeting_ids:
        logger.info("No meetings found for %s; skipping penalty reconciliation", year)
        return report

    policy = await resolve_policy(db, year)
    report.policy = policy.name
    members = await list_active_members(db)
    logger.info(
        "Reconciling %s meeting penalties for %d members over %d meetings (%s policy)",
        year,
        len(members),
        len(meeting_ids),
        policy.name,
    )

    for member in members:
        outcome = await _reconcile_member(
            db,
            policy=policy,
            member_id=member.id,
            year=year,
            meeting_ids=meeting_ids,
        )
        await db.commit()
        report.outcomes.append(outcome)

    logger.info("Penalty reconciliation for %s finished: %s", year, report.counts())
    return report


# ---------------------------------------------------------------------------
# Member view
# ---------------------------------------------------------------------------


@dataclass
class MemberPenaltyView:
    year: int
    meetings_attended: int
    total_meetings: int
    missed_meetings: int
    attendance_percentage: int
    penalty_amount: Decimal
    penalty_type: str
    penalty_description: str
    policy: str
    is_paid: bool
    penalty_due: Optional[Due]


async def get_member_penalty_view(
    db: AsyncSession, member_id: uuid.UUID, year: int
) -> MemberPenaltyView:
    """The penalty a member would be charged for ``year`` under the current policy."""
    meeting_ids = await held_meeting_ids(db, year)
    total = len(meeting_ids)
    attended = await count_attended(db, member_id, meeting_ids)
    policy = await resolve_policy(db, year)
    penalty_due = await get_penalty_due(db, member_id=member_id, year=year)

    amount = Decimal("0.00")
    penalty_type = "none"
    description = "No meetings held" if total == 0 else "No penalty"
    if total > 0:
        regular_dues = await sum_regular_dues(db, member_id=member_id, year=year)
        assessment = policy.assess(
            attended=attended, total=total, regular_dues=regular_dues
        )
        description = assessment.description
        if assessment.penalize:
            amount = assessment.amount
            penalty_type = assessment.penalty_type.value

    return MemberPenaltyView(
        year=year,
        meetings_attended=attended,
        total_meetings=total,
        missed_meetings=total - attended,
        attendance_percentage=attendance_percent(attended, total),
        penalty_amount=amount,
        penalty_type=penalty_type,
        penalty_description=description,
        policy=policy.name,
        is_paid=penalty_due is not None and penalty_due.status == DueStatus.PAID,
        penalty_due=penalty_due,
    )
