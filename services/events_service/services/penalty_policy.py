"""
Meeting penalty policies.

Reconciliation and the member-facing penalty view both resolve their policy
here, so a member is never shown a different penalty from the one the ledger
receives.

Two policies exist:

- ``FixedThresholdPolicy``: attendance ratio strictly below ``threshold``
  costs ``multiplier`` times the year's regular dues. This is the default.
- ``TieredPolicy``: built from an active ``MeetingPenaltyConfig``. The first
  rule whose ``[min_attendance, max_attendance]`` contains the number of
  meetings attended applies, otherwise the config's default penalty. A rule
  whose value is 0 exempts the member.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Protocol

from libs.common.config import get_settings
from services.events_service.models import MeetingPenaltyConfig, PenaltyType
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

CENT = Decimal("0.01")


def to_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def attendance_percent(attended: int, total: int) -> int:
    """Whole-number percentage, halves rounded up."""
    if total <= 0:
        return 0
    return int(
        (Decimal(attended) * 100 / Decimal(total)).quantize(
            Decimal(1), rounding=ROUND_HALF_UP
        )
    )


@dataclass(frozen=True)
class PenaltyAssessment:
    """What a policy decides for one member.

    ``penalize`` False means the member owes no penalty and any existing one
    is removed. ``amount`` may still be 0 when penalized, e.g. a multiplier
    applied to a member without regular dues.
    """

    penalize: bool
    amount: Decimal
    penalty_type: Optional[PenaltyType]
    rate: Decimal
    description: str


class PenaltyPolicy(Protocol):
    name: str

    def assess(
        self, *, attended: int, total: int, regular_dues: Decimal
    ) -> PenaltyAssessment: ...


def _amount_for(penalty_type: PenaltyType, value: Decimal, regular_dues: Decimal) -> Decimal:
    if penalty_type == PenaltyType.MULTIPLIER:
        return to_money(regular_dues * value)
    return to_money(value)


class FixedThresholdPolicy:
    name = "fixed_threshold"

    def __init__(self, threshold: Decimal, multiplier: Decimal):
        self.threshold = Decimal(threshold)
        self.multiplier = Decimal(multiplier)

    @classmethod
    def from_settings(cls) -> "FixedThresholdPolicy":
        settings = get_settings()
        return cls(
            threshold=Decimal(str(settings.MEETING_ATTENDANCE_THRESHOLD)),
            multiplier=Decimal(str(settings.MEETING_PENALTY_MULTIPLIER)),
        )

    def below_threshold(self, attended: int, total: int) -> bool:
        # attended / total < threshold, kept exact
        return total > 0 and Decimal(attended) < self.threshold * total

    def assess(
        self, *, attended: int, total: int, regular_dues: Decimal
    ) -> PenaltyAssessment:
        if not self.below_threshold(attended, total):
            return PenaltyAssessment(
                penalize=False,
                amount=Decimal("0.00"),
                penalty_type=None,
                rate=Decimal("0"),
                description="Attendance threshold met",
            )
        return PenaltyAssessment(
            penalize=True,
            amount=_amount_for(PenaltyType.MULTIPLIER, self.multiplier, regular_dues),
            penalty_type=PenaltyType.MULTIPLIER,
            rate=self.multiplier,
            description=f"Attendance below {self.threshold * 100:.0f}%",
        )


@dataclass(frozen=True)
class PenaltyRule:
    min_attendance: int
    max_attendance: int
    penalty_type: PenaltyType
    penalty_value: Decimal
    description: str = ""

    def matches(self, attended: int) -> bool:
        return self.min_attendance <= attended <= self.max_attendance


class TieredPolicy:
    name = "tiered"

    def __init__(
        self,
        rules: List[PenaltyRule],
        default_type: PenaltyType,
        default_value: Decimal,
    ):
        self.rules = rules
        self.default_type = default_type
        self.default_value = Decimal(default_value)

    @classmethod
    def from_config(cls, config: MeetingPenaltyConfig) -> "TieredPolicy":
        rules = [
            PenaltyRule(
                min_attendance=int(rule["min_attendance"]),
                max_attendance=int(rule["max_attendance"]),
                penalty_type=PenaltyType(rule["penalty_type"]),
                penalty_value=Decimal(str(rule["penalty_value"])),
                description=rule.get("description") or "",
            )
            for rule in config.penalty_rules or []
        ]
        default = config.default_penalty or {}
        return cls(
            rules=rules,
            default_type=PenaltyType(default.get("penalty_type", PenaltyType.FIXED.value)),
            default_value=Decimal(str(default.get("penalty_value", 0))),
        )

    def match(self, attended: int) -> Optional[PenaltyRule]:
        for rule in self.rules:
            if rule.matches(attended):
                return rule
        return None

    def assess(
        self, *, attended: int, total: int, regular_dues: Decimal
    ) -> PenaltyAssessment:
        rule = self.match(attended)
        if rule is not None:
            penalty_type, value = rule.penalty_type, rule.penalty_value
            description = rule.description or "Penalty rule"
        else:
            penalty_type, value = self.default_type, self.default_value
            description = "Default penalty"

        return PenaltyAssessment(
            penalize=value > 0,
            amount=_amount_for(penalty_type, value, regular_dues) if value > 0 else Decimal("0.00"),
            penalty_type=penalty_type,
            rate=value,
            description=description,
        )


async def get_active_config(
    db: AsyncSession, year: int
) -> Optional[MeetingPenaltyConfig]:
    result = await db.execute(
        select(MeetingPenaltyConfig).where(
            MeetingPenaltyConfig.year == year,
            MeetingPenaltyConfig.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def resolve_policy(db: AsyncSession, year: int) -> PenaltyPolicy:
    """Tiered policy when the year has an active config, else the fixed one."""
    config = await get_active_config(db, year)
    if config is not None:
        return TieredPolicy.from_config(config)
    return FixedThresholdPolicy.from_settings()
