"""
Dues ledger operations used by penalty reconciliation.

Penalty writes are single statements: an ``INSERT ... ON CONFLICT
(penalty_key) DO UPDATE`` for the upsert and a conditional ``DELETE`` for
the removal.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.session import dialect_name
from services.dues_service.models import Due, DueStatus
from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def penalty_key(member_id: uuid.UUID, year: int) -> str:
    return f"{member_id}:{year}"


def penalty_title(year: int) -> str:
    return f"Meeting Attendance Penalty {year}"


def penalty_due_date(year: int) -> datetime:
    """Penalties for ``year`` fall due on March 31 of the following year."""
    return datetime(year + 1, 3, 31, tzinfo=timezone.utc)


async def sum_regular_dues(
    db: AsyncSession, *, member_id: uuid.UUID, year: int
) -> Decimal:
    """Sum of the member's non-penalty dues for the year."""
    total = await db.scalar(
        select(func.coalesce(func.sum(Due.amount), 0)).where(
            Due.assigned_to == member_id,
            Due.year == year,
            Due.is_penalty.is_(False),
        )
    )
    return Decimal(str(total or 0))


async def get_penalty_due(
    db: AsyncSession, *, member_id: uuid.UUID, year: int
) -> Optional[Due]:
    result = await db.execute(
        select(Due)
        .where(Due.penalty_key == penalty_key(member_id, year))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def upsert_penalty_due(
    db: AsyncSession,
    *,
    member_id: uuid.UUID,
    year: int,
    amount: Decimal,
    description: str,
) -> None:
    """Create or refresh the member's penalty for the year in one statement."""
    try:
        insert = _DIALECT_INSERTS[dialect_name(db)]
    except KeyError:
        raise RuntimeError(
            f"Penalty upsert is not supported on dialect {dialect_name(db)!r}"
        )

    now = utc_now()
    stmt = insert(Due).values(
        id=uuid.uuid4(),
        assigned_to=member_id,
        year=year,
        title=penalty_title(year),
        description=description,
        amount=amount,
        due_date=penalty_due_date(year),
        status=DueStatus.PENDING,
        is_penalty=True,
        penalty_key=penalty_key(member_id, year),
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[Due.penalty_key],
        set_={
            "title": stmt.excluded.title,
            "description": stmt.excluded.description,
            "amount": stmt.excluded.amount,
            "due_date": stmt.excluded.due_date,
            "status": stmt.excluded.status,
            "updated_at": now,
        },
    )
    await db.execute(stmt)


async def delete_penalty_due(
    db: AsyncSession, *, member_id: uuid.UUID, year: int
) -> bool:
    """Delete the member's penalty for the year. Returns True if one existed."""
    result = await db.execute(
        delete(Due)
        .where(Due.penalty_key == penalty_key(member_id, year))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0
