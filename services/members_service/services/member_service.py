"""
Member lookups shared with the other services.
"""

import uuid
from typing import Iterable, List, Optional

from libs.common.errors import NotFoundError
from services.members_service.models import Member, MemberRole, MemberStatus
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


async def list_active_members(db: AsyncSession) -> List[Member]:
    """Members that take part in penalty calculation (role member, status active)."""
    result = await db.execute(
        select(Member)
        .where(
            Member.role == MemberRole.MEMBER,
            Member.status == MemberStatus.ACTIVE,
        )
        .order_by(Member.created_at, Member.id)
    )
    return list(result.scalars().all())


async def get_member(db: AsyncSession, member_id: uuid.UUID) -> Member:
    member = await db.get(Member, member_id)
    if member is None:
        raise NotFoundError("Member not found")
    return member


async def find_members(db: AsyncSession, member_ids: Iterable[uuid.UUID]) -> List[Member]:
    ids = list(set(member_ids))
    if not ids:
        return []
    result = await db.execute(select(Member).where(Member.id.in_(ids)))
    return list(result.scalars().all())


async def find_active_member(db: AsyncSession, member_id: uuid.UUID) -> Optional[Member]:
    result = await db.execute(
        select(Member).where(
            Member.id == member_id, Member.status == MemberStatus.ACTIVE
        )
    )
    return result.scalar_one_or_none()
