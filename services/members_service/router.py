"""Members router: self lookup and admin status management."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import get_current_user, require_admin
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.common.responses import Envelope, ListEnvelope, Pagination, page_offset
from libs.db.session import get_async_db
from services.members_service.models import Member, MemberRole, MemberStatus
from services.members_service.schemas import MemberResponse, MemberStatusUpdate
from services.members_service.services.member_service import get_member
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/members", tags=["members"])
logger = get_logger(__name__)


@router.get("/me", response_model=Envelope[MemberResponse])
async def get_my_profile(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Get the caller's member record."""
    member = await get_member(db, current_user.member_id)
    return Envelope(data=MemberResponse.model_validate(member))


@router.get("/", response_model=ListEnvelope[MemberResponse])
async def list_members(
    role: Optional[MemberRole] = None,
    status: Optional[MemberStatus] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """List members (admin only)."""
    query = select(Member)
    if role:
        query = query.where(Member.role == role)
    if status:
        query = query.where(Member.status == status)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.where(
            or_(
                func.lower(Member.first_name).like(pattern),
                func.lower(Member.last_name).like(pattern),
                func.lower(Member.email).like(pattern),
            )
        )

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(
        query.order_by(Member.last_name, Member.first_name)
        .offset(page_offset(page, limit))
        .limit(limit)
    )
    members = [MemberResponse.model_validate(m) for m in result.scalars().all()]
    return ListEnvelope(
        count=len(members),
        data=members,
        pagination=Pagination.build(page, limit, total or 0),
    )


@router.patch("/{member_id}/status", response_model=Envelope[MemberResponse])
async def update_member_status(
    member_id: uuid.UUID,
    payload: MemberStatusUpdate,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Change a member's status (admin only)."""
    member = await get_member(db, member_id)
    previous = member.status
    member.status = payload.status
    await db.commit()
    await db.refresh(member)

    logger.info(
        "Member %s status changed %s -> %s by %s",
        member.id,
        previous.value,
        member.status.value,
        current_user.user_id,
    )
    return Envelope(
        data=MemberResponse.model_validate(member),
        message="Member status updated",
    )
