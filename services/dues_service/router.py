"""Dues router: member and finance views of the dues ledger."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import FINANCE_ROLES, get_current_user, require_roles
from libs.auth.models import AuthUser
from libs.common.errors import ForbiddenError, NotFoundError
from libs.common.logging import get_logger
from libs.common.responses import Envelope, ListEnvelope, Pagination, page_offset
from libs.db.session import get_async_db
from services.dues_service.models import Due, DueStatus
from services.dues_service.schemas import DueResponse, DueStatusUpdate
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/dues", tags=["dues"])
logger = get_logger(__name__)


async def _get_due_or_404(db: AsyncSession, due_id: uuid.UUID) -> Due:
    due = await db.get(Due, due_id)
    if due is None:
        raise NotFoundError("Due not found")
    return due


@router.get("/me", response_model=ListEnvelope[DueResponse])
async def list_my_dues(
    year: Optional[int] = None,
    is_penalty: Optional[bool] = None,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """List the caller's dues, newest year first."""
    query = select(Due).where(Due.assigned_to == current_user.member_id)
    if year is not None:
        query = query.where(Due.year == year)
    if is_penalty is not None:
        query = query.where(Due.is_penalty.is_(is_penalty))

    result = await db.execute(query.order_by(Due.year.desc(), Due.due_date))
    dues = [DueResponse.model_validate(d) for d in result.scalars().all()]
    return ListEnvelope(count=len(dues), data=dues)


@router.get("/", response_model=ListEnvelope[DueResponse])
async def list_dues(
    member_id: Optional[uuid.UUID] = None,
    year: Optional[int] = None,
    is_penalty: Optional[bool] = None,
    status: Optional[DueStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: AuthUser = Depends(require_roles(*FINANCE_ROLES)),
    db: AsyncSession = Depends(get_async_db),
):
    """List dues across members (admin, treasurer)."""
    query = select(Due)
    if member_id:
        query = query.where(Due.assigned_to == member_id)
    if year is not None:
        query = query.where(Due.year == year)
    if is_penalty is not None:
        query = query.where(Due.is_penalty.is_(is_penalty))
    if status:
        query = query.where(Due.status == status)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(
        query.order_by(Due.year.desc(), Due.created_at.desc())
        .offset(page_offset(page, limit))
        .limit(limit)
    )
    dues = [DueResponse.model_validate(d) for d in result.scalars().all()]
    return ListEnvelope(
        count=len(dues),
        data=dues,
        pagination=Pagination.build(page, limit, total or 0),
    )


@router.get("/{due_id}", response_model=Envelope[DueResponse])
async def get_due(
    due_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Get one due. Members only see their own."""
    due = await _get_due_or_404(db, due_id)
    if due.assigned_to != current_user.member_id and not current_user.has_role(
        *FINANCE_ROLES
    ):
        raise ForbiddenError("Not authorized to view this due")
    return Envelope(data=DueResponse.model_validate(due))


@router.patch("/{due_id}/status", response_model=Envelope[DueResponse])
async def update_due_status(
    due_id: uuid.UUID,
    payload: DueStatusUpdate,
    current_user: AuthUser = Depends(require_roles(*FINANCE_ROLES)),
    db: AsyncSession = Depends(get_async_db),
):
    """Record a payment status change (admin, treasurer)."""
    due = await _get_due_or_404(db, due_id)
    due.status = payload.status
    await db.commit()
    await db.refresh(due)

    logger.info(
        "Due %s marked %s by %s", due.id, due.status.value, current_user.user_id
    )
    return Envelope(data=DueResponse.model_validate(due), message="Due updated")
