from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from libs.auth.models import AuthUser
from libs.auth.tokens import decode_access_token
from libs.common.errors import ForbiddenError, UnauthorizedError
from libs.db.session import get_async_db
from services.members_service.models import Member, MemberStatus

security = HTTPBearer(auto_error=False)

ADMIN_ROLES = ("admin", "superadmin")
ATTENDANCE_ROLES = ("admin", "superadmin", "secretary")
FINANCE_ROLES = ("admin", "superadmin", "treasurer")


async def load_principal(db: AsyncSession, raw_token: str) -> AuthUser:
    """
    Decode ``raw_token`` and rebuild the principal from the member row.

    Role and status come from the database, so a suspension or role change
    applies to tokens that were issued before it.
    """
    claims = decode_access_token(raw_token)
    member = await db.get(Member, claims.member_id)
    if member is None:
        raise UnauthorizedError("User not found")
    if member.status != MemberStatus.ACTIVE:
        raise ForbiddenError("Account is not active")
    return AuthUser(
        sub=str(member.id),
        email=member.email,
        role=member.role.value,
        status=member.status.value,
    )


async def get_current_user(
    token: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: AsyncSession = Depends(get_async_db),
) -> AuthUser:
    """
    Validate the bearer token and return the authenticated user.
    """
    if token is None or not token.credentials:
        raise UnauthorizedError("Not authorized to access this route")
    return await load_principal(db, token.credentials)


def require_roles(*roles: str):
    """Build a dependency that only admits users holding one of ``roles``."""

    async def _require(
        current_user: Annotated[AuthUser, Depends(get_current_user)],
    ) -> AuthUser:
        if not current_user.has_role(*roles):
            raise ForbiddenError(
                f"User role {current_user.role} is not authorized to access this route"
            )
        return current_user

    return _require


require_admin = require_roles(*ADMIN_ROLES)
