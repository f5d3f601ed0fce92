import uuid
from typing import Optional

from libs.common.errors import UnauthorizedError
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class AuthUser(BaseModel):
    """
    Represents the authenticated principal decoded from a bearer token.

    ``user_id`` is the member id (the token's ``sub`` claim).
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: str = "member"
    status: str = "active"

    @property
    def member_id(self) -> uuid.UUID:
        try:
            return uuid.UUID(self.user_id)
        except ValueError:
            raise UnauthorizedError("Token subject is not a member id")

    def has_role(self, *roles: str) -> bool:
        return self.role in roles
