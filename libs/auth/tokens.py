"""Verify HS256 access tokens issued by the identity provider."""

from jose import JWTError, jwt
from pydantic import ValidationError

from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.errors import UnauthorizedError


def decode_access_token(token: str) -> AuthUser:
    """Decode a token into an AuthUser, raising UnauthorizedError when invalid."""
    settings = get_settings()
    try:
        payload = jwt.decode(
            token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM]
        )
        return AuthUser(**payload)
    except (JWTError, ValidationError):
        raise UnauthorizedError("Not authorized to access this route")
