"""Application error taxonomy.

Services and routers raise these; ``libs.common.error_handler`` turns them into
the ``{"success": false, "error": ..., "errors": [...]}`` envelope.
"""

from typing import Any, List, Optional


class AppError(Exception):
    """Base class for errors that map onto an HTTP status code."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(
        self, message: Optional[str] = None, errors: Optional[List[Any]] = None
    ):
        self.message = message or self.default_message
        self.errors = errors or []
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class UnauthorizedError(AppError):
    status_code = 401
    default_message = "Not authorized to access this route"


class ForbiddenError(AppError):
    status_code = 403
    default_message = "You do not have permission to perform this action"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    default_message = "Duplicate field value entered"


class InternalError(AppError):
    status_code = 500
