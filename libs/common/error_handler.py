"""Global exception handlers producing the standard error envelope.

Usage:
    from libs.common.error_handler import add_exception_handlers

    app = FastAPI()
    add_exception_handlers(app)
"""

import traceback
from typing import Any, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException

from libs.common.config import get_settings
from libs.common.errors import AppError
from libs.common.logging import get_logger, get_request_id

logger = get_logger(__name__)


def error_body(message: str, errors: Optional[List[Any]] = None) -> dict:
    return {"success": False, "error": message, "errors": errors or []}


def _error_response(
    status_code: int,
    message: str,
    errors: Optional[List[Any]] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_body(message, errors),
        headers=headers,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: %s", request.method, request.url.path, exc.message
        )
    return _error_response(exc.status_code, exc.message, exc.errors)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, str):
        message, errors = detail, []
    else:
        message, errors = "Request failed", [detail]
    return _error_response(
        exc.status_code, message, errors, headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg"),
        }
        for err in exc.errors()
    ]
    message = ", ".join(f"{e['field']}: {e['message']}" for e in errors) or "Invalid request"
    return _error_response(400, message, errors)


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return _error_response(409, "Duplicate field value entered")


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    settings = get_settings()
    logger.exception(
        "Unhandled error for request %s %s (request_id=%s)",
        request.method,
        request.url.path,
        get_request_id(),
    )
    body = error_body(str(exc) or "Internal server error")
    if settings.ENVIRONMENT != "production":
        body["stack"] = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
    else:
        body["error"] = "Internal server error"
    return JSONResponse(status_code=500, content=body)


def add_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the app."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
