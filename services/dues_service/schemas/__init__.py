"""Dues Service schemas package."""

from services.dues_service.schemas.due import DueResponse, DueStatusUpdate  # noqa: F401

__all__ = ["DueResponse", "DueStatusUpdate"]
