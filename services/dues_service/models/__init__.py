"""Dues Service models package."""

from services.dues_service.models.due import Due  # noqa: F401
from services.dues_service.models.enums import DueStatus  # noqa: F401

__all__ = ["Due", "DueStatus"]
