"""Response envelope shared by every service.

Success bodies look like ``{"success": true, "data": ..., "message": ...}``;
list endpoints add ``count`` and ``pagination``.
"""

import math
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if limit else 0,
        )


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None


class ListEnvelope(BaseModel, Generic[T]):
    success: bool = True
    count: int
    data: List[T]
    pagination: Optional[Pagination] = None


class MessageEnvelope(BaseModel):
    success: bool = True
    message: str


def page_offset(page: int, limit: int) -> int:
    return (page - 1) * limit
