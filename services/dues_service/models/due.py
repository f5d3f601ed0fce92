import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.dues_service.models.enums import DueStatus, enum_values
from sqlalchemy import Boolean, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class Due(Base):
    """A monetary obligation of a member for a year.

    Penalty rows carry ``penalty_key = "<member_id>:<year>"``. The unique
    constraint on it keeps one penalty per member and year; ordinary dues
    leave it NULL.
    """

    __tablename__ = "dues"
    __table_args__ = (Index("ix_dues_assigned_to_year", "assigned_to", "year"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    assigned_to: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[DueStatus] = mapped_column(
        SAEnum(
            DueStatus,
            name="due_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=DueStatus.PENDING,
        nullable=False,
    )
    is_penalty: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    penalty_key: Mapped[Optional[str]] = mapped_column(
        String, unique=True, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    def __repr__(self):
        return f"<Due {self.title} {self.amount} ({self.status.value})>"
