"""Fine model."""
from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from circulation.database import Base


class FineType(str, PyEnum):
    """Fine type enum."""
    OVERDUE = "overdue"
    DAMAGE = "damage"
    LOST = "lost"
    OTHER = "other"


class FineStatus(str, PyEnum):
    """Fine status enum. PAID and WAIVED are terminal."""
    PENDING = "pending"
    PAID = "paid"
    WAIVED = "waived"


class Fine(Base):
    """A monetary penalty owed by a member."""

    __tablename__ = "fines"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id"), nullable=False, index=True)
    loan_id: Mapped[Optional[int]] = mapped_column(ForeignKey("loans.id"), nullable=True, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    fine_type: Mapped[FineType] = mapped_column(Enum(FineType), nullable=False)
    status: Mapped[FineStatus] = mapped_column(
        Enum(FineStatus), default=FineStatus.PENDING, nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    fine_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    resolved_by: Mapped[Optional[int]] = mapped_column(nullable=True)
    amount_paid: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    waiver_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<Fine(id={self.id}, member_id={self.member_id}, amount={self.amount}, status={self.status})>"
