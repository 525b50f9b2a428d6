"""Loan model."""
from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from circulation.database import Base


class LoanStatus(str, PyEnum):
    """Loan status enum."""
    ACTIVE = "active"
    RETURNED = "returned"
    OVERDUE = "overdue"
    LOST = "lost"


OPEN_LOAN_STATUSES = (LoanStatus.ACTIVE, LoanStatus.OVERDUE)


class Loan(Base):
    """A copy lent to a member."""

    __tablename__ = "loans"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id"), nullable=False, index=True)
    book_copy_id: Mapped[int] = mapped_column(
        ForeignKey("book_copies.id"), nullable=False, index=True
    )
    loan_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    due_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    return_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    status: Mapped[LoanStatus] = mapped_column(
        Enum(LoanStatus), default=LoanStatus.ACTIVE, nullable=False, index=True
    )

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_LOAN_STATUSES

    def __repr__(self) -> str:
        return f"<Loan(id={self.id}, member_id={self.member_id}, status={self.status})>"
