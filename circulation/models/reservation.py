"""Reservation model."""
from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Index, text
from sqlalchemy.orm import Mapped, mapped_column

from circulation.database import Base


class ReservationStatus(str, PyEnum):
    """Reservation status enum."""
    ACTIVE = "active"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class Reservation(Base):
    """A member's place in the queue for a book.

    Queue position is not stored. It is the rank of ``(reservation_date, id)``
    among the book's ACTIVE rows. A FULFILLED reservation holds
    ``book_copy_id`` until it is picked up (``loan_id`` set) or expires.
    """

    __tablename__ = "reservations"
    __table_args__ = (
        Index(
            "uq_reservations_active_member_book",
            "member_id",
            "book_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id"), nullable=False, index=True)
    book_id: Mapped[int] = mapped_column(ForeignKey("books.id"), nullable=False, index=True)
    book_copy_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("book_copies.id"), nullable=True
    )
    loan_id: Mapped[Optional[int]] = mapped_column(ForeignKey("loans.id"), nullable=True)
    reservation_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    fulfilled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_by: Mapped[Optional[int]] = mapped_column(nullable=True)
    status: Mapped[ReservationStatus] = mapped_column(
        Enum(ReservationStatus), default=ReservationStatus.ACTIVE, nullable=False, index=True
    )

    @property
    def is_awaiting_pickup(self) -> bool:
        return self.status == ReservationStatus.FULFILLED and self.loan_id is None

    def __repr__(self) -> str:
        return (
            f"<Reservation(id={self.id}, member_id={self.member_id}, "
            f"book_id={self.book_id}, status={self.status})>"
        )
