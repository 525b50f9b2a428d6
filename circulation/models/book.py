"""Book and physical copy models."""
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from circulation.database import Base


class CopyStatus(str, PyEnum):
    """Physical copy status enum."""
    AVAILABLE = "available"
    ON_LOAN = "on_loan"
    RESERVED = "reserved"
    LOST = "lost"
    DAMAGED = "damaged"


class Book(Base):
    """Catalog title. Owned by the catalog; read-only here."""

    __tablename__ = "books"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    author: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Book(id={self.id}, title={self.title})>"


class BookCopy(Base):
    """A physical copy of a book.

    ``version`` is bumped on every write so that two transactions racing on the
    same copy cannot both commit a status change.
    """

    __tablename__ = "book_copies"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    book_id: Mapped[int] = mapped_column(ForeignKey("books.id"), nullable=False, index=True)
    status: Mapped[CopyStatus] = mapped_column(
        Enum(CopyStatus), default=CopyStatus.AVAILABLE, nullable=False, index=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<BookCopy(id={self.id}, book_id={self.book_id}, status={self.status})>"
