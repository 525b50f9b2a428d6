"""Capability-scoped persistence ports, one per entity.

Each store is bound to the session of a single transaction and exposes only
the queries and writes the circulation components need. Writes flush
immediately so later queries in the same transaction see them.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.core.exceptions import NotFoundError
from circulation.models.book import Book, BookCopy, CopyStatus
from circulation.models.fine import Fine, FineStatus
from circulation.models.loan import OPEN_LOAN_STATUSES, Loan, LoanStatus
from circulation.models.member import Member
from circulation.models.reservation import Reservation, ReservationStatus


class MemberStore:
    """Read-only view of members."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, member_id: int) -> Member:
        member = await self.session.get(Member, member_id)
        if member is None:
            raise NotFoundError("Member", member_id)
        return member


class BookStore:
    """Read-only view of catalog titles."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, book_id: int) -> Book:
        book = await self.session.get(Book, book_id)
        if book is None:
            raise NotFoundError("Book", book_id)
        return book


class CopyStore:
    """Copy lookups and status writes."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, copy_id: int, for_update: bool = False) -> BookCopy:
        query = select(BookCopy).where(BookCopy.id == copy_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        copy = result.scalar_one_or_none()
        if copy is None:
            raise NotFoundError("BookCopy", copy_id)
        return copy

    async def list_for_book(
        self,
        book_id: int,
        status: Optional[CopyStatus] = None,
    ) -> list[BookCopy]:
        query = select(BookCopy).where(BookCopy.book_id == book_id)
        if status:
            query = query.where(BookCopy.status == status)
        result = await self.session.execute(query.order_by(BookCopy.id))
        return list(result.scalars().all())

    async def first_available(
        self,
        book_id: int,
        prefer_id: Optional[int] = None,
    ) -> Optional[BookCopy]:
        """An AVAILABLE copy of the book, ``prefer_id`` first when it qualifies."""
        if prefer_id is not None:
            preferred = await self.session.get(BookCopy, prefer_id)
            if (
                preferred is not None
                and preferred.book_id == book_id
                and preferred.status == CopyStatus.AVAILABLE
            ):
                return preferred
        result = await self.session.execute(
            select(BookCopy)
            .where(BookCopy.book_id == book_id, BookCopy.status == CopyStatus.AVAILABLE)
            .order_by(BookCopy.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count_available(self, book_id: int) -> int:
        result = await self.session.execute(
            select(func.count()).where(
                BookCopy.book_id == book_id,
                BookCopy.status == CopyStatus.AVAILABLE,
            )
        )
        return result.scalar_one()

    async def save(self, copy: BookCopy) -> BookCopy:
        await self.session.flush()
        return copy


class LoanStore:
    """Loan records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, loan_id: int) -> Loan:
        loan = await self.session.get(Loan, loan_id)
        if loan is None:
            raise NotFoundError("Loan", loan_id)
        return loan

    async def add(self, loan: Loan) -> Loan:
        self.session.add(loan)
        await self.session.flush()
        return loan

    async def save(self, loan: Loan) -> Loan:
        await self.session.flush()
        return loan

    async def count_open_for_member(self, member_id: int) -> int:
        result = await self.session.execute(
            select(func.count()).where(
                Loan.member_id == member_id,
                Loan.status.in_(OPEN_LOAN_STATUSES),
            )
        )
        return result.scalar_one()

    async def count_overdue_for_member(self, member_id: int) -> int:
        result = await self.session.execute(
            select(func.count()).where(
                Loan.member_id == member_id,
                Loan.status == LoanStatus.OVERDUE,
            )
        )
        return result.scalar_one()

    async def find_open_for_copy(self, copy_id: int) -> Optional[Loan]:
        result = await self.session.execute(
            select(Loan).where(
                Loan.book_copy_id == copy_id,
                Loan.status.in_(OPEN_LOAN_STATUSES),
            )
        )
        return result.scalar_one_or_none()

    async def list_active_due_before(self, as_of: datetime) -> list[Loan]:
        result = await self.session.execute(
            select(Loan)
            .where(Loan.status == LoanStatus.ACTIVE, Loan.due_date < as_of)
            .order_by(Loan.id)
        )
        return list(result.scalars().all())

    async def list(
        self,
        member_id: Optional[int] = None,
        status: Optional[LoanStatus] = None,
    ) -> list[Loan]:
        query = select(Loan)
        if member_id is not None:
            query = query.where(Loan.member_id == member_id)
        if status:
            query = query.where(Loan.status == status)
        result = await self.session.execute(query.order_by(Loan.loan_date.desc(), Loan.id.desc()))
        return list(result.scalars().all())


class ReservationStore:
    """Reservation records and queue queries."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, reservation_id: int) -> Reservation:
        reservation = await self.session.get(Reservation, reservation_id)
        if reservation is None:
            raise NotFoundError("Reservation", reservation_id)
        return reservation

    async def add(self, reservation: Reservation) -> Reservation:
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def save(self, reservation: Reservation) -> Reservation:
        await self.session.flush()
        return reservation

    async def count_active_for_member(self, member_id: int) -> int:
        result = await self.session.execute(
            select(func.count()).where(
                Reservation.member_id == member_id,
                Reservation.status == ReservationStatus.ACTIVE,
            )
        )
        return result.scalar_one()

    async def find_active(self, member_id: int, book_id: int) -> Optional[Reservation]:
        result = await self.session.execute(
            select(Reservation).where(
                Reservation.member_id == member_id,
                Reservation.book_id == book_id,
                Reservation.status == ReservationStatus.ACTIVE,
            )
        )
        return result.scalar_one_or_none()

    async def exists_active_for_book(self, book_id: int) -> bool:
        result = await self.session.execute(
            select(func.count()).where(
                Reservation.book_id == book_id,
                Reservation.status == ReservationStatus.ACTIVE,
            )
        )
        return result.scalar_one() > 0

    async def queue(self, book_id: int) -> list[Reservation]:
        """ACTIVE reservations for the book in queue order."""
        result = await self.session.execute(
            select(Reservation)
            .where(
                Reservation.book_id == book_id,
                Reservation.status == ReservationStatus.ACTIVE,
            )
            .order_by(Reservation.reservation_date, Reservation.id)
        )
        return list(result.scalars().all())

    async def head(self, book_id: int) -> Optional[Reservation]:
        result = await self.session.execute(
            select(Reservation)
            .where(
                Reservation.book_id == book_id,
                Reservation.status == ReservationStatus.ACTIVE,
            )
            .order_by(Reservation.reservation_date, Reservation.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def rank(self, reservation: Reservation) -> int:
        """1-based queue position of an ACTIVE reservation."""
        result = await self.session.execute(
            select(func.count()).where(
                Reservation.book_id == reservation.book_id,
                Reservation.status == ReservationStatus.ACTIVE,
                or_(
                    Reservation.reservation_date < reservation.reservation_date,
                    and_(
                        Reservation.reservation_date == reservation.reservation_date,
                        Reservation.id < reservation.id,
                    ),
                ),
            )
        )
        return result.scalar_one() + 1

    async def find_hold_for_copy(self, copy_id: int) -> Optional[Reservation]:
        """The unclaimed FULFILLED reservation holding a copy, if any."""
        result = await self.session.execute(
            select(Reservation).where(
                Reservation.book_copy_id == copy_id,
                Reservation.status == ReservationStatus.FULFILLED,
                Reservation.loan_id.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def list_unclaimed_fulfilled_before(self, cutoff: datetime) -> list[Reservation]:
        result = await self.session.execute(
            select(Reservation)
            .where(
                Reservation.status == ReservationStatus.FULFILLED,
                Reservation.loan_id.is_(None),
                Reservation.fulfilled_at < cutoff,
            )
            .order_by(Reservation.fulfilled_at, Reservation.id)
        )
        return list(result.scalars().all())

    async def list_for_member(self, member_id: int) -> list[Reservation]:
        result = await self.session.execute(
            select(Reservation)
            .where(Reservation.member_id == member_id)
            .order_by(Reservation.reservation_date.desc(), Reservation.id.desc())
        )
        return list(result.scalars().all())


class FineStore:
    """Fine records and balances."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, fine_id: int) -> Fine:
        fine = await self.session.get(Fine, fine_id)
        if fine is None:
            raise NotFoundError("Fine", fine_id)
        return fine

    async def add(self, fine: Fine) -> Fine:
        self.session.add(fine)
        await self.session.flush()
        return fine

    async def save(self, fine: Fine) -> Fine:
        await self.session.flush()
        return fine

    async def outstanding_total(self, member_id: int) -> Decimal:
        result = await self.session.execute(
            select(func.coalesce(func.sum(Fine.amount), 0)).where(
                Fine.member_id == member_id,
                Fine.status == FineStatus.PENDING,
            )
        )
        return Decimal(str(result.scalar_one())).quantize(Decimal("0.01"))

    async def list(
        self,
        member_id: Optional[int] = None,
        status: Optional[FineStatus] = None,
        loan_id: Optional[int] = None,
    ) -> list[Fine]:
        query = select(Fine)
        if member_id is not None:
            query = query.where(Fine.member_id == member_id)
        if status:
            query = query.where(Fine.status == status)
        if loan_id is not None:
            query = query.where(Fine.loan_id == loan_id)
        result = await self.session.execute(query.order_by(Fine.fine_date, Fine.id))
        return list(result.scalars().all())
