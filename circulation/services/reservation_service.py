"""Reservation queue: admission, fulfillment, cancellation and expiry."""
from datetime import datetime, timedelta
from typing import Optional

from circulation.config import Settings, settings as default_settings
from circulation.core.events import NotificationKind
from circulation.core.exceptions import BusinessRuleViolation, InvalidStateTransition
from circulation.core.logging import SweepLogger, get_logger
from circulation.core.result import Result
from circulation.models.book import BookCopy, CopyStatus
from circulation.models.reservation import Reservation, ReservationStatus
from circulation.services.copy_service import CopyAvailabilityManager
from circulation.transactions import TransactionContext, TransactionCoordinator

logger = get_logger("reservations")


class ReservationQueue:
    """Per-book FIFO of members waiting for a copy.

    Rank is never stored. The queue is the book's ACTIVE reservations ordered
    by ``(reservation_date, id)``, so removing one row cannot reorder the rest.
    A fulfilled reservation holds one RESERVED copy until it is picked up or
    the pickup window lapses.
    """

    def __init__(
        self,
        coordinator: TransactionCoordinator,
        copies: CopyAvailabilityManager,
        policy: Settings = default_settings,
    ):
        self.coordinator = coordinator
        self.copies = copies
        self.policy = policy

    @property
    def pickup_window(self) -> timedelta:
        return timedelta(hours=self.policy.pickup_window_hours)

    def pickup_deadline(self, reservation: Reservation) -> Optional[datetime]:
        if reservation.fulfilled_at is None:
            return None
        return reservation.fulfilled_at + self.pickup_window

    async def create(
        self,
        member_id: int,
        book_id: int,
        actor_id: Optional[int] = None,
    ) -> Result[Reservation]:
        """Queue a member for a book that has no AVAILABLE copy."""

        async def _create(tx: TransactionContext) -> Reservation:
            member = await tx.members.get(member_id)
            if not member.in_good_standing:
                raise BusinessRuleViolation(
                    f"Member {member_id} is not in good standing",
                    error_code="MEMBER_INELIGIBLE",
                    details={"reasons": [f"membership is {member.membership_status.value}"]},
                )
            await tx.books.get(book_id)

            active = await tx.reservations.count_active_for_member(member_id)
            if active >= self.policy.max_active_reservations:
                raise BusinessRuleViolation(
                    f"Maximum active reservations ({self.policy.max_active_reservations}) reached",
                    error_code="RESERVATION_LIMIT_REACHED",
                    details={"active_reservations": active},
                )

            existing = await tx.reservations.find_active(member_id, book_id)
            if existing is not None:
                raise BusinessRuleViolation(
                    "You already have an active reservation for this book",
                    error_code="DUPLICATE_RESERVATION",
                    details={"reservation_id": existing.id},
                )

            available = await self.copies.available_count(tx, book_id)
            if available > 0:
                raise BusinessRuleViolation(
                    "A copy of this book is available; check it out instead",
                    error_code="AVAILABLE_COPY_EXISTS",
                    details={"book_id": book_id, "available_copies": available},
                )

            reservation = Reservation(
                member_id=member_id,
                book_id=book_id,
                reservation_date=tx.now,
                status=ReservationStatus.ACTIVE,
            )
            return await tx.reservations.add(reservation)

        return await self.coordinator.run(
            "reservation.create", "Reservation", _create,
            actor_id=actor_id, serializable=True,
        )

    async def cancel(
        self,
        reservation_id: int,
        actor_id: Optional[int] = None,
    ) -> Result[Reservation]:
        async def _cancel(tx: TransactionContext) -> Reservation:
            reservation = await tx.reservations.get(reservation_id)
            tx.track(reservation)
            if reservation.status != ReservationStatus.ACTIVE:
                raise InvalidStateTransition(
                    f"Reservation cannot be cancelled. Current status: {reservation.status.value}",
                    error_code="RESERVATION_NOT_ACTIVE",
                    details={"reservation_id": reservation_id, "status": reservation.status.value},
                )
            reservation.status = ReservationStatus.CANCELLED
            reservation.cancelled_by = actor_id
            return await tx.reservations.save(reservation)

        return await self.coordinator.run(
            "reservation.cancel", "Reservation", _cancel, actor_id=actor_id
        )

    async def _hold(
        self,
        tx: TransactionContext,
        reservation: Reservation,
        copy: BookCopy,
    ) -> Reservation:
        await self.copies.apply(tx, copy.id, CopyStatus.AVAILABLE, CopyStatus.RESERVED)
        reservation.book_copy_id = copy.id
        reservation.status = ReservationStatus.FULFILLED
        reservation.fulfilled_at = tx.now
        await tx.reservations.save(reservation)

        tx.notify(
            reservation.member_id,
            NotificationKind.RESERVATION_FULFILLED,
            {
                "reservation_id": reservation.id,
                "book_id": reservation.book_id,
                "book_copy_id": copy.id,
                "pickup_deadline": self.pickup_deadline(reservation).isoformat(),
            },
        )
        return reservation

    async def fulfill_next_in(
        self,
        tx: TransactionContext,
        book_id: int,
        prefer_copy_id: Optional[int] = None,
    ) -> Optional[Reservation]:
        """Give an AVAILABLE copy to the head of the queue, inside ``tx``.

        Returns ``None`` when nobody is waiting or no copy is free.
        """
        head = await tx.reservations.head(book_id)
        if head is None:
            return None
        copy = await self.copies.first_available(tx, book_id, prefer_copy_id)
        if copy is None:
            return None
        return await self._hold(tx, head, copy)

    async def try_fulfill_next(
        self,
        book_id: int,
        actor_id: Optional[int] = None,
    ) -> Result[Optional[Reservation]]:
        async def _fulfill_next(tx: TransactionContext) -> Optional[Reservation]:
            await tx.books.get(book_id)
            head = await tx.reservations.head(book_id)
            if head is None:
                return None
            tx.track(head)
            fulfilled = await self.fulfill_next_in(tx, book_id)
            if fulfilled is None:
                raise InvalidStateTransition(
                    f"No available copy of book {book_id}",
                    error_code="NO_AVAILABLE_COPY",
                    details={"book_id": book_id, "reservation_id": head.id},
                )
            return fulfilled

        return await self.coordinator.run(
            "reservation.fulfill_next", "Reservation", _fulfill_next, actor_id=actor_id
        )

    async def fulfill(
        self,
        reservation_id: int,
        copy_id: int,
        actor_id: Optional[int] = None,
    ) -> Result[Reservation]:
        """Staff assigns a specific AVAILABLE copy to a specific reservation."""

        async def _fulfill(tx: TransactionContext) -> Reservation:
            reservation = await tx.reservations.get(reservation_id)
            tx.track(reservation)
            if reservation.status != ReservationStatus.ACTIVE:
                raise InvalidStateTransition(
                    f"Reservation cannot be fulfilled. Current status: {reservation.status.value}",
                    error_code="RESERVATION_NOT_ACTIVE",
                    details={"reservation_id": reservation_id, "status": reservation.status.value},
                )

            copy = await tx.copies.get(copy_id)
            if copy.book_id != reservation.book_id:
                raise BusinessRuleViolation(
                    f"Copy {copy_id} is not a copy of book {reservation.book_id}",
                    error_code="COPY_BOOK_MISMATCH",
                    details={"copy_id": copy_id, "book_id": reservation.book_id},
                )

            member = await tx.members.get(reservation.member_id)
            if not member.has_contact_info:
                raise BusinessRuleViolation(
                    f"Member {member.id} has no contact information on file",
                    error_code="MEMBER_CONTACT_MISSING",
                    details={"member_id": member.id},
                )

            return await self._hold(tx, reservation, copy)

        return await self.coordinator.run(
            "reservation.fulfill", "Reservation", _fulfill, actor_id=actor_id
        )

    async def sweep_expired(self, as_of: Optional[datetime] = None) -> Result[int]:
        """Expire holds not picked up within the pickup window.

        Each expiry runs in its own transaction stamped ``as_of``; the freed
        copy goes straight to the next member in the queue, if any. Holds
        passed on this way are fulfilled at ``as_of`` and so are not candidates
        for a repeat run with the same ``as_of``.
        """
        as_of = as_of or self.coordinator.clock()
        cutoff = as_of - self.pickup_window

        async def _candidates(tx: TransactionContext) -> list[int]:
            return [r.id for r in await tx.reservations.list_unclaimed_fulfilled_before(cutoff)]

        candidates = await self.coordinator.read(_candidates)
        if not candidates.ok:
            return Result.failure(candidates.error)

        sweep = SweepLogger("expire_reservations", as_of)
        sweep.start(len(candidates.value))
        expired = 0

        for reservation_id in candidates.value:
            result = await self.coordinator.run(
                "reservation.expire", "Reservation",
                self._expiry(reservation_id, cutoff, sweep), now=as_of,
            )
            if not result.ok:
                logger.warning(
                    f"Reservation {reservation_id} not expired: [{result.error.code}] {result.error.message}"
                )
            elif result.value is not None:
                expired += 1

        sweep.end(expired)
        return Result.success(expired)

    def _expiry(self, reservation_id: int, cutoff: datetime, sweep: SweepLogger):
        async def _expire(tx: TransactionContext) -> Optional[Reservation]:
            reservation = await tx.reservations.get(reservation_id)
            tx.track(reservation)
            # Re-checked under the transaction; a pickup may have won the race.
            if not reservation.is_awaiting_pickup or reservation.fulfilled_at >= cutoff:
                sweep.item("Reservation", reservation_id, "no longer eligible, skipped")
                return None

            reservation.status = ReservationStatus.EXPIRED
            await tx.reservations.save(reservation)
            tx.notify(
                reservation.member_id,
                NotificationKind.RESERVATION_EXPIRED,
                {"reservation_id": reservation.id, "book_id": reservation.book_id},
            )
            sweep.item("Reservation", reservation_id, "expired")

            if reservation.book_copy_id is not None:
                copy = await tx.copies.get(reservation.book_copy_id)
                if copy.status == CopyStatus.RESERVED:
                    await self.copies.apply(tx, copy.id, CopyStatus.RESERVED, CopyStatus.AVAILABLE)
                    successor = await self.fulfill_next_in(tx, reservation.book_id, copy.id)
                    if successor is not None:
                        sweep.cascade(reservation.book_id, successor.id)
            return reservation

        return _expire

    async def get_reservation(self, reservation_id: int) -> Result[Reservation]:
        async def _get(tx: TransactionContext) -> Reservation:
            return await tx.reservations.get(reservation_id)

        return await self.coordinator.read(_get)

    async def queue_rank(self, reservation_id: int) -> Result[Optional[int]]:
        """1-based position in the book's queue, ``None`` once no longer ACTIVE."""

        async def _rank(tx: TransactionContext) -> Optional[int]:
            reservation = await tx.reservations.get(reservation_id)
            if reservation.status != ReservationStatus.ACTIVE:
                return None
            return await tx.reservations.rank(reservation)

        return await self.coordinator.read(_rank)

    async def list_queue(self, book_id: int) -> Result[list[Reservation]]:
        """ACTIVE reservations for the book, head first."""

        async def _queue(tx: TransactionContext) -> list[Reservation]:
            await tx.books.get(book_id)
            return await tx.reservations.queue(book_id)

        return await self.coordinator.read(_queue)

    async def list_reservations(self, member_id: int) -> Result[list[Reservation]]:
        async def _list(tx: TransactionContext) -> list[Reservation]:
            await tx.members.get(member_id)
            return await tx.reservations.list_for_member(member_id)

        return await self.coordinator.read(_list)
