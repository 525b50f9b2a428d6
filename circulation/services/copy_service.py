"""Copy availability: the physical-copy state machine."""
from typing import Optional

from circulation.core.exceptions import InvalidStateTransition
from circulation.core.result import Result
from circulation.models.book import BookCopy, CopyStatus
from circulation.transactions import TransactionContext, TransactionCoordinator

LEGAL_TRANSITIONS: frozenset[tuple[CopyStatus, CopyStatus]] = frozenset({
    (CopyStatus.AVAILABLE, CopyStatus.ON_LOAN),    # checkout
    (CopyStatus.ON_LOAN, CopyStatus.AVAILABLE),    # return in good condition
    (CopyStatus.ON_LOAN, CopyStatus.DAMAGED),      # return damaged
    (CopyStatus.ON_LOAN, CopyStatus.LOST),         # reported lost
    (CopyStatus.AVAILABLE, CopyStatus.RESERVED),   # hold for a fulfilled reservation
    (CopyStatus.RESERVED, CopyStatus.ON_LOAN),     # hold picked up
    (CopyStatus.RESERVED, CopyStatus.AVAILABLE),   # hold expired
})


class CopyAvailabilityManager:
    """Validates and applies copy status transitions.

    Only the copy's own status changes here; the loan or reservation that goes
    with a transition is the caller's responsibility.
    """

    def __init__(self, coordinator: TransactionCoordinator):
        self.coordinator = coordinator

    @staticmethod
    def is_legal(from_status: CopyStatus, to_status: CopyStatus) -> bool:
        return (from_status, to_status) in LEGAL_TRANSITIONS

    async def apply(
        self,
        tx: TransactionContext,
        copy_id: int,
        from_expected: CopyStatus,
        to: CopyStatus,
    ) -> BookCopy:
        """Move a copy from ``from_expected`` to ``to`` inside ``tx``."""
        if not self.is_legal(from_expected, to):
            raise InvalidStateTransition(
                f"Copy cannot move from {from_expected.value} to {to.value}",
                error_code="INVALID_COPY_TRANSITION",
                details={"copy_id": copy_id, "from": from_expected.value, "to": to.value},
            )

        copy = await tx.copies.get(copy_id, for_update=True)
        if copy.status != from_expected:
            code = "COPY_UNAVAILABLE" if from_expected == CopyStatus.AVAILABLE else "COPY_STATUS_MISMATCH"
            raise InvalidStateTransition(
                f"Copy {copy_id} is {copy.status.value}, expected {from_expected.value}",
                error_code=code,
                details={"copy_id": copy_id, "status": copy.status.value, "expected": from_expected.value},
            )

        copy.status = to
        return await tx.copies.save(copy)

    async def first_available(
        self,
        tx: TransactionContext,
        book_id: int,
        prefer_copy_id: Optional[int] = None,
    ) -> Optional[BookCopy]:
        return await tx.copies.first_available(book_id, prefer_id=prefer_copy_id)

    async def available_count(self, tx: TransactionContext, book_id: int) -> int:
        return await tx.copies.count_available(book_id)

    async def _ensure_unowned(
        self,
        tx: TransactionContext,
        copy: BookCopy,
        from_expected: CopyStatus,
        to: CopyStatus,
    ) -> None:
        """Staff may not move a copy out from under an open loan or a pickup hold."""
        copy_id = copy.id
        if copy.status != from_expected:
            return
        if copy.status == CopyStatus.RESERVED and to == CopyStatus.ON_LOAN:
            raise InvalidStateTransition(
                f"Copy {copy_id} can only leave the hold shelf through a checkout",
                error_code="CHECKOUT_REQUIRED",
                details={"copy_id": copy_id},
            )
        if copy.status == CopyStatus.ON_LOAN:
            loan = await tx.loans.find_open_for_copy(copy_id)
            if loan is not None:
                raise InvalidStateTransition(
                    f"Copy {copy_id} is on loan {loan.id}; return it or report it lost",
                    error_code="COPY_IN_USE",
                    details={"copy_id": copy_id, "loan_id": loan.id},
                )
        if copy.status == CopyStatus.RESERVED:
            hold = await tx.reservations.find_hold_for_copy(copy_id)
            if hold is not None:
                raise InvalidStateTransition(
                    f"Copy {copy_id} is held for reservation {hold.id}",
                    error_code="COPY_IN_USE",
                    details={"copy_id": copy_id, "reservation_id": hold.id},
                )

    async def transition(
        self,
        copy_id: int,
        from_expected: CopyStatus,
        to: CopyStatus,
        actor_id: Optional[int] = None,
    ) -> Result[BookCopy]:
        """Staff-initiated status change, validated against the same table.

        Copies owned by an open loan or an unclaimed hold are refused; those
        move through ``LoanLedger`` and ``ReservationQueue`` instead.
        """

        async def _transition(tx: TransactionContext) -> BookCopy:
            copy = await tx.copies.get(copy_id)
            tx.track(copy)
            if self.is_legal(from_expected, to):
                await self._ensure_unowned(tx, copy, from_expected, to)
            return await self.apply(tx, copy_id, from_expected, to)

        return await self.coordinator.run(
            "copy.transition", "BookCopy", _transition, actor_id=actor_id
        )

    async def list_copies(
        self,
        book_id: int,
        status: Optional[CopyStatus] = None,
    ) -> Result[list[BookCopy]]:
        async def _list(tx: TransactionContext) -> list[BookCopy]:
            await tx.books.get(book_id)
            return await tx.copies.list_for_book(book_id, status)

        return await self.coordinator.read(_list)
