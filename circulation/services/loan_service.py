"""Loan ledger: checkout, renewal, return, loss and overdue detection."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from circulation.config import Settings, settings as default_settings
from circulation.core.events import NotificationKind
from circulation.core.exceptions import BusinessRuleViolation, InvalidStateTransition
from circulation.core.logging import SweepLogger, get_logger
from circulation.core.result import Result
from circulation.models.book import BookCopy, CopyStatus
from circulation.models.fine import FineType
from circulation.models.loan import Loan, LoanStatus
from circulation.models.member import Member
from circulation.services.copy_service import CopyAvailabilityManager
from circulation.services.fine_service import FineCalculator
from circulation.services.reservation_service import ReservationQueue
from circulation.transactions import TransactionContext, TransactionCoordinator

logger = get_logger("loans")


@dataclass
class LoanEligibility:
    """Whether a member may borrow right now, and why not."""

    member_id: int
    eligible: bool
    active_loans: int
    available_slots: int
    outstanding_balance: Decimal
    reasons: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class LoanLedger:
    """Owns the loan state machine.

    ``ACTIVE`` loans may be renewed, returned, reported lost or flagged
    ``OVERDUE`` by the sweep. ``OVERDUE`` loans may still be returned or
    reported lost. ``RETURNED`` and ``LOST`` are final.
    """

    def __init__(
        self,
        coordinator: TransactionCoordinator,
        copies: CopyAvailabilityManager,
        fines: FineCalculator,
        reservations: ReservationQueue,
        policy: Settings = default_settings,
    ):
        self.coordinator = coordinator
        self.copies = copies
        self.fines = fines
        self.reservations = reservations
        self.policy = policy

    async def _eligibility(self, tx: TransactionContext, member: Member) -> LoanEligibility:
        active_loans = await tx.loans.count_open_for_member(member.id)
        balance = await self.fines.outstanding_total(tx, member.id)
        eligibility = LoanEligibility(
            member_id=member.id,
            eligible=True,
            active_loans=active_loans,
            available_slots=max(0, self.policy.max_active_loans - active_loans),
            outstanding_balance=balance,
        )

        if not member.in_good_standing:
            eligibility.reasons.append(f"membership is {member.membership_status.value}")
        if balance > 0:
            eligibility.reasons.append(f"outstanding fines of {balance}")
        if active_loans >= self.policy.max_active_loans:
            eligibility.reasons.append(
                f"maximum active loans ({self.policy.max_active_loans}) reached"
            )
        if await tx.loans.count_overdue_for_member(member.id) > 0:
            eligibility.warnings.append("member has overdue loans")

        eligibility.eligible = not eligibility.reasons
        return eligibility

    def _validate_due_date(self, loan_date: datetime, due_date: datetime, horizon_days: int) -> None:
        latest = loan_date + timedelta(days=horizon_days)
        if due_date <= loan_date or due_date > latest:
            raise BusinessRuleViolation(
                f"Due date must be after {loan_date.isoformat()} and no later than {latest.isoformat()}",
                error_code="INVALID_DUE_DATE",
                details={"due_date": due_date.isoformat()},
            )

    async def _claim_copy(self, tx: TransactionContext, copy: BookCopy, member_id: int):
        """Take the copy off the shelf; returns the member's hold when this is a pickup."""
        if copy.status == CopyStatus.RESERVED:
            hold = await tx.reservations.find_hold_for_copy(copy.id)
            if hold is None or hold.member_id != member_id:
                raise InvalidStateTransition(
                    f"Copy {copy.id} is on hold for another member",
                    error_code="COPY_UNAVAILABLE",
                    details={"copy_id": copy.id, "status": copy.status.value},
                )
            await self.copies.apply(tx, copy.id, CopyStatus.RESERVED, CopyStatus.ON_LOAN)
            return hold

        await self.copies.apply(tx, copy.id, CopyStatus.AVAILABLE, CopyStatus.ON_LOAN)
        return None

    async def checkout(
        self,
        member_id: int,
        copy_id: int,
        due_date: Optional[datetime] = None,
        actor_id: Optional[int] = None,
    ) -> Result[Loan]:
        """Lend a copy to a member.

        A RESERVED copy can only be checked out by the member whose fulfilled
        reservation holds it, which completes that reservation's pickup.
        """

        async def _checkout(tx: TransactionContext) -> Loan:
            member = await tx.members.get(member_id)
            copy = await tx.copies.get(copy_id)

            eligibility = await self._eligibility(tx, member)
            if not member.in_good_standing or eligibility.outstanding_balance > 0:
                raise BusinessRuleViolation(
                    f"Member {member_id} is not eligible to borrow",
                    error_code="MEMBER_INELIGIBLE",
                    details={"reasons": eligibility.reasons},
                )
            if not eligibility.eligible:
                raise BusinessRuleViolation(
                    f"Maximum active loans ({self.policy.max_active_loans}) reached",
                    error_code="LOAN_LIMIT_REACHED",
                    details={"active_loans": eligibility.active_loans},
                )

            if due_date is not None:
                self._validate_due_date(tx.now, due_date, self.policy.max_loan_days)

            hold = await self._claim_copy(tx, copy, member_id)
            loan = await tx.loans.add(
                Loan(
                    member_id=member_id,
                    book_copy_id=copy_id,
                    loan_date=tx.now,
                    due_date=due_date or tx.now + timedelta(days=self.policy.loan_period_days),
                    status=LoanStatus.ACTIVE,
                )
            )
            if hold is not None:
                hold.loan_id = loan.id
                await tx.reservations.save(hold)
                logger.info(f"Reservation {hold.id} picked up as loan {loan.id}")
            return loan

        return await self.coordinator.run("loan.checkout", "Loan", _checkout, actor_id=actor_id)

    async def renew(
        self,
        loan_id: int,
        new_due_date: Optional[datetime] = None,
        actor_id: Optional[int] = None,
    ) -> Result[Loan]:
        """Extend an ACTIVE loan when nobody is waiting for the title."""

        async def _renew(tx: TransactionContext) -> Loan:
            loan = await tx.loans.get(loan_id)
            tx.track(loan)
            if loan.status != LoanStatus.ACTIVE:
                raise InvalidStateTransition(
                    f"Loan cannot be renewed. Current status: {loan.status.value}",
                    error_code="LOAN_NOT_RENEWABLE",
                    details={"loan_id": loan_id, "status": loan.status.value},
                )

            member = await tx.members.get(loan.member_id)
            balance = await self.fines.outstanding_total(tx, member.id)
            if not member.in_good_standing or balance > 0:
                reasons = []
                if not member.in_good_standing:
                    reasons.append(f"membership is {member.membership_status.value}")
                if balance > 0:
                    reasons.append(f"outstanding fines of {balance}")
                raise BusinessRuleViolation(
                    f"Member {member.id} is not eligible to renew",
                    error_code="MEMBER_INELIGIBLE",
                    details={"reasons": reasons},
                )

            copy = await tx.copies.get(loan.book_copy_id)
            if await tx.reservations.exists_active_for_book(copy.book_id):
                raise BusinessRuleViolation(
                    "Cannot renew: other members are waiting for this book",
                    error_code="RESERVATION_PENDING",
                    details={"book_id": copy.book_id},
                )

            due = new_due_date or tx.now + timedelta(days=self.policy.loan_period_days)
            latest = tx.now + timedelta(days=self.policy.max_renewal_days)
            if due <= loan.due_date or due > latest:
                raise BusinessRuleViolation(
                    f"New due date must be after {loan.due_date.isoformat()} "
                    f"and no later than {latest.isoformat()}",
                    error_code="INVALID_DUE_DATE",
                    details={"due_date": due.isoformat()},
                )

            loan.due_date = due
            return await tx.loans.save(loan)

        return await self.coordinator.run("loan.renew", "Loan", _renew, actor_id=actor_id)

    async def _assess_overdue(self, tx: TransactionContext, loan: Loan) -> None:
        amount = self.fines.calculate(loan, tx.now)
        if amount > 0:
            days = self.fines.days_overdue(loan.due_date, tx.now)
            await self.fines.create_pending_fine(
                tx, loan.member_id, loan.id, amount, FineType.OVERDUE,
                f"Overdue by {days} day(s)",
            )

    async def return_book(
        self,
        loan_id: int,
        condition_ok: bool = True,
        actor_id: Optional[int] = None,
    ) -> Result[Loan]:
        """Close a loan; the freed copy is offered to the reservation queue."""

        async def _return(tx: TransactionContext) -> Loan:
            loan = await tx.loans.get(loan_id)
            tx.track(loan)
            if not loan.is_open:
                raise InvalidStateTransition(
                    f"Loan is not out. Current status: {loan.status.value}",
                    error_code="ALREADY_RETURNED",
                    details={"loan_id": loan_id, "status": loan.status.value},
                )

            loan.return_date = tx.now
            loan.status = LoanStatus.RETURNED
            await tx.loans.save(loan)
            await self._assess_overdue(tx, loan)

            copy = await tx.copies.get(loan.book_copy_id)
            if condition_ok:
                await self.copies.apply(tx, copy.id, CopyStatus.ON_LOAN, CopyStatus.AVAILABLE)
                await self.reservations.fulfill_next_in(tx, copy.book_id, copy.id)
            else:
                await self.copies.apply(tx, copy.id, CopyStatus.ON_LOAN, CopyStatus.DAMAGED)
                await self.fines.create_pending_fine(
                    tx, loan.member_id, loan.id, self.policy.damage_fine_amount,
                    FineType.DAMAGE, "Returned damaged",
                )
            return loan

        return await self.coordinator.run("loan.return", "Loan", _return, actor_id=actor_id)

    async def report_lost(
        self,
        loan_id: int,
        actor_id: Optional[int] = None,
    ) -> Result[Loan]:
        """Write off the copy and charge the replacement fee plus any overdue fine."""

        async def _report_lost(tx: TransactionContext) -> Loan:
            loan = await tx.loans.get(loan_id)
            tx.track(loan)
            if not loan.is_open:
                raise InvalidStateTransition(
                    f"Loan is not out. Current status: {loan.status.value}",
                    error_code="LOAN_NOT_OPEN",
                    details={"loan_id": loan_id, "status": loan.status.value},
                )

            await self._assess_overdue(tx, loan)
            loan.status = LoanStatus.LOST
            await tx.loans.save(loan)

            await self.copies.apply(tx, loan.book_copy_id, CopyStatus.ON_LOAN, CopyStatus.LOST)
            await self.fines.create_pending_fine(
                tx, loan.member_id, loan.id, self.policy.lost_fine_amount,
                FineType.LOST, "Lost item replacement",
            )
            return loan

        return await self.coordinator.run("loan.report_lost", "Loan", _report_lost, actor_id=actor_id)

    async def sweep_overdue(self, as_of: Optional[datetime] = None) -> Result[int]:
        """Flag ACTIVE loans past their due date as OVERDUE.

        Only the status changes; fines are assessed at return time.
        """
        as_of = as_of or self.coordinator.clock()

        async def _candidates(tx: TransactionContext) -> list[int]:
            return [loan.id for loan in await tx.loans.list_active_due_before(as_of)]

        candidates = await self.coordinator.read(_candidates)
        if not candidates.ok:
            return Result.failure(candidates.error)

        sweep = SweepLogger("flag_overdue", as_of)
        sweep.start(len(candidates.value))
        flagged = 0

        for loan_id in candidates.value:
            result = await self.coordinator.run(
                "loan.mark_overdue", "Loan", self._overdue_marker(loan_id, sweep), now=as_of
            )
            if not result.ok:
                logger.warning(f"Loan {loan_id} not flagged: [{result.error.code}] {result.error.message}")
            elif result.value is not None:
                flagged += 1

        sweep.end(flagged)
        return Result.success(flagged)

    def _overdue_marker(self, loan_id: int, sweep: SweepLogger):
        async def _mark(tx: TransactionContext) -> Optional[Loan]:
            loan = await tx.loans.get(loan_id)
            tx.track(loan)
            if loan.status != LoanStatus.ACTIVE or loan.due_date >= tx.now:
                sweep.item("Loan", loan_id, "no longer eligible, skipped")
                return None

            loan.status = LoanStatus.OVERDUE
            await tx.loans.save(loan)
            tx.notify(
                loan.member_id,
                NotificationKind.LOAN_OVERDUE,
                {
                    "loan_id": loan.id,
                    "book_copy_id": loan.book_copy_id,
                    "due_date": loan.due_date.isoformat(),
                    "days_overdue": self.fines.days_overdue(loan.due_date, tx.now),
                },
            )
            sweep.item("Loan", loan_id, "flagged overdue")
            return loan

        return _mark

    async def get_loan(self, loan_id: int) -> Result[Loan]:
        async def _get(tx: TransactionContext) -> Loan:
            return await tx.loans.get(loan_id)

        return await self.coordinator.read(_get)

    async def list_loans(
        self,
        member_id: Optional[int] = None,
        status: Optional[LoanStatus] = None,
    ) -> Result[list[Loan]]:
        async def _list(tx: TransactionContext) -> list[Loan]:
            if member_id is not None:
                await tx.members.get(member_id)
            return await tx.loans.list(member_id=member_id, status=status)

        return await self.coordinator.read(_list)

    async def check_eligibility(self, member_id: int) -> Result[LoanEligibility]:
        async def _check(tx: TransactionContext) -> LoanEligibility:
            member = await tx.members.get(member_id)
            return await self._eligibility(tx, member)

        return await self.coordinator.read(_check)
