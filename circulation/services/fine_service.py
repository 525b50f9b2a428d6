"""Fine calculation, payment and waiver."""
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from circulation.config import Settings, settings as default_settings
from circulation.core.exceptions import BusinessRuleViolation, InvalidStateTransition
from circulation.core.result import Result
from circulation.models.fine import Fine, FineStatus, FineType
from circulation.models.loan import Loan, LoanStatus
from circulation.transactions import TransactionContext, TransactionCoordinator

CENT = Decimal("0.01")

Money = Union[Decimal, int, float, str]


def to_money(value: Money) -> Decimal:
    """Coerce to a two-place Decimal; floats go through ``str`` to avoid binary noise."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class FineCalculator:
    """Owns fines: overdue amounts, pending balances and their settlement.

    A fine is created PENDING and moves exactly once, to PAID or WAIVED. A
    partial payment settles the fine in full and opens a new PENDING fine for
    the shortfall, so amounts are never edited in place.
    """

    def __init__(self, coordinator: TransactionCoordinator, policy: Settings = default_settings):
        self.coordinator = coordinator
        self.policy = policy

    @staticmethod
    def days_overdue(due_date: datetime, as_of: datetime) -> int:
        """Whole days past the due date, never negative."""
        if as_of <= due_date:
            return 0
        return (as_of - due_date).days

    def calculate(self, loan: Loan, as_of: datetime) -> Decimal:
        """Overdue fine owed on ``loan`` at ``as_of``.

        Returned loans are measured at their return date; lost loans accrue
        nothing further here.
        """
        if loan.status == LoanStatus.RETURNED and loan.return_date is not None:
            as_of = min(as_of, loan.return_date)
        elif loan.status not in (LoanStatus.ACTIVE, LoanStatus.OVERDUE):
            return Decimal("0.00")

        amount = to_money(self.days_overdue(loan.due_date, as_of) * self.policy.daily_fine_rate)
        if self.policy.max_overdue_fine is not None:
            amount = min(amount, to_money(self.policy.max_overdue_fine))
        return max(Decimal("0.00"), amount)

    async def create_pending_fine(
        self,
        tx: TransactionContext,
        member_id: int,
        loan_id: Optional[int],
        amount: Money,
        fine_type: FineType,
        description: str,
    ) -> Fine:
        """Add a PENDING fine inside ``tx``; the member's balance grows by ``amount``."""
        amount = to_money(amount)
        if amount <= 0:
            raise BusinessRuleViolation(
                "Fine amount must be greater than zero",
                error_code="INVALID_FINE_AMOUNT",
                details={"amount": str(amount)},
            )
        fine = Fine(
            member_id=member_id,
            loan_id=loan_id,
            amount=amount,
            fine_type=fine_type,
            status=FineStatus.PENDING,
            description=description,
            fine_date=tx.now,
        )
        return await tx.fines.add(fine)

    async def outstanding_total(self, tx: TransactionContext, member_id: int) -> Decimal:
        return await tx.fines.outstanding_total(member_id)

    async def create_fine(
        self,
        member_id: int,
        amount: Money,
        fine_type: FineType,
        description: str,
        loan_id: Optional[int] = None,
        actor_id: Optional[int] = None,
    ) -> Result[Fine]:
        """Manual fine raised by staff."""

        async def _create(tx: TransactionContext) -> Fine:
            await tx.members.get(member_id)
            if loan_id is not None:
                loan = await tx.loans.get(loan_id)
                if loan.member_id != member_id:
                    raise BusinessRuleViolation(
                        f"Loan {loan_id} does not belong to member {member_id}",
                        error_code="LOAN_MEMBER_MISMATCH",
                        details={"loan_id": loan_id, "member_id": member_id},
                    )
            if not description or not description.strip():
                raise BusinessRuleViolation("Description is required", error_code="DESCRIPTION_REQUIRED")
            if to_money(amount) > to_money(self.policy.max_fine_amount):
                raise BusinessRuleViolation(
                    f"Fine amount cannot exceed {self.policy.max_fine_amount}",
                    error_code="INVALID_FINE_AMOUNT",
                    details={"amount": str(to_money(amount))},
                )
            return await self.create_pending_fine(
                tx, member_id, loan_id, amount, fine_type, description.strip()
            )

        return await self.coordinator.run("fine.create", "Fine", _create, actor_id=actor_id)

    async def pay(
        self,
        fine_id: int,
        amount_paid: Money,
        actor_id: Optional[int] = None,
    ) -> Result[Fine]:
        """Settle a PENDING fine. Any shortfall becomes a new PENDING fine."""

        async def _pay(tx: TransactionContext) -> Fine:
            fine = await tx.fines.get(fine_id)
            tx.track(fine)
            if fine.status != FineStatus.PENDING:
                raise InvalidStateTransition(
                    f"Fine cannot be paid. Current status: {fine.status.value}",
                    error_code="FINE_NOT_PENDING",
                    details={"fine_id": fine_id, "status": fine.status.value},
                )
            paid = to_money(amount_paid)
            if paid <= 0 or paid > fine.amount:
                raise BusinessRuleViolation(
                    f"Payment amount must be between 0.01 and {fine.amount}",
                    error_code="INVALID_PAYMENT_AMOUNT",
                    details={"fine_id": fine_id, "amount_paid": str(paid), "amount": str(fine.amount)},
                )

            fine.status = FineStatus.PAID
            fine.amount_paid = paid
            fine.resolved_at = tx.now
            fine.resolved_by = tx.actor_id
            await tx.fines.save(fine)

            shortfall = fine.amount - paid
            if shortfall > 0:
                await self.create_pending_fine(
                    tx,
                    fine.member_id,
                    fine.loan_id,
                    shortfall,
                    fine.fine_type,
                    f"Remaining balance of fine #{fine.id}",
                )
            return fine

        return await self.coordinator.run("fine.pay", "Fine", _pay, actor_id=actor_id)

    async def waive(
        self,
        fine_id: int,
        reason: str,
        actor_id: Optional[int] = None,
    ) -> Result[Fine]:
        """Forgive a PENDING fine; a reason is mandatory."""

        async def _waive(tx: TransactionContext) -> Fine:
            fine = await tx.fines.get(fine_id)
            tx.track(fine)
            if fine.status != FineStatus.PENDING:
                raise InvalidStateTransition(
                    f"Fine cannot be waived. Current status: {fine.status.value}",
                    error_code="FINE_NOT_PENDING",
                    details={"fine_id": fine_id, "status": fine.status.value},
                )
            if not reason or not reason.strip():
                raise BusinessRuleViolation("Waiver reason is required", error_code="WAIVER_REASON_REQUIRED")

            fine.status = FineStatus.WAIVED
            fine.waiver_reason = reason.strip()
            fine.resolved_at = tx.now
            fine.resolved_by = tx.actor_id
            return await tx.fines.save(fine)

        return await self.coordinator.run("fine.waive", "Fine", _waive, actor_id=actor_id)

    async def outstanding_balance(self, member_id: int) -> Result[Decimal]:
        """Sum of the member's PENDING fines."""

        async def _balance(tx: TransactionContext) -> Decimal:
            await tx.members.get(member_id)
            return await tx.fines.outstanding_total(member_id)

        return await self.coordinator.read(_balance)

    async def get_fine(self, fine_id: int) -> Result[Fine]:
        async def _get(tx: TransactionContext) -> Fine:
            return await tx.fines.get(fine_id)

        return await self.coordinator.read(_get)

    async def list_fines(
        self,
        member_id: int,
        status: Optional[FineStatus] = None,
    ) -> Result[list[Fine]]:
        async def _list(tx: TransactionContext) -> list[Fine]:
            await tx.members.get(member_id)
            return await tx.fines.list(member_id=member_id, status=status)

        return await self.coordinator.read(_list)
