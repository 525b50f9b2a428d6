"""Loan API routes."""
from typing import Optional

from fastapi import APIRouter, Depends, status

from circulation.api.deps import get_actor_id, get_engine, unwrap
from circulation.engine import CirculationEngine
from circulation.models.loan import Loan, LoanStatus
from circulation.schemas.loan import CheckoutRequest, LoanResponse, RenewRequest, ReturnRequest

router = APIRouter(prefix="/loans", tags=["Loans"])


@router.post("", response_model=LoanResponse, status_code=status.HTTP_201_CREATED)
async def checkout(
    data: CheckoutRequest,
    engine: CirculationEngine = Depends(get_engine),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> Loan:
    """Check out a copy to a member."""
    return unwrap(
        await engine.loans.checkout(
            data.member_id, data.book_copy_id, due_date=data.due_date, actor_id=actor_id
        )
    )


@router.get("", response_model=list[LoanResponse])
async def list_loans(
    member_id: Optional[int] = None,
    status_filter: Optional[LoanStatus] = None,
    engine: CirculationEngine = Depends(get_engine),
) -> list[Loan]:
    """List loans, newest first."""
    return unwrap(await engine.loans.list_loans(member_id=member_id, status=status_filter))


@router.get("/{loan_id}", response_model=LoanResponse)
async def get_loan(
    loan_id: int,
    engine: CirculationEngine = Depends(get_engine),
) -> Loan:
    return unwrap(await engine.loans.get_loan(loan_id))


@router.post("/{loan_id}/renew", response_model=LoanResponse)
async def renew_loan(
    loan_id: int,
    data: RenewRequest,
    engine: CirculationEngine = Depends(get_engine),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> Loan:
    """Extend the due date of an active loan."""
    return unwrap(await engine.loans.renew(loan_id, data.new_due_date, actor_id=actor_id))


@router.post("/{loan_id}/return", response_model=LoanResponse)
async def return_loan(
    loan_id: int,
    data: ReturnRequest,
    engine: CirculationEngine = Depends(get_engine),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> Loan:
    """Return a loan, assessing any fines."""
    return unwrap(
        await engine.loans.return_book(loan_id, condition_ok=data.condition_ok, actor_id=actor_id)
    )


@router.post("/{loan_id}/lost", response_model=LoanResponse)
async def report_lost(
    loan_id: int,
    engine: CirculationEngine = Depends(get_engine),
    actor_id: Optional[int] = Depends(get_actor_id),
) -> Loan:
    """Report the borrowed copy as lost."""
    return unwrap(await engine.loans.report_lost(loan_id, actor_id=actor_id))
