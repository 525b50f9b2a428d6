"""Loan Pydantic schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from circulation.models.loan import LoanStatus
from circulation.schemas.common import BaseSchema, UTCDatetime


class CheckoutRequest(BaseModel):
    """Schema for checking out a copy."""

    member_id: int
    book_copy_id: int
    due_date: Optional[UTCDatetime] = None


class RenewRequest(BaseModel):
    """Schema for renewing a loan."""

    new_due_date: Optional[UTCDatetime] = None


class ReturnRequest(BaseModel):
    """Schema for returning a loan."""

    condition_ok: bool = True


class LoanResponse(BaseSchema):
    """Schema for loan response."""

    id: int
    member_id: int
    book_copy_id: int
    loan_date: datetime
    due_date: datetime
    return_date: Optional[datetime] = None
    status: LoanStatus


class EligibilityResponse(BaseSchema):
    """Schema for borrowing eligibility."""

    member_id: int
    eligible: bool
    active_loans: int
    available_slots: int
    outstanding_balance: Decimal
    reasons: list[str] = []
    warnings: list[str] = []
