"""Fine Pydantic schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from circulation.models.fine import FineStatus, FineType
from circulation.schemas.common import BaseSchema


class FineCreate(BaseModel):
    """Schema for a manual fine."""

    member_id: int
    amount: Decimal = Field(..., gt=0, le=1000, decimal_places=2)
    fine_type: FineType = FineType.OTHER
    description: str = Field(..., min_length=1, max_length=500)
    loan_id: Optional[int] = None


class FinePayment(BaseModel):
    """Schema for paying a fine."""

    amount_paid: Decimal = Field(..., gt=0, decimal_places=2)


class FineWaiver(BaseModel):
    """Schema for waiving a fine."""

    reason: str = Field(..., min_length=1, max_length=500)


class FineResponse(BaseSchema):
    """Schema for fine response."""

    id: int
    member_id: int
    loan_id: Optional[int] = None
    amount: Decimal
    fine_type: FineType
    status: FineStatus
    description: str
    fine_date: datetime
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[int] = None
    amount_paid: Optional[Decimal] = None
    waiver_reason: Optional[str] = None


class BalanceResponse(BaseModel):
    """Schema for a member's outstanding balance."""

    member_id: int
    outstanding_balance: Decimal
