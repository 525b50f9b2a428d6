"""Reservation Pydantic schemas."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from circulation.models.reservation import ReservationStatus
from circulation.schemas.common import BaseSchema


class ReservationCreate(BaseModel):
    """Schema for joining a book's queue."""

    member_id: int
    book_id: int


class FulfillRequest(BaseModel):
    """Schema for staff fulfillment with a specific copy."""

    book_copy_id: int


class ReservationResponse(BaseSchema):
    """Schema for reservation response."""

    id: int
    member_id: int
    book_id: int
    book_copy_id: Optional[int] = None
    loan_id: Optional[int] = None
    reservation_date: datetime
    fulfilled_at: Optional[datetime] = None
    status: ReservationStatus
    pickup_deadline: Optional[datetime] = None
    queue_rank: Optional[int] = None
