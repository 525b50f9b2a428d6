"""Pydantic schemas for the HTTP adapter."""
from circulation.schemas.common import (
    BaseSchema,
    ErrorResponse,
    SweepRequest,
    SweepResponse,
)
from circulation.schemas.copy import CopyResponse, CopyTransitionRequest
from circulation.schemas.fine import BalanceResponse, FineCreate, FinePayment, FineResponse, FineWaiver
from circulation.schemas.loan import (
    CheckoutRequest,
    EligibilityResponse,
    LoanResponse,
    RenewRequest,
    ReturnRequest,
)
from circulation.schemas.reservation import FulfillRequest, ReservationCreate, ReservationResponse

__all__ = [
    # Common
    "BaseSchema",
    "ErrorResponse",
    "SweepRequest",
    "SweepResponse",
    # Copy
    "CopyResponse",
    "CopyTransitionRequest",
    # Loan
    "CheckoutRequest",
    "EligibilityResponse",
    "LoanResponse",
    "RenewRequest",
    "ReturnRequest",
    # Reservation
    "FulfillRequest",
    "ReservationCreate",
    "ReservationResponse",
    # Fine
    "BalanceResponse",
    "FineCreate",
    "FinePayment",
    "FineResponse",
    "FineWaiver",
]
