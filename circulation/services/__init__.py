"""Circulation components."""
from circulation.services.audit_service import SqlAuditRecorder
from circulation.services.copy_service import CopyAvailabilityManager
from circulation.services.fine_service import FineCalculator
from circulation.services.loan_service import LoanEligibility, LoanLedger
from circulation.services.reservation_service import ReservationQueue

__all__ = [
    "CopyAvailabilityManager",
    "FineCalculator",
    "LoanEligibility",
    "LoanLedger",
    "ReservationQueue",
    "SqlAuditRecorder",
]
