"""SQLAlchemy models."""
from circulation.models.audit import AuditLog
from circulation.models.book import Book, BookCopy, CopyStatus
from circulation.models.fine import Fine, FineStatus, FineType
from circulation.models.loan import OPEN_LOAN_STATUSES, Loan, LoanStatus
from circulation.models.member import Member, MembershipStatus
from circulation.models.reservation import Reservation, ReservationStatus

__all__ = [
    # Catalog
    "Book",
    "BookCopy",
    "CopyStatus",
    # Member
    "Member",
    "MembershipStatus",
    # Loan
    "Loan",
    "LoanStatus",
    "OPEN_LOAN_STATUSES",
    # Reservation
    "Reservation",
    "ReservationStatus",
    # Fine
    "Fine",
    "FineStatus",
    "FineType",
    # Audit
    "AuditLog",
]
