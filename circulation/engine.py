"""Wiring of the circulation components around one transaction coordinator."""
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from circulation.config import Settings, settings as default_settings
from circulation.ports import AuditRecorder, Notifier
from circulation.services.copy_service import CopyAvailabilityManager
from circulation.services.fine_service import FineCalculator
from circulation.services.loan_service import LoanLedger
from circulation.services.reservation_service import ReservationQueue
from circulation.transactions import TransactionCoordinator, utc_now


class CirculationEngine:
    """Entry point for callers: one instance of each component, sharing a coordinator."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit: Optional[AuditRecorder] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = utc_now,
        policy: Settings = default_settings,
    ):
        self.policy = policy
        self.coordinator = TransactionCoordinator(
            session_factory,
            audit=audit,
            notifier=notifier,
            clock=clock,
            max_retries=policy.max_retries,
        )
        self.copies = CopyAvailabilityManager(self.coordinator)
        self.fines = FineCalculator(self.coordinator, policy)
        self.reservations = ReservationQueue(self.coordinator, self.copies, policy)
        self.loans = LoanLedger(
            self.coordinator, self.copies, self.fines, self.reservations, policy
        )
