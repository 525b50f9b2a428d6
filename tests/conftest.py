"""Shared fixtures: a throwaway SQLite database and an engine wired to fakes."""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from circulation.config import Settings
from circulation.core.events import NotificationKind
from circulation.database import Base
from circulation.engine import CirculationEngine
from circulation.models import (
    Book,
    BookCopy,
    CopyStatus,
    Fine,
    FineStatus,
    FineType,
    Loan,
    LoanStatus,
    Member,
    MembershipStatus,
)

START = datetime(2024, 1, 1, 9, 0, 0)


class FakeClock:
    """Settable clock so tests control ``now``."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    def __init__(self):
        self.sent: list[tuple[int, NotificationKind, dict[str, Any]]] = []

    async def notify(self, member_id: int, kind: NotificationKind, payload: dict[str, Any]) -> None:
        self.sent.append((member_id, kind, payload))

    def of_kind(self, kind: NotificationKind) -> list[tuple[int, NotificationKind, dict[str, Any]]]:
        return [sent for sent in self.sent if sent[1] == kind]


class RecordingAudit:
    def __init__(self):
        self.entries: list[dict[str, Any]] = []

    async def record(
        self,
        actor_id,
        action,
        entity_type,
        entity_id,
        before_state,
        after_state,
        success,
        error=None,
    ) -> None:
        self.entries.append({
            "actor_id": actor_id,
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "before_state": before_state,
            "after_state": after_state,
            "success": success,
            "error": error,
        })

    def for_action(self, action: str) -> list[dict[str, Any]]:
        return [entry for entry in self.entries if entry["action"] == action]


class Seeder:
    """Writes fixture rows directly, bypassing the engine."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def add(self, *objects):
        async with self.session_factory() as session:
            session.add_all(objects)
            await session.commit()
        return objects[0] if len(objects) == 1 else objects

    async def get(self, model, entity_id: int):
        async with self.session_factory() as session:
            return await session.get(model, entity_id)

    async def member(
        self,
        name: str = "Ada",
        email: Optional[str] = "ada@example.com",
        status: MembershipStatus = MembershipStatus.ACTIVE,
    ) -> Member:
        return await self.add(Member(name=name, email=email, membership_status=status))

    async def book(self, title: str = "Dune") -> Book:
        return await self.add(Book(title=title, author="Frank Herbert"))

    async def copies(
        self,
        book: Book,
        count: int = 1,
        status: CopyStatus = CopyStatus.AVAILABLE,
    ) -> list[BookCopy]:
        copies = [BookCopy(book_id=book.id, status=status) for _ in range(count)]
        async with self.session_factory() as session:
            session.add_all(copies)
            await session.commit()
        return copies

    async def loan(
        self,
        member: Member,
        copy: BookCopy,
        loan_date: datetime,
        due_date: datetime,
        status: LoanStatus = LoanStatus.ACTIVE,
    ) -> Loan:
        return await self.add(
            Loan(
                member_id=member.id,
                book_copy_id=copy.id,
                loan_date=loan_date,
                due_date=due_date,
                status=status,
            )
        )

    async def fine(
        self,
        member: Member,
        amount: str = "5.00",
        status: FineStatus = FineStatus.PENDING,
        fine_type: FineType = FineType.OTHER,
    ) -> Fine:
        return await self.add(
            Fine(
                member_id=member.id,
                amount=Decimal(amount),
                fine_type=fine_type,
                status=status,
                description="Seeded fine",
                fine_date=START,
            )
        )


@pytest.fixture
async def session_factory(tmp_path):
    """Fresh SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'circulation.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.fixture
def policy() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def audit() -> RecordingAudit:
    return RecordingAudit()


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


@pytest.fixture
def engine(session_factory, audit, notifier, clock, policy) -> CirculationEngine:
    return CirculationEngine(
        session_factory,
        audit=audit,
        notifier=notifier,
        clock=clock,
        policy=policy,
    )
