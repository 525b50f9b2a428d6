"""Transaction coordinator tests: atomicity, retries, audit and notifications."""
from datetime import timedelta

import pytest
from sqlalchemy.orm.exc import StaleDataError

from circulation.core.events import NotificationKind
from circulation.core.exceptions import BusinessRuleViolation, ConcurrencyConflict
from circulation.core.result import ErrorKind
from circulation.engine import CirculationEngine
from circulation.models import CopyStatus, Loan, Reservation, ReservationStatus
from circulation.transactions import TransactionContext, TransactionCoordinator


@pytest.fixture
def coordinator(session_factory, audit, notifier, clock) -> TransactionCoordinator:
    return TransactionCoordinator(session_factory, audit=audit, notifier=notifier, clock=clock)


@pytest.mark.asyncio
async def test_failure_rolls_back_every_write(coordinator, seed, clock, notifier):
    member = await seed.member()
    book = await seed.book()
    [copy] = await seed.copies(book)

    async def _op(tx: TransactionContext):
        await tx.loans.add(
            Loan(member_id=member.id, book_copy_id=copy.id, loan_date=tx.now, due_date=tx.now)
        )
        tx.notify(member.id, NotificationKind.LOAN_OVERDUE, {})
        raise BusinessRuleViolation("nope", error_code="TEST_RULE")

    result = await coordinator.run("test.op", "Loan", _op)

    assert not result.ok
    assert result.error.code == "TEST_RULE"
    assert result.error.rejected_by_rule
    listed = await coordinator.read(lambda tx: tx.loans.list(member_id=member.id))
    assert listed.value == []
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_conflict_is_retried(coordinator):
    attempts = []

    async def _op(tx: TransactionContext):
        attempts.append(tx.now)
        if len(attempts) < 3:
            raise StaleDataError("row changed underneath")
        return "done"

    result = await coordinator.run("test.op", "Thing", _op)

    assert result.ok
    assert result.value == "done"
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_conflict_reported_after_retries(coordinator, audit):
    attempts = []

    async def _op(tx: TransactionContext):
        attempts.append(1)
        raise ConcurrencyConflict()

    result = await coordinator.run("test.op", "Thing", _op)

    assert result.error.kind == ErrorKind.CONCURRENCY_CONFLICT
    assert result.error.retryable
    assert len(attempts) == coordinator.max_retries + 1
    [entry] = audit.for_action("test.op")
    assert entry["success"] is False
    assert entry["error"].startswith("CONCURRENCY_CONFLICT")


@pytest.mark.asyncio
async def test_unique_active_reservation_enforced_by_database(coordinator, seed, clock):
    member = await seed.member()
    book = await seed.book()

    async def _op(tx: TransactionContext):
        for _ in range(2):
            await tx.reservations.add(
                Reservation(member_id=member.id, book_id=book.id, reservation_date=tx.now)
            )

    result = await coordinator.run("test.op", "Reservation", _op)

    assert result.error.kind == ErrorKind.CONCURRENCY_CONFLICT
    queue = await coordinator.read(lambda tx: tx.reservations.queue(book.id))
    assert queue.value == []


@pytest.mark.asyncio
async def test_unexpected_error_is_persistence_failure(coordinator):
    async def _op(tx: TransactionContext):
        raise RuntimeError("disk on fire")

    result = await coordinator.run("test.op", "Thing", _op)

    assert result.error.kind == ErrorKind.PERSISTENCE_FAILURE
    assert "disk on fire" in result.error.message


@pytest.mark.asyncio
async def test_operation_sees_one_clock_reading(coordinator, clock):
    async def _op(tx: TransactionContext):
        clock.advance(hours=5)
        return tx.now

    result = await coordinator.run("test.op", "Thing", _op)
    assert result.value == clock.now - timedelta(hours=5)


class ExplodingNotifier:
    async def notify(self, member_id, kind, payload):
        raise ConnectionError("smtp down")


class ExplodingAudit:
    async def record(self, *args, **kwargs):
        raise ConnectionError("audit store down")


@pytest.mark.asyncio
async def test_notification_failure_keeps_committed_work(session_factory, seed, clock, policy):
    engine = CirculationEngine(
        session_factory, notifier=ExplodingNotifier(), audit=ExplodingAudit(), clock=clock, policy=policy
    )
    member = await seed.member()
    book = await seed.book()
    await seed.copies(book, status=CopyStatus.ON_LOAN)
    reservation = (await engine.reservations.create(member.id, book.id)).value
    [copy] = await seed.copies(book)

    result = await engine.reservations.fulfill(reservation.id, copy.id)

    assert result.ok
    stored = await seed.get(Reservation, reservation.id)
    assert stored.status == ReservationStatus.FULFILLED


@pytest.mark.asyncio
async def test_audit_records_success_and_failure(engine, seed, audit):
    member = await seed.member()
    book = await seed.book()
    [copy] = await seed.copies(book)

    ok = await engine.loans.checkout(member.id, copy.id, actor_id=7)
    rejected = await engine.loans.checkout(member.id, copy.id, actor_id=7)

    assert ok.ok and not rejected.ok
    success, failure = audit.for_action("loan.checkout")
    assert success["success"] is True
    assert success["entity_type"] == "Loan"
    assert success["entity_id"] == ok.value.id
    assert success["after_state"]["status"] == "active"
    assert failure["success"] is False
    assert failure["after_state"] is None
    assert failure["error"].startswith("COPY_UNAVAILABLE")


@pytest.mark.asyncio
async def test_reads_are_not_audited(engine, seed, audit):
    member = await seed.member()
    await engine.fines.outstanding_balance(member.id)
    await engine.loans.list_loans(member_id=member.id)
    assert audit.entries == []
