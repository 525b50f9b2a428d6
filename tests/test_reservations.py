"""Reservation queue tests."""
from datetime import timedelta

import pytest

from circulation.core.events import NotificationKind
from circulation.core.logging import SweepLogger
from circulation.core.result import ErrorKind
from circulation.models import BookCopy, CopyStatus, MembershipStatus, Reservation, ReservationStatus


async def members(seed, count: int):
    return [await seed.member(name=f"Member {i}", email=f"member{i}@example.com") for i in range(count)]


async def unavailable_book(seed, title: str = "Dune", copies: int = 1):
    """A book whose copies are all out on loan."""
    book = await seed.book(title)
    await seed.copies(book, count=copies, status=CopyStatus.ON_LOAN)
    return book


@pytest.mark.asyncio
async def test_reserve_when_all_copies_on_loan(engine, seed, clock, audit):
    member = await seed.member()
    book = await unavailable_book(seed, copies=2)

    result = await engine.reservations.create(member.id, book.id, actor_id=member.id)

    assert result.ok
    reservation = result.value
    assert reservation.status == ReservationStatus.ACTIVE
    assert reservation.reservation_date == clock.now
    assert reservation.book_copy_id is None
    assert (await engine.reservations.queue_rank(reservation.id)).value == 1
    assert audit.for_action("reservation.create")[0]["entity_id"] == reservation.id


@pytest.mark.asyncio
async def test_reserve_rejected_when_copy_available(engine, seed):
    member = await seed.member()
    book = await seed.book()
    await seed.copies(book, status=CopyStatus.ON_LOAN)
    await seed.copies(book)

    result = await engine.reservations.create(member.id, book.id)

    assert result.error.kind == ErrorKind.BUSINESS_RULE_VIOLATION
    assert result.error.code == "AVAILABLE_COPY_EXISTS"


@pytest.mark.asyncio
async def test_fourth_reservation_rejected(engine, seed):
    member = await seed.member()
    for title in ("X", "Y", "Z"):
        book = await unavailable_book(seed, title)
        assert (await engine.reservations.create(member.id, book.id)).ok
    book_w = await unavailable_book(seed, "W")

    result = await engine.reservations.create(member.id, book_w.id)

    assert result.error.kind == ErrorKind.BUSINESS_RULE_VIOLATION
    assert result.error.code == "RESERVATION_LIMIT_REACHED"
    assert (await engine.reservations.list_queue(book_w.id)).value == []


@pytest.mark.asyncio
async def test_cancelled_reservation_frees_a_slot(engine, seed):
    member = await seed.member()
    reservations = []
    for title in ("X", "Y", "Z"):
        book = await unavailable_book(seed, title)
        reservations.append((await engine.reservations.create(member.id, book.id)).value)
    await engine.reservations.cancel(reservations[0].id)

    book_w = await unavailable_book(seed, "W")
    assert (await engine.reservations.create(member.id, book_w.id)).ok


@pytest.mark.asyncio
async def test_duplicate_reservation(engine, seed):
    member = await seed.member()
    book = await unavailable_book(seed)
    first = (await engine.reservations.create(member.id, book.id)).value

    result = await engine.reservations.create(member.id, book.id)

    assert result.error.code == "DUPLICATE_RESERVATION"
    assert result.error.details["reservation_id"] == first.id


@pytest.mark.asyncio
async def test_inactive_member_cannot_reserve(engine, seed):
    member = await seed.member(status=MembershipStatus.EXPIRED)
    book = await unavailable_book(seed)

    result = await engine.reservations.create(member.id, book.id)

    assert result.error.code == "MEMBER_INELIGIBLE"
    assert (await engine.reservations.create(member.id, 999)).error.code == "MEMBER_INELIGIBLE"


@pytest.mark.asyncio
async def test_reserve_unknown_book(engine, seed):
    member = await seed.member()
    result = await engine.reservations.create(member.id, 999)
    assert result.error.kind == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_cancel_keeps_relative_order(engine, seed, clock):
    first, second, third = await members(seed, 3)
    book = await unavailable_book(seed)
    r1 = (await engine.reservations.create(first.id, book.id)).value
    r2 = (await engine.reservations.create(second.id, book.id)).value
    r3 = (await engine.reservations.create(third.id, book.id)).value

    result = await engine.reservations.cancel(r2.id, actor_id=second.id)

    assert result.value.status == ReservationStatus.CANCELLED
    assert result.value.cancelled_by == second.id
    assert (await engine.reservations.queue_rank(r1.id)).value == 1
    assert (await engine.reservations.queue_rank(r2.id)).value is None
    assert (await engine.reservations.queue_rank(r3.id)).value == 2
    queue = (await engine.reservations.list_queue(book.id)).value
    assert [r.id for r in queue] == [r1.id, r3.id]


@pytest.mark.asyncio
async def test_queue_orders_by_reservation_date(engine, seed, clock):
    early, late = await members(seed, 2)
    book = await unavailable_book(seed)
    r_late = await seed.add(
        Reservation(member_id=late.id, book_id=book.id, reservation_date=clock.now)
    )
    r_early = await seed.add(
        Reservation(member_id=early.id, book_id=book.id, reservation_date=clock.now - timedelta(hours=1))
    )

    queue = (await engine.reservations.list_queue(book.id)).value

    assert [r.id for r in queue] == [r_early.id, r_late.id]
    assert (await engine.reservations.queue_rank(r_late.id)).value == 2


@pytest.mark.asyncio
async def test_only_active_reservations_can_be_cancelled(engine, seed):
    member = await seed.member()
    book = await unavailable_book(seed)
    reservation = (await engine.reservations.create(member.id, book.id)).value
    await engine.reservations.cancel(reservation.id)

    result = await engine.reservations.cancel(reservation.id)

    assert result.error.kind == ErrorKind.INVALID_STATE_TRANSITION
    assert result.error.code == "RESERVATION_NOT_ACTIVE"


@pytest.mark.asyncio
async def test_staff_fulfill(engine, seed, clock, notifier):
    member = await seed.member()
    book = await unavailable_book(seed)
    reservation = (await engine.reservations.create(member.id, book.id)).value
    [c1] = await seed.copies(book)

    result = await engine.reservations.fulfill(reservation.id, c1.id, actor_id=50)

    assert result.ok
    assert result.value.status == ReservationStatus.FULFILLED
    assert result.value.book_copy_id == c1.id
    assert result.value.fulfilled_at == clock.now
    assert engine.reservations.pickup_deadline(result.value) == clock.now + timedelta(hours=72)
    assert (await seed.get(BookCopy, c1.id)).status == CopyStatus.RESERVED
    [(member_id, kind, _)] = notifier.sent
    assert (member_id, kind) == (member.id, NotificationKind.RESERVATION_FULFILLED)


@pytest.mark.asyncio
async def test_fulfill_preconditions(engine, seed):
    no_email = await seed.member(email=None)
    member = await seed.member(name="Grace", email="grace@example.com")
    book = await unavailable_book(seed)
    other_book = await seed.book("Emma")
    [foreign_copy] = await seed.copies(other_book)
    unreachable = (await engine.reservations.create(no_email.id, book.id)).value
    reservation = (await engine.reservations.create(member.id, book.id)).value
    [on_loan] = await seed.copies(book, status=CopyStatus.ON_LOAN)
    [c1] = await seed.copies(book)

    mismatch = await engine.reservations.fulfill(reservation.id, foreign_copy.id)
    no_contact = await engine.reservations.fulfill(unreachable.id, c1.id)
    busy = await engine.reservations.fulfill(reservation.id, on_loan.id)

    assert mismatch.error.code == "COPY_BOOK_MISMATCH"
    assert no_contact.error.code == "MEMBER_CONTACT_MISSING"
    assert busy.error.code == "COPY_UNAVAILABLE"
    assert (await seed.get(BookCopy, c1.id)).status == CopyStatus.AVAILABLE

    await engine.reservations.cancel(reservation.id)
    cancelled = await engine.reservations.fulfill(reservation.id, c1.id)
    assert cancelled.error.code == "RESERVATION_NOT_ACTIVE"


@pytest.mark.asyncio
async def test_try_fulfill_next(engine, seed):
    first, second = await members(seed, 2)
    book = await unavailable_book(seed)

    nobody = await engine.reservations.try_fulfill_next(book.id)
    assert nobody.ok and nobody.value is None

    r1 = (await engine.reservations.create(first.id, book.id)).value
    r2 = (await engine.reservations.create(second.id, book.id)).value
    no_copy = await engine.reservations.try_fulfill_next(book.id)
    assert no_copy.error.code == "NO_AVAILABLE_COPY"

    await seed.copies(book)
    result = await engine.reservations.try_fulfill_next(book.id)
    assert result.value.id == r1.id
    assert result.value.status == ReservationStatus.FULFILLED
    assert (await engine.reservations.queue_rank(r2.id)).value == 1


@pytest.mark.asyncio
async def test_unclaimed_hold_expires_and_cascades(engine, seed, clock, notifier):
    first, second = await members(seed, 2)
    book = await unavailable_book(seed)
    r1 = (await engine.reservations.create(first.id, book.id)).value
    r2 = (await engine.reservations.create(second.id, book.id)).value
    [c1] = await seed.copies(book)
    await engine.reservations.fulfill(r1.id, c1.id)
    expiry_time = clock.advance(hours=73)

    result = await engine.reservations.sweep_expired(expiry_time)

    assert result.value == 1
    assert (await seed.get(Reservation, r1.id)).status == ReservationStatus.EXPIRED
    successor = await seed.get(Reservation, r2.id)
    assert successor.status == ReservationStatus.FULFILLED
    assert successor.book_copy_id == c1.id
    assert successor.fulfilled_at == expiry_time
    assert (await seed.get(BookCopy, c1.id)).status == CopyStatus.RESERVED
    assert notifier.of_kind(NotificationKind.RESERVATION_EXPIRED)[0][0] == first.id
    assert notifier.of_kind(NotificationKind.RESERVATION_FULFILLED)[-1][0] == second.id

    assert (await engine.reservations.sweep_expired(expiry_time)).value == 0


@pytest.mark.asyncio
async def test_expired_hold_returns_copy_to_shelf(engine, seed, clock):
    member = await seed.member()
    book = await unavailable_book(seed)
    reservation = (await engine.reservations.create(member.id, book.id)).value
    [c1] = await seed.copies(book)
    await engine.reservations.fulfill(reservation.id, c1.id)

    assert (await engine.reservations.sweep_expired(clock.now + timedelta(hours=71))).value == 0
    assert (await engine.reservations.sweep_expired(clock.now + timedelta(hours=72))).value == 0
    assert (await engine.reservations.sweep_expired(clock.now + timedelta(hours=73))).value == 1
    assert (await seed.get(BookCopy, c1.id)).status == CopyStatus.AVAILABLE


@pytest.mark.asyncio
async def test_picked_up_hold_never_expires(engine, seed, clock):
    member = await seed.member()
    book = await unavailable_book(seed)
    reservation = (await engine.reservations.create(member.id, book.id)).value
    [c1] = await seed.copies(book)
    await engine.reservations.fulfill(reservation.id, c1.id)
    assert (await engine.loans.checkout(member.id, c1.id)).ok

    result = await engine.reservations.sweep_expired(clock.now + timedelta(days=10))

    assert result.value == 0
    assert (await seed.get(Reservation, reservation.id)).status == ReservationStatus.FULFILLED


@pytest.mark.asyncio
async def test_list_member_reservations(engine, seed):
    member = await seed.member()
    for title in ("X", "Y"):
        book = await unavailable_book(seed, title)
        await engine.reservations.create(member.id, book.id)

    result = await engine.reservations.list_reservations(member.id)

    assert len(result.value) == 2
    assert (await engine.reservations.list_reservations(999)).error.kind == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_expiry_skipped_after_pickup_is_attributed(engine, seed, clock, audit):
    member = await seed.member()
    book = await unavailable_book(seed)
    reservation = (await engine.reservations.create(member.id, book.id)).value
    [c1] = await seed.copies(book)
    await engine.reservations.fulfill(reservation.id, c1.id)
    assert (await engine.loans.checkout(member.id, c1.id)).ok
    as_of = clock.now + timedelta(hours=73)

    expiry = engine.reservations._expiry(
        reservation.id, as_of - timedelta(hours=72), SweepLogger("expire_reservations", as_of)
    )
    result = await engine.coordinator.run("reservation.expire", "Reservation", expiry, now=as_of)

    assert result.ok
    assert result.value is None
    [entry] = audit.for_action("reservation.expire")
    assert entry["entity_id"] == reservation.id
    assert entry["before_state"]["status"] == "fulfilled"
    assert entry["after_state"] is None
    assert (await seed.get(Reservation, reservation.id)).status == ReservationStatus.FULFILLED
