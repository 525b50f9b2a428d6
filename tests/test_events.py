"""Event bus and notifier tests."""
import json

import pytest

from circulation.core.events import CirculationEvent, EventBus, NotificationKind
from circulation.ports import EventBusNotifier


def parse(message: str) -> dict:
    event_line, data_line = message.strip().split("\n")
    assert event_line.startswith("event: ")
    return json.loads(data_line[len("data: "):])


def test_event_format():
    event = CirculationEvent(
        kind=NotificationKind.LOAN_OVERDUE,
        member_id=4,
        data={"loan_id": 11},
    )

    message = event.format()

    assert message.startswith("event: loan_overdue\n")
    assert message.endswith("\n\n")
    payload = parse(message)
    assert payload["type"] == "loan_overdue"
    assert payload["member_id"] == 4
    assert payload["data"] == {"loan_id": 11}


@pytest.mark.asyncio
async def test_subscriber_receives_own_events_only():
    bus = EventBus()
    stream = bus.subscribe(1)

    connected = parse(await stream.__anext__())
    assert connected["type"] == "heartbeat"
    assert bus.get_subscriber_count(1) == 1

    await bus.publish(CirculationEvent(NotificationKind.LOAN_OVERDUE, member_id=2, data={}))
    await bus.publish(
        CirculationEvent(NotificationKind.RESERVATION_FULFILLED, member_id=1, data={"reservation_id": 3})
    )

    received = parse(await stream.__anext__())
    assert received["type"] == "reservation_fulfilled"
    assert received["data"] == {"reservation_id": 3}

    await stream.aclose()
    assert bus.get_subscriber_count(1) == 0


@pytest.mark.asyncio
async def test_keepalive_when_idle():
    bus = EventBus(heartbeat_seconds=0.01)
    stream = bus.subscribe(1)
    await stream.__anext__()

    keepalive = parse(await stream.__anext__())

    assert keepalive["type"] == "heartbeat"
    assert keepalive["data"] == {"message": "keepalive"}
    await stream.aclose()


@pytest.mark.asyncio
async def test_notifier_publishes_to_bus():
    bus = EventBus()
    stream = bus.subscribe(8)
    await stream.__anext__()

    await EventBusNotifier(bus).notify(8, NotificationKind.RESERVATION_EXPIRED, {"reservation_id": 2})

    received = parse(await stream.__anext__())
    assert received["type"] == "reservation_expired"
    assert received["member_id"] == 8
    await stream.aclose()
