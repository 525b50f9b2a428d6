"""In-process event bus for member notifications, streamed as Server-Sent Events."""
import asyncio
import json
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncGenerator


class NotificationKind(str, Enum):
    """Notification kinds emitted by the engine."""
    RESERVATION_FULFILLED = "reservation_fulfilled"
    RESERVATION_EXPIRED = "reservation_expired"
    LOAN_OVERDUE = "loan_overdue"
    HEARTBEAT = "heartbeat"


@dataclass
class CirculationEvent:
    """Event delivered to a member's subscribers."""

    kind: NotificationKind
    member_id: int
    data: dict[str, Any]
    timestamp: datetime = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc)

    def format(self) -> str:
        """Format event for SSE transmission."""
        event_data = {
            "type": self.kind.value,
            "member_id": self.member_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }
        return f"event: {self.kind.value}\ndata: {json.dumps(event_data, default=str)}\n\n"


class EventBus:
    """Fan-out of circulation events to per-member subscriber queues."""

    def __init__(self, heartbeat_seconds: float = 30.0):
        self._subscribers: dict[int, list[asyncio.Queue]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self.heartbeat_seconds = heartbeat_seconds

    async def subscribe(self, member_id: int) -> AsyncGenerator[str, None]:
        """Subscribe to events for a member, yielding SSE-formatted strings."""
        queue: asyncio.Queue = asyncio.Queue()

        async with self._lock:
            self._subscribers[member_id].append(queue)

        try:
            yield CirculationEvent(
                kind=NotificationKind.HEARTBEAT,
                member_id=member_id,
                data={"message": "Connected"},
            ).format()

            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=self.heartbeat_seconds)
                    yield event.format()
                except asyncio.TimeoutError:
                    yield CirculationEvent(
                        kind=NotificationKind.HEARTBEAT,
                        member_id=member_id,
                        data={"message": "keepalive"},
                    ).format()
        finally:
            async with self._lock:
                if member_id in self._subscribers:
                    self._subscribers[member_id].remove(queue)
                    if not self._subscribers[member_id]:
                        del self._subscribers[member_id]

    async def publish(self, event: CirculationEvent) -> None:
        """Publish an event to all subscribers of its member."""
        async with self._lock:
            for queue in self._subscribers.get(event.member_id, []):
                await queue.put(event)

    def get_subscriber_count(self, member_id: int) -> int:
        """Get the number of subscribers for a member."""
        return len(self._subscribers.get(member_id, []))


event_bus = EventBus()
