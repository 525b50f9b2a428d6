"""Outbound ports: notification delivery and audit recording."""
from typing import Any, Optional, Protocol

from circulation.core.events import CirculationEvent, EventBus, NotificationKind, event_bus


class Notifier(Protocol):
    """Fire-and-forget member notification."""

    async def notify(self, member_id: int, kind: NotificationKind, payload: dict[str, Any]) -> None:
        ...


class AuditRecorder(Protocol):
    """Records one entry per attempted operation."""

    async def record(
        self,
        actor_id: Optional[int],
        action: str,
        entity_type: str,
        entity_id: Optional[int],
        before_state: Optional[dict[str, Any]],
        after_state: Optional[dict[str, Any]],
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        ...


class EventBusNotifier:
    """Notifier that publishes to the in-process event bus."""

    def __init__(self, bus: EventBus = event_bus):
        self.bus = bus

    async def notify(self, member_id: int, kind: NotificationKind, payload: dict[str, Any]) -> None:
        await self.bus.publish(CirculationEvent(kind=kind, member_id=member_id, data=payload))
