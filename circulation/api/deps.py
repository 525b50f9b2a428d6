"""Shared dependencies for the HTTP routes."""
from typing import Optional, TypeVar

from fastapi import Header, status

from circulation.core.result import ErrorKind, OperationError, Result
from circulation.database import AsyncSessionLocal
from circulation.engine import CirculationEngine
from circulation.ports import EventBusNotifier
from circulation.schemas.common import ErrorResponse
from circulation.services.audit_service import SqlAuditRecorder

T = TypeVar("T")

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_STATE_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.BUSINESS_RULE_VIOLATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.CONCURRENCY_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.PERSISTENCE_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
}

ERROR_RESPONSES = {
    code: {"model": ErrorResponse} for code in sorted(set(STATUS_BY_KIND.values()))
}

_engine: Optional[CirculationEngine] = None


class OperationFailed(Exception):
    """Raised by routes to turn a failed Result into an error response."""

    def __init__(self, error: OperationError):
        self.error = error
        self.status_code = STATUS_BY_KIND.get(error.kind, status.HTTP_400_BAD_REQUEST)
        super().__init__(error.message)


def unwrap(result: Result[T]) -> T:
    """Return the value of a successful result or raise :class:`OperationFailed`."""
    if not result.ok:
        raise OperationFailed(result.error)
    return result.value


def get_engine() -> CirculationEngine:
    """Dependency that provides the shared circulation engine."""
    global _engine
    if _engine is None:
        _engine = CirculationEngine(
            AsyncSessionLocal,
            audit=SqlAuditRecorder(AsyncSessionLocal),
            notifier=EventBusNotifier(),
        )
    return _engine


async def get_actor_id(x_actor_id: Optional[int] = Header(None)) -> Optional[int]:
    """Staff or member id performing the request, as forwarded by the gateway."""
    return x_actor_id
