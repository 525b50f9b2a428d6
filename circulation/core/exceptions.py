"""Exceptions raised inside a circulation transaction.

They never cross a public operation boundary: the transaction coordinator
rolls back and turns them into a failed :class:`~circulation.core.result.Result`.
"""
from typing import Any, Optional

from circulation.core.result import ErrorKind, OperationError


class CirculationError(Exception):
    """Base circulation exception."""

    kind: ErrorKind = ErrorKind.PERSISTENCE_FAILURE

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code or self.kind.name
        self.details = details or {}
        super().__init__(self.message)

    def to_error(self) -> OperationError:
        return OperationError(
            kind=self.kind,
            code=self.error_code,
            message=self.message,
            details=self.details,
        )


class NotFoundError(CirculationError):
    """Entity id does not resolve."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            f"{resource} with id {resource_id} not found",
            error_code="NOT_FOUND",
            details={"resource": resource, "id": resource_id},
        )


class InvalidStateTransition(CirculationError):
    """Operation attempted on an entity in an incompatible state."""

    kind = ErrorKind.INVALID_STATE_TRANSITION


class BusinessRuleViolation(CirculationError):
    """Limit, eligibility or duplicate check failed."""

    kind = ErrorKind.BUSINESS_RULE_VIOLATION


class ConcurrencyConflict(CirculationError):
    """Lost a race on shared state."""

    kind = ErrorKind.CONCURRENCY_CONFLICT

    def __init__(
        self,
        message: str = "Concurrent update detected",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, error_code="CONCURRENCY_CONFLICT", details=details)


class PersistenceFailure(CirculationError):
    """Underlying store error."""

    kind = ErrorKind.PERSISTENCE_FAILURE

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, error_code="PERSISTENCE_FAILURE", details=details)
