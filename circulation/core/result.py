"""Tagged result values returned by every public circulation operation."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Failure categories callers can branch on."""
    NOT_FOUND = "not_found"
    INVALID_STATE_TRANSITION = "invalid_state_transition"
    BUSINESS_RULE_VIOLATION = "business_rule_violation"
    CONCURRENCY_CONFLICT = "concurrency_conflict"
    PERSISTENCE_FAILURE = "persistence_failure"


RETRYABLE_KINDS = (ErrorKind.CONCURRENCY_CONFLICT, ErrorKind.PERSISTENCE_FAILURE)


@dataclass(frozen=True)
class OperationError:
    """Why an operation did not happen."""

    kind: ErrorKind
    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def retryable(self) -> bool:
        """System failures may succeed on retry; rule rejections will not."""
        return self.kind in RETRYABLE_KINDS

    @property
    def rejected_by_rule(self) -> bool:
        return not self.retryable


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or an :class:`OperationError`, never both."""

    value: Optional[T] = None
    error: Optional[OperationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: OperationError) -> "Result[T]":
        return cls(error=error)
