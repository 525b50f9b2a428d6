"""Transaction coordinator: one atomic unit of work per circulation operation."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from circulation.core.events import NotificationKind
from circulation.core.exceptions import CirculationError, ConcurrencyConflict, PersistenceFailure
from circulation.core.logging import get_logger
from circulation.core.result import ErrorKind, OperationError, Result
from circulation.ports import AuditRecorder, Notifier
from circulation.stores import (
    BookStore,
    CopyStore,
    FineStore,
    LoanStore,
    MemberStore,
    ReservationStore,
)

T = TypeVar("T")

logger = get_logger("transactions")


def utc_now() -> datetime:
    """Naive UTC timestamp, the form every datetime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class PendingNotification:
    member_id: int
    kind: NotificationKind
    payload: dict[str, Any]


@dataclass
class TransactionContext:
    """Everything one operation may touch, valid until the operation ends.

    ``now`` is fixed for the whole operation so every timestamp written by it
    agrees. Notifications queued here are only sent after a successful commit.
    """

    session: Optional[AsyncSession]
    now: datetime
    actor_id: Optional[int] = None
    entity_id: Optional[int] = None
    before_state: Optional[dict[str, Any]] = None
    notifications: list[PendingNotification] = field(default_factory=list)

    def bind(self, session: AsyncSession) -> None:
        self.session = session
        self.members = MemberStore(session)
        self.books = BookStore(session)
        self.copies = CopyStore(session)
        self.loans = LoanStore(session)
        self.reservations = ReservationStore(session)
        self.fines = FineStore(session)

    def track(self, entity) -> None:
        """Remember the primary entity and its state before any change."""
        if self.entity_id is None:
            self.entity_id = entity.id
            self.before_state = entity.snapshot()

    def notify(self, member_id: int, kind: NotificationKind, payload: dict[str, Any]) -> None:
        self.notifications.append(PendingNotification(member_id, kind, payload))


Operation = Callable[[TransactionContext], Awaitable[T]]


class TransactionCoordinator:
    """Runs operations atomically and reports them through a :class:`Result`.

    A run commits everything or nothing. Lost races are retried up to
    ``max_retries`` times before surfacing as ``CONCURRENCY_CONFLICT``.
    Notifications and audit entries are best-effort and never affect the
    outcome of the operation itself.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit: Optional[AuditRecorder] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = utc_now,
        max_retries: int = 3,
    ):
        self.session_factory = session_factory
        self.audit = audit
        self.notifier = notifier
        self.clock = clock
        self.max_retries = max_retries

    async def run(
        self,
        action: str,
        entity_type: str,
        operation: Operation[T],
        actor_id: Optional[int] = None,
        now: Optional[datetime] = None,
        serializable: bool = False,
    ) -> Result[T]:
        """Execute a state-mutating operation in its own transaction."""
        attempt = 0
        while True:
            attempt += 1
            ctx = TransactionContext(session=None, now=now or self.clock(), actor_id=actor_id)
            try:
                value = await self._execute(ctx, operation, serializable)
            except ConcurrencyConflict as exc:
                if attempt <= self.max_retries:
                    logger.warning(f"{action}: concurrent update, retrying ({attempt}/{self.max_retries})")
                    continue
                error = exc.to_error()
            except CirculationError as exc:
                logger.info(f"{action} rejected: [{exc.error_code}] {exc.message}")
                error = exc.to_error()
            except Exception as exc:
                logger.exception(f"{action} failed unexpectedly")
                error = PersistenceFailure(
                    f"Failed to complete {action}: {exc}",
                    details={"exception": type(exc).__name__},
                ).to_error()
            else:
                await self._dispatch(action, ctx.notifications)
                after_state = value.snapshot() if hasattr(value, "snapshot") else None
                entity_id = ctx.entity_id
                if entity_id is None and after_state is not None:
                    entity_id = after_state.get("id")
                await self._audit(
                    actor_id, action, entity_type, entity_id,
                    ctx.before_state, after_state, True,
                )
                return Result.success(value)

            await self._audit(
                actor_id, action, entity_type, ctx.entity_id,
                ctx.before_state, None, False, f"{error.code}: {error.message}",
            )
            return Result.failure(error)

    async def read(self, operation: Operation[T]) -> Result[T]:
        """Run a query-only operation; nothing is committed or audited."""
        ctx = TransactionContext(session=None, now=self.clock())
        try:
            async with self.session_factory() as session:
                ctx.bind(session)
                return Result.success(await operation(ctx))
        except CirculationError as exc:
            return Result.failure(exc.to_error())
        except SQLAlchemyError as exc:
            logger.exception("Query failed")
            return Result.failure(
                OperationError(ErrorKind.PERSISTENCE_FAILURE, "PERSISTENCE_FAILURE", str(exc))
            )

    async def _execute(
        self,
        ctx: TransactionContext,
        operation: Operation[T],
        serializable: bool,
    ) -> T:
        async with self.session_factory() as session:
            try:
                if serializable and session.bind.dialect.name == "postgresql":
                    await session.connection(
                        execution_options={"isolation_level": "SERIALIZABLE"}
                    )
                ctx.bind(session)
                value = await operation(ctx)
                await session.commit()
                return value
            except (StaleDataError, IntegrityError) as exc:
                await session.rollback()
                raise ConcurrencyConflict(details={"reason": str(exc.args[0]) if exc.args else ""}) from exc
            except SQLAlchemyError as exc:
                await session.rollback()
                if _is_serialization_failure(exc):
                    raise ConcurrencyConflict() from exc
                raise PersistenceFailure(f"Database error: {exc}") from exc
            except BaseException:
                await session.rollback()
                raise

    async def _dispatch(self, action: str, notifications: list[PendingNotification]) -> None:
        if self.notifier is None:
            return
        for pending in notifications:
            try:
                await self.notifier.notify(pending.member_id, pending.kind, pending.payload)
            except Exception:
                logger.exception(
                    f"{action}: notification {pending.kind.value} to member {pending.member_id} failed"
                )

    async def _audit(
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
        if self.audit is None:
            return
        try:
            await self.audit.record(
                actor_id, action, entity_type, entity_id,
                before_state, after_state, success, error,
            )
        except Exception:
            logger.exception(f"{action}: audit record could not be written")


def _is_serialization_failure(exc: SQLAlchemyError) -> bool:
    # SQLSTATE 40001 serialization_failure, 40P01 deadlock_detected
    code = getattr(getattr(exc, "orig", None), "sqlstate", None) or getattr(exc, "code", None)
    return code in ("40001", "40P01")
