"""Audit recorder backed by the audit_logs table."""
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from circulation.models.audit import AuditLog


class SqlAuditRecorder:
    """Writes audit rows in their own short transaction.

    Entries are written after the circulation transaction has finished, so a
    success entry only exists for committed work.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

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
        async with self.session_factory() as session:
            session.add(
                AuditLog(
                    actor_id=actor_id,
                    action=action,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    before_state=before_state,
                    after_state=after_state,
                    success=success,
                    error=error,
                    created_at=datetime.now(timezone.utc).replace(tzinfo=None),
                )
            )
            await session.commit()

    async def list_entries(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
    ) -> list[AuditLog]:
        """List audit entries, oldest first."""
        query = select(AuditLog)
        if entity_type:
            query = query.where(AuditLog.entity_type == entity_type)
        if entity_id is not None:
            query = query.where(AuditLog.entity_id == entity_id)
        async with self.session_factory() as session:
            result = await session.execute(query.order_by(AuditLog.id))
            return list(result.scalars().all())
