"""Repository for SyncQueueEntry model CRUD operations."""

from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from issuedesk.db.models import EntityType, QueueOperation, SyncQueueEntry, utcnow

from .base import BaseRepository


class SyncQueueRepository(BaseRepository[SyncQueueEntry]):
    """Repository for the durable mutation log.

    Manages the lifecycle of queue entries:
    - Appending entries for local mutations
    - Selecting due entries in enqueue order
    - Recording failures with a retry time
    - Removing entries once GitHub confirmed them
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, SyncQueueEntry)

    # -------------------------------------------------------------------------
    # Write Methods
    # -------------------------------------------------------------------------

    def enqueue(
        self,
        entity_type: EntityType,
        entity_id: str,
        operation: QueueOperation,
        payload: dict[str, Any],
        created_at: datetime | None = None,
    ) -> SyncQueueEntry:
        """Append an entry (persisted on the next flush).

        Args:
            entity_type: Issue or label
            entity_id: Local id of the entity
            operation: create, update or delete
            payload: Serialized mutation payload
            created_at: Enqueue time (defaults to now)

        Returns:
            The new entry
        """
        entry = SyncQueueEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            operation=operation,
            payload=payload,
            created_at=created_at or utcnow(),
            attempts=0,
        )
        return self.add(entry)

    async def set_retry_after(
        self,
        entry: SyncQueueEntry,
        retry_after: datetime,
        error: str,
    ) -> SyncQueueEntry:
        """Record a failed replay: bump attempts and gate the next try.

        Args:
            entry: The entry that failed
            retry_after: Earliest time to try again
            error: Failure message kept for diagnostics

        Returns:
            The updated entry
        """
        entry.attempts += 1
        entry.retry_after = retry_after
        entry.error = error
        await self.flush()
        return entry

    async def remove(self, entry: SyncQueueEntry) -> None:
        """Dequeue an entry after a successful replay."""
        await self.delete(entry)
        await self.flush()

    async def remove_for_entity(self, entity_type: EntityType, entity_id: str) -> int:
        """Drop every entry of one entity.

        Returns:
            Number of entries removed
        """
        await self.flush()
        result = await self._session.execute(
            delete(SyncQueueEntry)
            .where(
                SyncQueueEntry.entity_type == entity_type,
                SyncQueueEntry.entity_id == entity_id,
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    async def get_pending(
        self,
        now: datetime | None = None,
        limit: int = 100,
    ) -> list[SyncQueueEntry]:
        """Get entries due for replay.

        Args:
            now: Reference time (defaults to now)
            limit: Maximum number of entries

        Returns:
            Entries with no retry_after or one already passed, oldest first
        """
        now = now or utcnow()
        stmt = (
            select(SyncQueueEntry)
            .where(
                or_(
                    SyncQueueEntry.retry_after.is_(None),
                    SyncQueueEntry.retry_after <= now,
                )
            )
            .order_by(SyncQueueEntry.created_at, SyncQueueEntry.id)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_for_entity(
        self,
        entity_type: EntityType,
        entity_id: str,
    ) -> list[SyncQueueEntry]:
        """Get all entries of one entity in enqueue order."""
        stmt = (
            select(SyncQueueEntry)
            .where(
                SyncQueueEntry.entity_type == entity_type,
                SyncQueueEntry.entity_id == entity_id,
            )
            .order_by(SyncQueueEntry.created_at, SyncQueueEntry.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_entries(self, limit: int | None = None) -> list[SyncQueueEntry]:
        """Get all entries in enqueue order, due or not."""
        stmt = select(SyncQueueEntry).order_by(SyncQueueEntry.created_at, SyncQueueEntry.id)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_stats(self) -> dict[str, Any]:
        """Get queue statistics.

        Returns:
            Dictionary with total, failing (attempts > 0) and counts by entity type
        """
        stmt = select(SyncQueueEntry.entity_type, func.count(SyncQueueEntry.id)).group_by(
            SyncQueueEntry.entity_type
        )
        result = await self._session.execute(stmt)
        by_type = {entity_type.value: count for entity_type, count in result.all()}

        failing_stmt = select(func.count(SyncQueueEntry.id)).where(SyncQueueEntry.attempts > 0)
        failing = (await self._session.execute(failing_stmt)).scalar() or 0

        return {
            "total": sum(by_type.values()),
            "failing": failing,
            "by_type": by_type,
        }
