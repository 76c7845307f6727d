"""Repository for SyncRun model CRUD operations."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from issuedesk.db.models import SyncRun, utcnow

from .base import BaseRepository


class SyncRunRepository(BaseRepository[SyncRun]):
    """Repository for drain/pull cycle history."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, SyncRun)

    async def start(self, kind: str) -> SyncRun:
        """Record the start of a cycle."""
        run = self.add(SyncRun(kind=kind, started_at=utcnow()))
        await self.flush()
        return run

    async def finish(
        self,
        run: SyncRun,
        *,
        pushed: int = 0,
        failed: int = 0,
        conflicts: int = 0,
        pulled: int = 0,
        error: str | None = None,
    ) -> SyncRun:
        """Record the outcome of a cycle."""
        run.finished_at = utcnow()
        run.pushed = pushed
        run.failed = failed
        run.conflicts = conflicts
        run.pulled = pulled
        run.error = error
        await self.flush()
        return run

    async def get_latest(
        self,
        kind: str | None = None,
        *,
        finished_only: bool = True,
        successful_only: bool = False,
    ) -> SyncRun | None:
        """Get the most recent cycle, optionally of one kind."""
        stmt = select(SyncRun).order_by(SyncRun.started_at.desc(), SyncRun.id.desc()).limit(1)
        if kind is not None:
            stmt = stmt.where(SyncRun.kind == kind)
        if successful_only:
            stmt = stmt.where(SyncRun.error.is_(None))
        if finished_only:
            stmt = stmt.where(SyncRun.finished_at.is_not(None))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()
