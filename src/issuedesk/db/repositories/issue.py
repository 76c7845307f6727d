"""Repository for Issue model CRUD operations."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from issuedesk.db.models import Issue, IssueState, SyncStatus

from .base import BaseRepository


class IssueRepository(BaseRepository[Issue]):
    """Repository for locally mirrored issues."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Issue)

    async def get_by_number(self, number: int) -> Issue | None:
        """Get an issue by its GitHub number.

        Args:
            number: Remote issue number

        Returns:
            Issue or None if not mirrored locally
        """
        return await self._get_by_field("number", number)

    async def list_issues(
        self,
        *,
        state: IssueState | None = None,
        sync_status: SyncStatus | None = None,
        label: str | None = None,
        limit: int | None = None,
    ) -> list[Issue]:
        """List issues, newest local edit first.

        Args:
            state: Filter by open/closed
            sync_status: Filter by sync status
            label: Filter by label name
            limit: Maximum number of issues

        Returns:
            Matching issues
        """
        stmt = select(Issue).order_by(Issue.local_updated_at.desc())
        if state is not None:
            stmt = stmt.where(Issue.state == state)
        if sync_status is not None:
            stmt = stmt.where(Issue.sync_status == sync_status)
        if label is not None:
            stmt = stmt.where(Issue.labels.any(name=label))
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_conflicted(self) -> list[Issue]:
        """Get issues waiting for a conflict resolution."""
        return await self.list_issues(sync_status=SyncStatus.CONFLICT)

    async def get_by_numbers(self, numbers: list[int]) -> dict[int, Issue]:
        """Get mirrored issues keyed by GitHub number."""
        if not numbers:
            return {}
        stmt = select(Issue).where(Issue.number.in_(numbers))
        result = await self._session.execute(stmt)
        return {issue.number: issue for issue in result.scalars().all() if issue.number is not None}
