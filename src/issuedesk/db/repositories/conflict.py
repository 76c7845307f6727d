"""Repository for IssueConflict model CRUD operations."""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from issuedesk.db.models import Issue, IssueConflict, IssueState, utcnow

from .base import BaseRepository


class IssueConflictRepository(BaseRepository[IssueConflict]):
    """Repository for the remote side of detected conflicts.

    Conflicts hang off Issue.conflict (delete-orphan), so writes go
    through the issue.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, IssueConflict)

    async def get_for_issue(self, issue_id: str) -> IssueConflict | None:
        return await self._get_by_field("issue_id", issue_id)

    async def record(
        self,
        issue: Issue,
        *,
        title: str,
        body: str | None,
        state: IssueState,
        labels: list[str],
        updated_at: datetime,
        detected_at: datetime | None = None,
    ) -> IssueConflict:
        """Store (or refresh) the remote version of a conflicted issue.

        Args:
            detected_at: When the divergence was seen (defaults to now)

        Returns:
            The conflict record
        """
        conflict = issue.conflict
        if conflict is None:
            conflict = IssueConflict(issue_id=issue.id)
            issue.conflict = conflict
        conflict.remote_title = title
        conflict.remote_body = body
        conflict.remote_state = state
        conflict.remote_labels = labels
        conflict.remote_updated_at = updated_at
        conflict.detected_at = detected_at or utcnow()
        await self.flush()
        return conflict

    async def list_conflicts(self) -> list[IssueConflict]:
        """Get all conflicts, oldest detection first."""
        stmt = select(IssueConflict).order_by(IssueConflict.detected_at)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def clear(self, issue: Issue) -> bool:
        """Remove the conflict record of an issue.

        Returns:
            True if a record was removed
        """
        if issue.conflict is None:
            return False
        issue.conflict = None
        await self.flush()
        return True
