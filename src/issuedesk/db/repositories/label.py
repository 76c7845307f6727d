"""Repository for Label model CRUD operations."""

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from issuedesk.db.models import Issue, Label, issue_labels

from .base import BaseRepository


class LabelRepository(BaseRepository[Label]):
    """Repository for locally mirrored labels.

    issue_count is only ever written by recompute_issue_counts().
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Label)

    async def get_by_name(self, name: str) -> Label | None:
        """Get a label by its (unique) local name."""
        return await self._get_by_field("name", name)

    async def get_by_names(self, names: list[str]) -> list[Label]:
        """Get labels by name, silently skipping unknown names."""
        if not names:
            return []
        stmt = select(Label).where(Label.name.in_(names)).order_by(Label.name)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_labels(self) -> list[Label]:
        """List all labels by name."""
        stmt = select(Label).order_by(Label.name)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def recompute_issue_counts(self) -> None:
        """Recompute every label's issue_count from issue_labels."""
        await self.flush()
        count_subquery = (
            select(func.count())
            .select_from(issue_labels)
            .where(issue_labels.c.label_id == Label.id)
            .scalar_subquery()
        )
        await self._session.execute(
            update(Label)
            .values(issue_count=count_subquery)
            .execution_options(synchronize_session=False)
        )
        # Reload so Label objects already in the session see the new counts
        await self._session.execute(select(Label).execution_options(populate_existing=True))

    async def delete_label(self, label: Label) -> None:
        """Delete a label and its issue associations."""
        for obj in list(self._session.identity_map.values()):
            if isinstance(obj, Issue) and label in obj.labels:
                obj.labels.remove(label)
        await self.flush()
        # Associations of issues not loaded in this session
        await self._session.execute(
            delete(issue_labels).where(issue_labels.c.label_id == label.id)
        )
        await self._session.delete(label)
