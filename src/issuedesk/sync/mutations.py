"""Local issue and label mutations.

Every mutation updates the local row, flips its sync status and appends
a queue entry in the same session, so the change survives until the
sync engine confirms it remotely.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from issuedesk.db.models import (
    EntityType,
    Issue,
    IssueState,
    Label,
    SyncStatus,
    utcnow,
)
from issuedesk.db.repositories import (
    IssueConflictRepository,
    IssueRepository,
    LabelRepository,
    SyncQueueRepository,
)
from issuedesk.logging import bind_entity, get_logger
from issuedesk.schemas import IssueCreate, IssueUpdate, LabelCreate, LabelUpdate

from .exceptions import EntityNotFoundError, LabelExistsError, PendingDeleteError
from .payloads import (
    IssueCreatePayload,
    IssueDeletePayload,
    IssueUpdatePayload,
    LabelCreatePayload,
    LabelDeletePayload,
    LabelUpdatePayload,
    QueuePayload,
    dump_payload,
    target_of,
)

logger = get_logger(__name__)


class MutationService:
    """Applies local edits and queues them for replay.

    Usage:
        async with get_session() as session:
            mutations = MutationService(session)
            issue = await mutations.create_issue(IssueCreate(title="Crash on start"))

    The caller owns the session and commits it.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._clock = clock
        self._issues = IssueRepository(session)
        self._labels = LabelRepository(session)
        self._queue = SyncQueueRepository(session)
        self._conflicts = IssueConflictRepository(session)

    def _enqueue(self, entity_id: str, payload: QueuePayload) -> None:
        entity_type, operation = target_of(payload)
        self._queue.enqueue(
            entity_type,
            entity_id,
            operation,
            dump_payload(payload),
            created_at=self._clock(),
        )
        log = bind_entity(entity_type.value, entity_id, kind=payload.kind)
        log.debug("Queued {}", payload.kind)

    async def _get_issue(self, issue_id: str) -> Issue:
        issue = await self._issues.get_by_id(issue_id)
        if issue is None:
            raise EntityNotFoundError("issue", issue_id)
        return issue

    async def _get_label(self, label_id: str) -> Label:
        label = await self._labels.get_by_id(label_id)
        if label is None:
            raise EntityNotFoundError("label", label_id)
        return label

    # -------------------------------------------------------------------------
    # Issues
    # -------------------------------------------------------------------------
    async def create_issue(self, data: IssueCreate) -> Issue:
        """Create a local issue and queue its remote creation.

        Unknown label names are ignored.
        """
        labels = await self._labels.get_by_names(data.labels)
        issue = Issue(
            title=data.title,
            body=data.body,
            state=IssueState.OPEN,
            labels=labels,
            sync_status=SyncStatus.PENDING_CREATE,
            local_updated_at=self._clock(),
            created_at=self._clock(),
        )
        self._issues.add(issue)
        await self._issues.flush()

        self._enqueue(
            issue.id,
            IssueCreatePayload(
                title=issue.title,
                body=issue.body,
                labels=[label.name for label in labels],
            ),
        )
        if labels:
            await self._labels.recompute_issue_counts()
        await self._issues.flush()
        return issue

    async def update_issue(self, issue_id: str, data: IssueUpdate) -> Issue:
        """Apply a partial update and queue it.

        Raises:
            EntityNotFoundError: If the issue does not exist
            PendingDeleteError: If the issue is queued for deletion
        """
        issue = await self._get_issue(issue_id)
        if issue.sync_status == SyncStatus.PENDING_DELETE:
            raise PendingDeleteError(f"Issue {issue_id} is pending deletion")

        changes = data.model_dump(exclude_unset=True)
        labels: list[Label] | None = None
        if changes.get("labels") is not None:
            labels = await self._labels.get_by_names(changes["labels"])

        if changes.get("title") is not None:
            issue.title = changes["title"]
        if "body" in changes:
            issue.body = changes["body"]
        if changes.get("state") is not None:
            issue.state = IssueState(changes["state"])
        if labels is not None:
            issue.labels = labels
        issue.local_updated_at = self._clock()

        # A not-yet-pushed issue stays pending_create; a conflict stays a conflict
        if issue.sync_status == SyncStatus.SYNCED:
            issue.sync_status = SyncStatus.PENDING_UPDATE

        self._enqueue(
            issue.id,
            IssueUpdatePayload(
                title=changes.get("title"),
                # An explicit None clears the body remotely
                body=(changes["body"] or "") if "body" in changes else None,
                state=changes.get("state"),
                labels=[label.name for label in labels] if labels is not None else None,
            ),
        )
        if labels is not None:
            await self._labels.recompute_issue_counts()
        await self._issues.flush()
        return issue

    async def delete_issue(self, issue_id: str) -> None:
        """Delete an issue.

        A never-pushed issue is removed at once together with its queued
        entries; otherwise it is marked pending_delete until GitHub confirms.
        """
        issue = await self._get_issue(issue_id)
        had_labels = bool(issue.labels)

        if not issue.is_pushed:
            removed = await self._queue.remove_for_entity(EntityType.ISSUE, issue.id)
            await self._issues.delete(issue)
            await self._issues.flush()
            if had_labels:
                await self._labels.recompute_issue_counts()
            logger.debug("Dropped unpushed issue {} ({} queued entries)", issue_id, removed)
        else:
            assert issue.number is not None
            await self._conflicts.clear(issue)
            issue.sync_status = SyncStatus.PENDING_DELETE
            issue.local_updated_at = self._clock()
            self._enqueue(issue.id, IssueDeletePayload(number=issue.number))
            await self._issues.flush()

    # -------------------------------------------------------------------------
    # Labels
    # -------------------------------------------------------------------------
    async def create_label(self, data: LabelCreate) -> Label:
        """Create a local label and queue its remote creation.

        Raises:
            LabelExistsError: If the name is taken
        """
        if await self._labels.get_by_name(data.name) is not None:
            raise LabelExistsError(f"Label '{data.name}' already exists")

        label = Label(
            name=data.name,
            color=data.color,
            description=data.description,
            issue_count=0,
            sync_status=SyncStatus.PENDING_CREATE,
            local_updated_at=self._clock(),
            created_at=self._clock(),
        )
        self._labels.add(label)
        await self._labels.flush()
        self._enqueue(
            label.id,
            LabelCreatePayload(name=label.name, color=label.color, description=label.description),
        )
        await self._labels.flush()
        return label

    async def update_label(self, label_id: str, data: LabelUpdate) -> Label:
        """Apply a partial update and queue it.

        Raises:
            EntityNotFoundError: If the label does not exist
            PendingDeleteError: If the label is queued for deletion
            LabelExistsError: If renaming onto an existing name
        """
        label = await self._get_label(label_id)
        if label.sync_status == SyncStatus.PENDING_DELETE:
            raise PendingDeleteError(f"Label {label_id} is pending deletion")

        changes = data.model_dump(exclude_unset=True)
        new_name = changes.get("name")
        if new_name is not None and new_name != label.name:
            if await self._labels.get_by_name(new_name) is not None:
                raise LabelExistsError(f"Label '{new_name}' already exists")
            label.name = new_name
        if changes.get("color") is not None:
            label.color = changes["color"]
        if "description" in changes:
            label.description = changes["description"]
        label.local_updated_at = self._clock()

        if label.sync_status == SyncStatus.SYNCED:
            label.sync_status = SyncStatus.PENDING_UPDATE

        self._enqueue(
            label.id,
            LabelUpdatePayload(
                name=new_name,
                color=changes.get("color"),
                description=changes.get("description"),
            ),
        )
        await self._labels.flush()
        return label

    async def delete_label(self, label_id: str) -> None:
        """Delete a label.

        Same rules as delete_issue: unpushed labels vanish immediately.
        """
        label = await self._get_label(label_id)

        if not label.is_pushed:
            await self._queue.remove_for_entity(EntityType.LABEL, label.id)
            await self._labels.delete_label(label)
            await self._labels.recompute_issue_counts()
            return

        assert label.remote_name is not None
        label.sync_status = SyncStatus.PENDING_DELETE
        label.local_updated_at = self._clock()
        self._enqueue(label.id, LabelDeletePayload(name=label.remote_name))
        await self._labels.flush()
