"""Tests for listing and resolving sync conflicts."""

import pytest

from issuedesk.db.models import IssueState, QueueOperation, SyncStatus
from issuedesk.db.repositories import IssueConflictRepository, SyncQueueRepository
from issuedesk.sync import (
    ConflictData,
    ConflictNotFoundError,
    EntityNotFoundError,
    InvalidResolutionError,
    MergedIssue,
    Resolution,
    body_checksum,
)
from tests.conftest import JAN_15, JAN_16, JAN_16_ISO
from tests.factories import github_issue, make_issue, make_label, make_queue_entry


@pytest.fixture
async def conflicted(db_session):
    """Issue #42 edited locally while GitHub changed title, body and labels."""
    make_label(db_session, name="bug")
    make_label(db_session, name="ui")
    await db_session.flush()
    issue = make_issue(
        db_session,
        number=42,
        title="Local title",
        body="Local body",
        synced_body="Original",
        sync_status=SyncStatus.CONFLICT,
    )
    await db_session.flush()
    await IssueConflictRepository(db_session).record(
        issue,
        title="Remote title",
        body="Remote body",
        state=IssueState.CLOSED,
        labels=["bug"],
        updated_at=JAN_16,
    )
    make_queue_entry(
        db_session, entity_id=issue.id, payload={"kind": "issue.update", "body": "Local body"}
    )
    await db_session.commit()
    return issue


class TestListConflicts:
    """Tests for SyncEngine.list_conflicts."""

    async def test_returns_both_versions(self, engine, conflicted):
        conflicts = await engine.list_conflicts()

        assert len(conflicts) == 1
        data = conflicts[0]
        assert isinstance(data, ConflictData)
        assert data.issue_id == conflicted.id
        assert data.issue_number == 42
        assert data.local_version.title == "Local title"
        assert data.local_version.body == "Local body"
        assert data.remote_version.title == "Remote title"
        assert data.remote_version.updated_at == JAN_16

    async def test_from_issue_without_conflict_raises(self, db_session):
        issue = make_issue(db_session)
        await db_session.flush()

        with pytest.raises(ValueError):
            ConflictData.from_issue(issue)


class TestResolveConflict:
    """Tests for SyncEngine.resolve_conflict."""

    async def test_remote_adopts_remote_version(self, db_session, engine, conflicted):
        issue = await engine.resolve_conflict(conflicted.id, Resolution.REMOTE)

        assert issue.title == "Remote title"
        assert issue.body == "Remote body"
        assert issue.state == IssueState.CLOSED
        assert issue.label_names == ["bug"]
        assert issue.sync_status == SyncStatus.SYNCED
        assert issue.remote_updated_at == JAN_16
        assert issue.body_checksum == body_checksum("Remote body")
        assert issue.conflict is None
        assert await SyncQueueRepository(db_session).list_entries() == []

    async def test_local_requeues_full_update_over_remote_baseline(
        self, db_session, engine, conflicted
    ):
        issue = await engine.resolve_conflict(conflicted.id, "local")

        assert issue.title == "Local title"
        assert issue.sync_status == SyncStatus.PENDING_UPDATE
        assert issue.remote_updated_at == JAN_16
        assert issue.body_checksum == body_checksum("Remote body")
        assert issue.conflict is None

        entries = await SyncQueueRepository(db_session).list_entries()
        assert len(entries) == 1
        assert entries[0].operation == QueueOperation.UPDATE
        assert entries[0].created_at == JAN_15
        assert entries[0].payload == {
            "kind": "issue.update",
            "title": "Local title",
            "body": "Local body",
            "state": "open",
            "labels": [],
        }

    async def test_local_resolution_then_drain_pushes(self, db_session, engine, github, conflicted):
        """The re-queued update is not flagged again when GitHub is unchanged."""
        await engine.resolve_conflict(conflicted.id, Resolution.LOCAL)
        github.get_issue.return_value = github_issue(
            number=42, title="Remote title", body="Remote body", updated_at=JAN_16_ISO
        )
        github.update_issue.return_value = github_issue(
            number=42, title="Local title", body="Local body", updated_at="2024-01-17T08:00:00Z"
        )

        result = await engine.drain()

        assert result.pushed == 1
        assert result.conflicts == 0
        assert conflicted.sync_status == SyncStatus.SYNCED

    async def test_merged_applies_merged_content(self, db_session, engine, conflicted):
        merged = MergedIssue(title="Merged title", body="Merged body", labels=["bug", "ui"])

        issue = await engine.resolve_conflict(conflicted.id, Resolution.MERGED, merged)

        assert issue.title == "Merged title"
        assert issue.body == "Merged body"
        assert issue.label_names == ["bug", "ui"]
        assert issue.sync_status == SyncStatus.PENDING_UPDATE
        entry = (await SyncQueueRepository(db_session).list_entries())[0]
        assert entry.payload["title"] == "Merged title"
        assert entry.payload["labels"] == ["bug", "ui"]

    async def test_merged_without_content_raises(self, engine, conflicted):
        with pytest.raises(InvalidResolutionError):
            await engine.resolve_conflict(conflicted.id, Resolution.MERGED)

    async def test_issue_without_conflict_raises(self, db_session, engine):
        issue = make_issue(db_session)
        await db_session.commit()

        with pytest.raises(ConflictNotFoundError):
            await engine.resolve_conflict(issue.id, Resolution.LOCAL)

    async def test_unknown_issue_raises(self, engine):
        with pytest.raises(EntityNotFoundError):
            await engine.resolve_conflict("missing", Resolution.REMOTE)

    async def test_unknown_resolution_raises(self, engine, conflicted):
        with pytest.raises(ValueError):
            await engine.resolve_conflict(conflicted.id, "theirs")
