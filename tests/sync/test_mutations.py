"""Tests for local issue and label mutations."""

import pytest

from issuedesk.db.models import EntityType, QueueOperation, SyncStatus
from issuedesk.db.repositories import IssueRepository, LabelRepository, SyncQueueRepository
from issuedesk.schemas import IssueCreate, IssueUpdate, LabelCreate, LabelUpdate
from issuedesk.sync import (
    EntityNotFoundError,
    LabelExistsError,
    MutationService,
    PendingDeleteError,
)
from issuedesk.sync.payloads import parse_payload
from tests.conftest import JAN_15
from tests.factories import make_issue, make_label


@pytest.fixture
def mutations(db_session, clock):
    return MutationService(db_session, clock=clock)


# -----------------------------------------------------------------------------
# Issues
# -----------------------------------------------------------------------------
class TestCreateIssue:
    """Tests for MutationService.create_issue."""

    async def test_creates_pending_issue_and_queues_create(self, db_session, mutations):
        """A new issue is pending_create with one queued create entry."""
        issue = await mutations.create_issue(IssueCreate(title="Crash on start", body="Details"))

        assert issue.number is None
        assert issue.sync_status == SyncStatus.PENDING_CREATE
        assert issue.local_updated_at == JAN_15

        entries = await SyncQueueRepository(db_session).get_for_entity(EntityType.ISSUE, issue.id)
        assert len(entries) == 1
        assert entries[0].operation == QueueOperation.CREATE
        assert entries[0].created_at == JAN_15
        payload = parse_payload(entries[0].payload)
        assert payload.kind == "issue.create"
        assert payload.title == "Crash on start"
        assert payload.body == "Details"

    async def test_applies_known_labels_and_recomputes_counts(self, db_session, mutations):
        """Known labels attach and their issue_count reflects the new issue."""
        bug = make_label(db_session, name="bug")
        await db_session.flush()

        issue = await mutations.create_issue(
            IssueCreate(title="Crash", labels=["bug", "does-not-exist"])
        )

        assert issue.label_names == ["bug"]
        assert bug.issue_count == 1
        entry = (await SyncQueueRepository(db_session).list_entries())[0]
        assert entry.payload["labels"] == ["bug"]

    def test_rejects_empty_title(self):
        with pytest.raises(ValueError):
            IssueCreate(title="")


class TestUpdateIssue:
    """Tests for MutationService.update_issue."""

    async def test_synced_issue_becomes_pending_update(self, db_session, mutations):
        issue = make_issue(db_session)
        await db_session.flush()

        updated = await mutations.update_issue(issue.id, IssueUpdate(title="Crash on launch"))

        assert updated.title == "Crash on launch"
        assert updated.sync_status == SyncStatus.PENDING_UPDATE
        assert updated.local_updated_at == JAN_15

    async def test_payload_carries_only_changed_fields(self, db_session, mutations):
        """Fields not set on the update stay None in the payload."""
        issue = make_issue(db_session)
        await db_session.flush()

        await mutations.update_issue(issue.id, IssueUpdate(state="closed"))

        entry = (await SyncQueueRepository(db_session).list_entries())[0]
        payload = parse_payload(entry.payload)
        assert payload.kind == "issue.update"
        assert payload.state == "closed"
        assert payload.title is None
        assert payload.body is None
        assert payload.labels is None

    async def test_clearing_body_sends_empty_string(self, db_session, mutations):
        issue = make_issue(db_session)
        await db_session.flush()

        await mutations.update_issue(issue.id, IssueUpdate(body=None))

        assert issue.body is None
        entry = (await SyncQueueRepository(db_session).list_entries())[0]
        assert entry.payload["body"] == ""

    async def test_unpushed_issue_stays_pending_create(self, db_session, mutations):
        issue = await mutations.create_issue(IssueCreate(title="Draft"))

        await mutations.update_issue(issue.id, IssueUpdate(title="Draft 2"))

        assert issue.sync_status == SyncStatus.PENDING_CREATE
        entries = await SyncQueueRepository(db_session).get_for_entity(EntityType.ISSUE, issue.id)
        assert [e.operation for e in entries] == [QueueOperation.CREATE, QueueOperation.UPDATE]

    async def test_conflicted_issue_stays_conflicted(self, db_session, mutations):
        issue = make_issue(db_session, sync_status=SyncStatus.CONFLICT)
        await db_session.flush()

        await mutations.update_issue(issue.id, IssueUpdate(title="Still editing"))

        assert issue.sync_status == SyncStatus.CONFLICT

    async def test_label_change_recomputes_counts(self, db_session, mutations):
        bug = make_label(db_session, name="bug")
        ui = make_label(db_session, name="ui")
        issue = make_issue(db_session, labels=[bug])
        await db_session.flush()
        await LabelRepository(db_session).recompute_issue_counts()
        assert bug.issue_count == 1

        await mutations.update_issue(issue.id, IssueUpdate(labels=["ui"]))

        assert issue.label_names == ["ui"]
        assert bug.issue_count == 0
        assert ui.issue_count == 1

    async def test_unknown_issue_raises(self, mutations):
        with pytest.raises(EntityNotFoundError, match="Issue nope not found"):
            await mutations.update_issue("nope", IssueUpdate(title="x"))

    async def test_pending_delete_issue_raises(self, db_session, mutations):
        issue = make_issue(db_session, sync_status=SyncStatus.PENDING_DELETE)
        await db_session.flush()

        with pytest.raises(PendingDeleteError):
            await mutations.update_issue(issue.id, IssueUpdate(title="x"))


class TestDeleteIssue:
    """Tests for MutationService.delete_issue."""

    async def test_unpushed_issue_is_removed_with_its_entries(self, db_session, mutations):
        issue = await mutations.create_issue(IssueCreate(title="Draft"))
        await mutations.update_issue(issue.id, IssueUpdate(body="More"))
        issue_id = issue.id

        await mutations.delete_issue(issue_id)

        assert await IssueRepository(db_session).get_by_id(issue_id) is None
        assert await SyncQueueRepository(db_session).list_entries() == []

    async def test_pushed_issue_is_marked_pending_delete(self, db_session, mutations):
        issue = make_issue(db_session, number=7)
        await db_session.flush()

        await mutations.delete_issue(issue.id)

        assert issue.sync_status == SyncStatus.PENDING_DELETE
        entry = (await SyncQueueRepository(db_session).list_entries())[0]
        assert entry.operation == QueueOperation.DELETE
        assert entry.payload == {"kind": "issue.delete", "number": 7}

    async def test_unknown_issue_raises(self, mutations):
        with pytest.raises(EntityNotFoundError):
            await mutations.delete_issue("missing")


# -----------------------------------------------------------------------------
# Labels
# -----------------------------------------------------------------------------
class TestLabelMutations:
    """Tests for label create/update/delete."""

    async def test_create_label_queues_create(self, db_session, mutations):
        label = await mutations.create_label(
            LabelCreate(name="needs-triage", color="#FBCA04", description="Waiting")
        )

        assert label.color == "fbca04"
        assert label.sync_status == SyncStatus.PENDING_CREATE
        assert label.remote_name is None
        entry = (await SyncQueueRepository(db_session).list_entries())[0]
        assert entry.payload == {
            "kind": "label.create",
            "name": "needs-triage",
            "color": "fbca04",
            "description": "Waiting",
        }

    async def test_create_duplicate_label_raises(self, db_session, mutations):
        make_label(db_session, name="bug")
        await db_session.flush()

        with pytest.raises(LabelExistsError):
            await mutations.create_label(LabelCreate(name="bug", color="d73a4a"))

    async def test_rename_synced_label(self, db_session, mutations):
        label = make_label(db_session, name="bug")
        await db_session.flush()

        await mutations.update_label(label.id, LabelUpdate(name="defect"))

        assert label.name == "defect"
        assert label.remote_name == "bug"
        assert label.sync_status == SyncStatus.PENDING_UPDATE
        entry = (await SyncQueueRepository(db_session).list_entries())[0]
        assert entry.payload["name"] == "defect"

    async def test_rename_onto_existing_name_raises(self, db_session, mutations):
        label = make_label(db_session, name="bug")
        make_label(db_session, name="defect")
        await db_session.flush()

        with pytest.raises(LabelExistsError):
            await mutations.update_label(label.id, LabelUpdate(name="defect"))

    async def test_delete_unpushed_label_detaches_it(self, db_session, mutations):
        label = await mutations.create_label(LabelCreate(name="wip", color="cccccc"))
        issue = await mutations.create_issue(IssueCreate(title="Crash", labels=["wip"]))
        assert label.issue_count == 1

        await mutations.delete_label(label.id)
        await db_session.flush()

        assert await LabelRepository(db_session).get_by_name("wip") is None
        assert issue.label_names == []
        remaining = await SyncQueueRepository(db_session).list_entries()
        assert [e.entity_type for e in remaining] == [EntityType.ISSUE]

    async def test_delete_pushed_label_queues_delete_by_remote_name(self, db_session, mutations):
        label = make_label(db_session, name="defect", remote_name="bug")
        await db_session.flush()

        await mutations.delete_label(label.id)

        assert label.sync_status == SyncStatus.PENDING_DELETE
        entry = (await SyncQueueRepository(db_session).list_entries())[0]
        assert entry.payload == {"kind": "label.delete", "name": "bug"}
