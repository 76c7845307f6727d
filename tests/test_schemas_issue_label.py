"""Tests for Issue and Label Pydantic schemas."""

import pytest
from pydantic import ValidationError

from issuedesk.db.models import SyncStatus
from issuedesk.schemas import (
    IssueCreate,
    IssueRead,
    IssueUpdate,
    LabelCreate,
    LabelRead,
    LabelUpdate,
)
from tests.factories import make_issue, make_label


class TestIssueCreate:
    """Tests for IssueCreate schema."""

    def test_valid(self, sample_issue_create):
        issue = IssueCreate(**sample_issue_create)

        assert issue.title == "Crash on start"
        assert issue.labels == ["bug"]

    def test_title_is_stripped(self):
        assert IssueCreate(title="  Crash  ").title == "Crash"

    @pytest.mark.parametrize("title", ["", "   ", "x" * 257])
    def test_invalid_title(self, title):
        with pytest.raises(ValidationError):
            IssueCreate(title=title)

    def test_defaults(self):
        issue = IssueCreate(title="Draft")

        assert issue.body is None
        assert issue.labels == []


class TestIssueUpdate:
    """Tests for IssueUpdate schema."""

    def test_unset_fields_excluded(self):
        update = IssueUpdate(state="closed")

        assert update.model_dump(exclude_unset=True) == {"state": "closed"}

    def test_invalid_state(self):
        with pytest.raises(ValidationError):
            IssueUpdate(state="merged")


class TestLabelCreate:
    """Tests for LabelCreate schema."""

    def test_color_normalized(self, sample_label_create):
        label = LabelCreate(**sample_label_create)

        assert label.color == "fbca04"

    @pytest.mark.parametrize("color", ["red", "#12345", "1234567", "ggg000"])
    def test_invalid_color(self, color):
        with pytest.raises(ValidationError, match="6 hex digits"):
            LabelCreate(name="bug", color=color)

    def test_name_length(self):
        with pytest.raises(ValidationError):
            LabelCreate(name="x" * 51, color="ffffff")


class TestLabelUpdate:
    """Tests for LabelUpdate schema."""

    def test_color_optional(self):
        assert LabelUpdate(name="defect").color is None

    def test_color_normalized(self):
        assert LabelUpdate(color="#ABCDEF").color == "abcdef"


class TestReadSchemas:
    """Tests for building read schemas from ORM rows."""

    async def test_issue_read_from_orm(self, db_session):
        bug = make_label(db_session, name="bug")
        issue = make_issue(db_session, labels=[bug])
        await db_session.flush()

        read = IssueRead.from_orm(issue)

        assert read.number == 42
        assert read.state == "open"
        assert read.sync_status == SyncStatus.SYNCED
        assert read.label_names == ["bug"]
        assert read.github_url == "https://github.com/octo/desk/issues/42"

    async def test_label_read_list(self, db_session):
        labels = [make_label(db_session, name="bug"), make_label(db_session, name="ui")]
        await db_session.flush()

        reads = LabelRead.from_orm_list(labels)

        assert [r.name for r in reads] == ["bug", "ui"]
        assert reads[0].issue_count == 0
