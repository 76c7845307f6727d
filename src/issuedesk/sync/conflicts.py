"""Conflict views and resolutions."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from issuedesk.db.models import Issue


class Resolution(StrEnum):
    """How a conflicted issue is settled."""

    LOCAL = "local"
    REMOTE = "remote"
    MERGED = "merged"


class IssueVersion(BaseModel):
    """One side of a conflict."""

    title: str
    body: str | None
    updated_at: datetime


class ConflictData(BaseModel):
    """Local and remote versions of a conflicted issue, side by side."""

    issue_id: str
    issue_number: int | None
    issue_title: str
    local_version: IssueVersion
    remote_version: IssueVersion

    @classmethod
    def from_issue(cls, issue: Issue) -> ConflictData:
        """Build from an issue with a recorded conflict.

        Raises:
            ValueError: If the issue has no conflict record
        """
        conflict = issue.conflict
        if conflict is None:
            raise ValueError(f"Issue {issue.id} has no recorded conflict")
        return cls(
            issue_id=issue.id,
            issue_number=issue.number,
            issue_title=issue.title,
            local_version=IssueVersion(
                title=issue.title,
                body=issue.body,
                updated_at=issue.local_updated_at,
            ),
            remote_version=IssueVersion(
                title=conflict.remote_title,
                body=conflict.remote_body,
                updated_at=conflict.remote_updated_at,
            ),
        )


class MergedIssue(BaseModel):
    """Caller-supplied content for a merged resolution."""

    title: str = Field(min_length=1, max_length=256)
    body: str | None = None
    labels: list[str] | None = None
