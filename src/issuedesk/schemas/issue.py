"""Pydantic schemas for the Issue model."""

from datetime import datetime
from typing import Literal

from pydantic import Field

from issuedesk.db.models import IssueState as StoredState
from issuedesk.db.models import SyncStatus

from .base import SchemaBase

IssueState = Literal["open", "closed"]


class IssueCreate(SchemaBase):
    """Input for a new local issue."""

    title: str = Field(min_length=1, max_length=256, description="Issue title")
    body: str | None = Field(default=None, max_length=65536, description="Markdown body")
    labels: list[str] = Field(default_factory=list, description="Label names to apply")


class IssueUpdate(SchemaBase):
    """Partial update of a local issue; unset fields are left alone."""

    title: str | None = Field(default=None, min_length=1, max_length=256)
    body: str | None = Field(default=None, max_length=65536)
    state: IssueState | None = None
    labels: list[str] | None = None


class IssueRead(SchemaBase):
    """Issue as stored locally."""

    id: str
    number: int | None
    title: str
    body: str | None
    state: StoredState
    sync_status: SyncStatus
    label_names: list[str]
    local_updated_at: datetime
    remote_updated_at: datetime | None
    body_checksum: str | None
    github_url: str | None
