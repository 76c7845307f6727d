"""SQLAlchemy ORM models for IssueDesk."""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    String,
    Table,
    Text,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)
from sqlalchemy.types import JSON, TypeDecorator


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def new_id() -> str:
    """Opaque local identifier for issues and labels."""
    return uuid.uuid4().hex


class UTCDateTime(TypeDecorator[datetime]):
    """Stores naive UTC, returns aware UTC.

    SQLite drops tzinfo; comparing against GitHub's aware timestamps
    requires it back.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.replace(tzinfo=None)

    def process_result_value(self, value: Any, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        return value.replace(tzinfo=UTC)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class IssueState(str, Enum):
    """Issue state enum."""

    OPEN = "open"
    CLOSED = "closed"


class SyncStatus(str, Enum):
    """Local sync state of an issue or label."""

    SYNCED = "synced"
    PENDING_CREATE = "pending_create"
    PENDING_UPDATE = "pending_update"
    PENDING_DELETE = "pending_delete"
    CONFLICT = "conflict"


class EntityType(str, Enum):
    """Kind of entity a queue entry refers to."""

    ISSUE = "issue"
    LABEL = "label"


class QueueOperation(str, Enum):
    """Mutation a queue entry replays."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# ------------------------------------------------------------------------------
# Junction table for many-to-many: Issue <-> Label
# ------------------------------------------------------------------------------
issue_labels = Table(
    "issue_labels",
    Base.metadata,
    Column("issue_id", ForeignKey("issues.id", ondelete="CASCADE"), primary_key=True),
    Column("label_id", ForeignKey("labels.id", ondelete="CASCADE"), primary_key=True),
)


# ------------------------------------------------------------------------------
# Issue model
# ------------------------------------------------------------------------------
class Issue(Base):
    """Locally mirrored GitHub issue."""

    __tablename__ = "issues"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)

    # Null until the remote create is confirmed
    number: Mapped[int | None] = mapped_column(unique=True, nullable=True)

    title: Mapped[str] = mapped_column(String(256))
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    state: Mapped[IssueState] = mapped_column(default=IssueState.OPEN)
    github_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # --------------------------------------------------------------------------
    # Sync tracking
    # --------------------------------------------------------------------------
    sync_status: Mapped[SyncStatus] = mapped_column(default=SyncStatus.PENDING_CREATE)
    local_updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    remote_updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    body_checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    # --------------------------------------------------------------------------
    # Relationships
    # --------------------------------------------------------------------------
    labels: Mapped[list["Label"]] = relationship(
        secondary=issue_labels,
        back_populates="issues",
        lazy="selectin",
    )
    conflict: Mapped["IssueConflict | None"] = relationship(
        back_populates="issue",
        cascade="all, delete-orphan",
        lazy="selectin",
        uselist=False,
    )

    def __repr__(self) -> str:
        return f"<Issue(id='{self.id}', number={self.number}, status={self.sync_status.value})>"

    @property
    def label_names(self) -> list[str]:
        return sorted(label.name for label in self.labels)

    @property
    def is_pushed(self) -> bool:
        """Whether GitHub has confirmed the create."""
        return self.number is not None


# ------------------------------------------------------------------------------
# Label model
# ------------------------------------------------------------------------------
class Label(Base):
    """Locally mirrored repository label."""

    __tablename__ = "labels"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(50), unique=True)
    color: Mapped[str] = mapped_column(String(6))  # hex without '#', e.g. "d73a4a"
    description: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Recomputed from issue_labels, never incremented
    issue_count: Mapped[int] = mapped_column(default=0)

    sync_status: Mapped[SyncStatus] = mapped_column(default=SyncStatus.PENDING_CREATE)
    # GitHub addresses labels by name; this is the name it knows
    remote_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    local_updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    issues: Mapped[list["Issue"]] = relationship(
        secondary=issue_labels,
        back_populates="labels",
        lazy="raise",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Label(id='{self.id}', name='{self.name}')>"

    @property
    def is_pushed(self) -> bool:
        return self.remote_name is not None


# ------------------------------------------------------------------------------
# SyncQueueEntry model
# ------------------------------------------------------------------------------
class SyncQueueEntry(Base):
    """Pending local mutation awaiting replay against GitHub.

    Entries are replayed in created_at order and removed only once the
    remote call succeeds.
    """

    __tablename__ = "sync_queue"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    entity_type: Mapped[EntityType] = mapped_column()
    entity_id: Mapped[str] = mapped_column(String(32), index=True)
    operation: Mapped[QueueOperation] = mapped_column()
    payload: Mapped[dict[str, Any]] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, index=True)
    retry_after: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(default=0)

    def __repr__(self) -> str:
        return (
            f"<SyncQueueEntry(id={self.id}, {self.entity_type.value}:{self.entity_id}, "
            f"op={self.operation.value}, attempts={self.attempts})>"
        )


# ------------------------------------------------------------------------------
# IssueConflict model
# ------------------------------------------------------------------------------
class IssueConflict(Base):
    """Remote side of an issue whose local and remote edits diverged."""

    __tablename__ = "sync_conflicts"

    id: Mapped[int] = mapped_column(primary_key=True)
    issue_id: Mapped[str] = mapped_column(
        ForeignKey("issues.id", ondelete="CASCADE"), unique=True
    )

    remote_title: Mapped[str] = mapped_column(String(256))
    remote_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    remote_state: Mapped[IssueState] = mapped_column(default=IssueState.OPEN)
    remote_labels: Mapped[list[str]] = mapped_column(JSON, default=list)
    remote_updated_at: Mapped[datetime] = mapped_column(UTCDateTime)
    detected_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    issue: Mapped["Issue"] = relationship(back_populates="conflict")

    def __repr__(self) -> str:
        return f"<IssueConflict(issue_id='{self.issue_id}')>"


# ------------------------------------------------------------------------------
# SyncRun model
# ------------------------------------------------------------------------------
class SyncRun(Base):
    """History of drain/pull cycles, used for status reporting."""

    __tablename__ = "sync_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    kind: Mapped[str] = mapped_column(String(20))  # "drain" | "pull" | "sync"
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    finished_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    pushed: Mapped[int] = mapped_column(default=0)
    failed: Mapped[int] = mapped_column(default=0)
    conflicts: Mapped[int] = mapped_column(default=0)
    pulled: Mapped[int] = mapped_column(default=0)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<SyncRun(id={self.id}, kind='{self.kind}')>"


# ------------------------------------------------------------------------------
# KVEntry model
# ------------------------------------------------------------------------------
class KVEntry(Base):
    """Durable key/value entry with optional expiry (auth service storage)."""

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<KVEntry(key='{self.key}')>"
