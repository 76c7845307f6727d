"""Result objects for sync operations.

Structured results provide consistent interfaces for monitoring,
error handling, and CLI output.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

SyncState = Literal["idle", "syncing", "conflict", "error"]
OutcomeAction = Literal["pushed", "failed", "conflict", "skipped", "dropped"]


@dataclass
class EntryOutcome:
    """What happened to one queue entry during a drain."""

    entry_id: int
    kind: str
    entity_id: str
    action: OutcomeAction
    error: str | None = None


@dataclass
class DrainResult:
    """Result of replaying the sync queue.

    Aggregates outcomes across all entries considered in one drain.
    """

    pushed: int = 0
    """Entries replayed and dequeued."""

    failed: int = 0
    """Entries kept with a new retry_after."""

    conflicts: int = 0
    """Issues that moved to the conflict state."""

    skipped: int = 0
    """Entries not yet due or blocked behind an earlier entry."""

    dropped: int = 0
    """Entries removed because their entity no longer exists locally."""

    stopped_by_rate_limit: bool = False
    """True if the drain ended early because the GitHub quota was spent."""

    outcomes: list[EntryOutcome] = field(default_factory=list)

    @property
    def total_attempted(self) -> int:
        return self.pushed + self.failed + self.conflicts

    def record(self, outcome: EntryOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.action == "pushed":
            self.pushed += 1
        elif outcome.action == "failed":
            self.failed += 1
        elif outcome.action == "conflict":
            self.conflicts += 1
        elif outcome.action == "dropped":
            self.dropped += 1
        else:
            self.skipped += 1

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "pushed": self.pushed,
            "failed": self.failed,
            "conflicts": self.conflicts,
            "skipped": self.skipped,
            "dropped": self.dropped,
            "total_attempted": self.total_attempted,
            "stopped_by_rate_limit": self.stopped_by_rate_limit,
            "outcomes": [
                {
                    "entry_id": o.entry_id,
                    "kind": o.kind,
                    "entity_id": o.entity_id,
                    "action": o.action,
                    "error": o.error,
                }
                for o in self.outcomes
            ],
        }


@dataclass
class PullResult:
    """Result of mirroring remote issues and labels locally."""

    issues_created: int = 0
    issues_updated: int = 0
    issues_skipped: int = 0
    """Remote issues not applied because the local row has pending changes."""

    labels_created: int = 0
    labels_updated: int = 0
    labels_deleted: int = 0

    @property
    def total_pulled(self) -> int:
        return (
            self.issues_created
            + self.issues_updated
            + self.labels_created
            + self.labels_updated
            + self.labels_deleted
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "issues_created": self.issues_created,
            "issues_updated": self.issues_updated,
            "issues_skipped": self.issues_skipped,
            "labels_created": self.labels_created,
            "labels_updated": self.labels_updated,
            "labels_deleted": self.labels_deleted,
            "total_pulled": self.total_pulled,
        }


@dataclass
class ConflictSummary:
    issue_id: str
    issue_number: int | None
    issue_title: str


@dataclass
class SyncStatus:
    """Snapshot of the engine for status displays."""

    state: SyncState
    last_sync_at: datetime | None
    pending: int
    failing: int
    conflicts: list[ConflictSummary] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "status": self.state,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
            "pending": self.pending,
            "failing": self.failing,
            "conflicts": [
                {
                    "issue_id": c.issue_id,
                    "issue_number": c.issue_number,
                    "issue_title": c.issue_title,
                }
                for c in self.conflicts
            ],
            "error": self.error,
        }
