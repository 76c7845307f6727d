"""Database module for IssueDesk."""

from issuedesk.db.engine import (
    build_engine,
    create_tables,
    dispose_engine,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
)
from issuedesk.db.models import (
    Base,
    EntityType,
    Issue,
    IssueConflict,
    IssueState,
    KVEntry,
    Label,
    QueueOperation,
    SyncQueueEntry,
    SyncRun,
    SyncStatus,
    issue_labels,
)
from issuedesk.db.repositories import (
    BaseRepository,
    IssueConflictRepository,
    IssueRepository,
    LabelRepository,
    SyncQueueRepository,
    SyncRunRepository,
)

__all__ = [
    # Models
    "Base",
    "EntityType",
    "Issue",
    "IssueConflict",
    "IssueState",
    "KVEntry",
    "Label",
    "QueueOperation",
    "SyncQueueEntry",
    "SyncRun",
    "SyncStatus",
    "issue_labels",
    # Engine
    "build_engine",
    "create_tables",
    "dispose_engine",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    # Repositories
    "BaseRepository",
    "IssueConflictRepository",
    "IssueRepository",
    "LabelRepository",
    "SyncQueueRepository",
    "SyncRunRepository",
]
