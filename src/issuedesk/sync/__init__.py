"""Local-first sync: queued mutations, replay, conflicts and pulls."""

from .checksum import body_checksum
from .conflicts import ConflictData, IssueVersion, MergedIssue, Resolution
from .engine import SyncEngine
from .exceptions import (
    ConflictNotFoundError,
    EntityNotFoundError,
    InvalidResolutionError,
    LabelExistsError,
    PendingDeleteError,
    SyncError,
    SyncInProgressError,
)
from .mutations import MutationService
from .payloads import (
    IssueCreatePayload,
    IssueDeletePayload,
    IssueUpdatePayload,
    LabelCreatePayload,
    LabelDeletePayload,
    LabelUpdatePayload,
    QueuePayload,
    dump_payload,
    parse_payload,
    target_of,
)
from .results import ConflictSummary, DrainResult, EntryOutcome, PullResult, SyncStatus

__all__ = [
    "ConflictData",
    "ConflictNotFoundError",
    "ConflictSummary",
    "DrainResult",
    "EntityNotFoundError",
    "EntryOutcome",
    "InvalidResolutionError",
    "IssueCreatePayload",
    "IssueDeletePayload",
    "IssueUpdatePayload",
    "IssueVersion",
    "LabelCreatePayload",
    "LabelDeletePayload",
    "LabelExistsError",
    "LabelUpdatePayload",
    "MergedIssue",
    "MutationService",
    "PendingDeleteError",
    "PullResult",
    "QueuePayload",
    "Resolution",
    "SyncEngine",
    "SyncError",
    "SyncInProgressError",
    "SyncStatus",
    "body_checksum",
    "dump_payload",
    "parse_payload",
    "target_of",
]
