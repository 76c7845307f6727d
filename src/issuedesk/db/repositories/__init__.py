"""Repository pattern implementation for database access.

This module provides repository classes that encapsulate all database
access logic, providing a clean abstraction over SQLAlchemy models.
"""

from .base import BaseRepository
from .conflict import IssueConflictRepository
from .issue import IssueRepository
from .label import LabelRepository
from .sync_queue import SyncQueueRepository
from .sync_run import SyncRunRepository

__all__ = [
    "BaseRepository",
    "IssueConflictRepository",
    "IssueRepository",
    "LabelRepository",
    "SyncQueueRepository",
    "SyncRunRepository",
]
