"""Exceptions raised by the sync layer."""


class SyncError(Exception):
    """Base exception for local mutation and sync failures."""

    pass


class SyncInProgressError(SyncError):
    """A drain is already running on this engine."""

    pass


class EntityNotFoundError(SyncError):
    """The referenced issue or label does not exist locally."""

    def __init__(self, entity_type: str, entity_id: str) -> None:
        super().__init__(f"{entity_type.capitalize()} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class PendingDeleteError(SyncError):
    """The entity is queued for deletion and can no longer be edited."""

    pass


class LabelExistsError(SyncError):
    """A label with the same name already exists."""

    pass


class ConflictNotFoundError(SyncError):
    """The issue has no unresolved conflict."""

    pass


class InvalidResolutionError(SyncError):
    """A resolution was supplied without the data it needs."""

    pass
