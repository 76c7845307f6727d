"""Typed sync queue payloads.

Every queue entry stores one of these as JSON; ``kind`` selects the
variant so replay can dispatch on it.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from issuedesk.db.models import EntityType, QueueOperation


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class IssueCreatePayload(_Payload):
    kind: Literal["issue.create"] = "issue.create"
    title: str
    body: str | None = None
    labels: list[str] = Field(default_factory=list)


class IssueUpdatePayload(_Payload):
    """Changed fields only; None means unchanged."""

    kind: Literal["issue.update"] = "issue.update"
    title: str | None = None
    body: str | None = None
    state: Literal["open", "closed"] | None = None
    labels: list[str] | None = None


class IssueDeletePayload(_Payload):
    kind: Literal["issue.delete"] = "issue.delete"
    number: int


class LabelCreatePayload(_Payload):
    kind: Literal["label.create"] = "label.create"
    name: str
    color: str
    description: str | None = None


class LabelUpdatePayload(_Payload):
    kind: Literal["label.update"] = "label.update"
    name: str | None = None
    color: str | None = None
    description: str | None = None


class LabelDeletePayload(_Payload):
    kind: Literal["label.delete"] = "label.delete"
    name: str


QueuePayload = Annotated[
    IssueCreatePayload
    | IssueUpdatePayload
    | IssueDeletePayload
    | LabelCreatePayload
    | LabelUpdatePayload
    | LabelDeletePayload,
    Field(discriminator="kind"),
]

_adapter: TypeAdapter[QueuePayload] = TypeAdapter(QueuePayload)

_KIND_TARGETS: dict[str, tuple[EntityType, QueueOperation]] = {
    "issue.create": (EntityType.ISSUE, QueueOperation.CREATE),
    "issue.update": (EntityType.ISSUE, QueueOperation.UPDATE),
    "issue.delete": (EntityType.ISSUE, QueueOperation.DELETE),
    "label.create": (EntityType.LABEL, QueueOperation.CREATE),
    "label.update": (EntityType.LABEL, QueueOperation.UPDATE),
    "label.delete": (EntityType.LABEL, QueueOperation.DELETE),
}


def parse_payload(data: dict[str, object]) -> QueuePayload:
    """Validate a stored payload.

    Raises:
        pydantic.ValidationError: If the payload matches no variant
    """
    return _adapter.validate_python(data)


def dump_payload(payload: QueuePayload) -> dict[str, object]:
    """Serialize a payload for the queue's JSON column."""
    return payload.model_dump(mode="json")


def target_of(payload: QueuePayload) -> tuple[EntityType, QueueOperation]:
    """Entity type and operation a payload variant stands for."""
    return _KIND_TARGETS[payload.kind]
