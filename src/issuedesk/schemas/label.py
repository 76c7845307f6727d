"""Pydantic schemas for the Label model."""

import re

from pydantic import Field, field_validator

from issuedesk.db.models import SyncStatus

from .base import SchemaBase

# GitHub stores label colors as 6 hex digits without '#'
HEX_COLOR_PATTERN = re.compile(r"^[0-9a-fA-F]{6}$")


def _normalize_color(v: str | None) -> str | None:
    if v is None:
        return v
    v = v.removeprefix("#")
    if not HEX_COLOR_PATTERN.match(v):
        raise ValueError("Color must be 6 hex digits (e.g., 'd73a4a')")
    return v.lower()


class LabelCreate(SchemaBase):
    """Input for a new local label."""

    name: str = Field(min_length=1, max_length=50, description="Label name (unique)")
    color: str = Field(description="Hex color, 6 digits")
    description: str | None = Field(default=None, max_length=100)

    @field_validator("color")
    @classmethod
    def validate_hex_color(cls, v: str) -> str:
        """Validate and normalize the color."""
        color = _normalize_color(v)
        assert color is not None
        return color


class LabelUpdate(SchemaBase):
    """Partial update of a local label."""

    name: str | None = Field(default=None, min_length=1, max_length=50)
    color: str | None = None
    description: str | None = Field(default=None, max_length=100)

    @field_validator("color")
    @classmethod
    def validate_hex_color(cls, v: str | None) -> str | None:
        """Validate and normalize the color."""
        return _normalize_color(v)


class LabelRead(SchemaBase):
    """Label as stored locally."""

    id: str
    name: str
    color: str
    description: str | None
    issue_count: int
    sync_status: SyncStatus
