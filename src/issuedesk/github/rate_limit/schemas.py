"""Pydantic schemas for GitHub API rate limit data.

These schemas represent rate limit information carried by the
x-ratelimit-* response headers on every GitHub REST response.
"""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, Self

from pydantic import BaseModel, Field, computed_field

_REQUIRED_HEADERS = ("x-ratelimit-remaining", "x-ratelimit-limit", "x-ratelimit-reset")


def _header_value(headers: Mapping[str, Any], name: str) -> Any:
    """Look up a header case-insensitively, unwrapping list values."""
    for key, value in headers.items():
        if key.lower() == name:
            if isinstance(value, list | tuple):
                return value[0] if value else None
            return value
    return None


class RateLimitState(BaseModel):
    """Rate limit quota as reported by the most recent response."""

    remaining: int = Field(ge=0, description="Requests remaining in current window")
    limit: int = Field(ge=0, description="Maximum requests allowed per window")
    reset: int = Field(ge=0, description="Epoch seconds when the window resets")
    used: int | None = Field(default=None, ge=0, description="Requests used in current window")
    resource: str | None = Field(default=None, description="Resource pool (core, search, ...)")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def reset_at(self) -> datetime:
        """UTC datetime when the window resets."""
        return datetime.fromtimestamp(self.reset, tz=UTC)

    @property
    def remaining_ratio(self) -> float:
        """Fraction of the quota still available (0.0 to 1.0)."""
        if self.limit == 0:
            return 0.0
        return self.remaining / self.limit

    @classmethod
    def parse_headers(cls, headers: Mapping[str, Any]) -> Self | None:
        """Parse rate limit headers.

        All of x-ratelimit-remaining, x-ratelimit-limit and x-ratelimit-reset
        must be present and numeric. Names match case-insensitively and
        list values contribute their first element.

        Args:
            headers: HTTP response headers

        Returns:
            RateLimitState, or None if a required header is missing or malformed
        """
        values: dict[str, int] = {}
        for name in _REQUIRED_HEADERS:
            raw = _header_value(headers, name)
            if raw is None:
                return None
            try:
                values[name] = int(str(raw).strip())
            except ValueError:
                return None

        used: int | None = None
        raw_used = _header_value(headers, "x-ratelimit-used")
        if raw_used is not None:
            try:
                used = int(str(raw_used).strip())
            except ValueError:
                used = None

        resource = _header_value(headers, "x-ratelimit-resource")

        try:
            return cls(
                remaining=values["x-ratelimit-remaining"],
                limit=values["x-ratelimit-limit"],
                reset=values["x-ratelimit-reset"],
                used=used,
                resource=str(resource) if resource is not None else None,
            )
        except ValueError:
            # Negative values fail validation
            return None
