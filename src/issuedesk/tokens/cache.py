"""In-memory installation token cache with lazy expiry."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

Clock = Callable[[], datetime]


class CachedInstallationToken(BaseModel):
    """Installation access token as held by the cache."""

    installation_id: int = Field(gt=0)
    token: str = Field(min_length=1)
    expires_at: datetime
    permissions: dict[str, str] = Field(default_factory=dict)
    repository_selection: Literal["all", "selected"] | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


class TokenCache:
    """One live token per installation id.

    Expired entries are evicted when read; evict_expired() sweeps the
    rest. Construct one per process and pass it around.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(UTC))
        self._tokens: dict[int, CachedInstallationToken] = {}

    def get_token(self, installation_id: int) -> CachedInstallationToken | None:
        """Cached token, or None if missing or expired (expired ones are dropped)."""
        cached = self._tokens.get(installation_id)
        if cached is None:
            return None
        if cached.is_expired(self._clock()):
            del self._tokens[installation_id]
            return None
        return cached

    def put_token(self, token: CachedInstallationToken) -> None:
        """Store a token, replacing any previous one for the installation."""
        self._tokens[token.installation_id] = token

    def has_token(self, installation_id: int) -> bool:
        return self.get_token(installation_id) is not None

    def evict_expired(self) -> int:
        """Drop every expired token.

        Returns:
            Number of tokens removed
        """
        now = self._clock()
        expired = [iid for iid, cached in self._tokens.items() if cached.is_expired(now)]
        for iid in expired:
            del self._tokens[iid]
        return len(expired)

    def clear_all(self) -> None:
        self._tokens.clear()

    def cached_installation_ids(self) -> list[int]:
        return list(self._tokens)

    def size(self) -> int:
        return len(self._tokens)

    def to_json(self) -> list[dict[str, Any]]:
        """Snapshot of all entries (expired ones included)."""
        return [cached.model_dump(mode="json") for cached in self._tokens.values()]

    def from_json(self, data: Iterable[dict[str, Any]]) -> None:
        """Replace the contents from a snapshot, skipping expired tokens."""
        self._tokens.clear()
        now = self._clock()
        for item in data:
            cached = CachedInstallationToken.model_validate(item)
            if not cached.is_expired(now):
                self._tokens[cached.installation_id] = cached
