"""Backend sessions with sliding expiration.

A session is created when a device flow completes. Every read pushes
its expiry a full TTL into the future, so only inactivity longer than
the TTL ends it.
"""

from __future__ import annotations

import re
import secrets
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from issuedesk.logging import get_logger
from issuedesk.schemas.auth import BackendSession
from issuedesk.schemas.github_api import Installation

from .kv import KeyValueStore

logger = get_logger(__name__)

SESSION_TOKEN_BYTES = 64
DEFAULT_SESSION_TTL = timedelta(days=30)

_TOKEN_PATTERN = re.compile(r"^[0-9a-fA-F]{128}$")


class SessionNotFoundError(Exception):
    """The session vanished (expired or logged out) between read and write."""


def generate_session_token() -> str:
    """128 hex characters from 64 random bytes."""
    return secrets.token_hex(SESSION_TOKEN_BYTES)


def is_valid_session_token_format(token: str | None) -> bool:
    """Check the token is exactly 128 hex characters (any case)."""
    return bool(token) and _TOKEN_PATTERN.match(token or "") is not None


def _session_key(token: str) -> str:
    return f"session:{token}"


class SessionStore:
    """Session CRUD over a KeyValueStore.

    Usage:
        store = SessionStore(MemoryKeyValueStore())
        token = await store.create_session(user_id, access_token, installations)
        session = await store.get_session(token)
    """

    def __init__(
        self,
        kv: KeyValueStore,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._kv = kv
        self._ttl = ttl
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    async def _write(self, session: BackendSession) -> None:
        await self._kv.put(
            _session_key(session.session_token),
            session.model_dump_json(),
            ttl=self._ttl,
        )

    async def create_session(
        self,
        user_id: int,
        access_token: str,
        installations: list[Installation],
    ) -> str:
        """Create a session.

        Args:
            user_id: GitHub id of the signed-in identity
            access_token: GitHub user access token from the device flow
            installations: Installations visible to the user

        Returns:
            The new session token
        """
        now = self._clock()
        session = BackendSession(
            session_token=generate_session_token(),
            user_id=user_id,
            access_token=access_token,
            created_at=now,
            last_accessed_at=now,
            installations=installations,
        )
        await self._write(session)
        logger.info("Session created for user {}", user_id)
        return session.session_token

    async def get_session(self, token: str) -> BackendSession | None:
        """Read a session and slide its expiry.

        Returns:
            The session, or None if unknown or expired
        """
        raw = await self._kv.get(_session_key(token))
        if raw is None:
            return None
        session = BackendSession.model_validate_json(raw)
        session.last_accessed_at = self._clock()
        await self._write(session)
        return session

    async def update_session_installations(
        self,
        token: str,
        installations: list[Installation],
    ) -> BackendSession:
        """Replace the cached installations of a session.

        Raises:
            SessionNotFoundError: If the session no longer exists
        """
        raw = await self._kv.get(_session_key(token))
        if raw is None:
            raise SessionNotFoundError("Session not found")
        session = BackendSession.model_validate_json(raw)
        session.installations = installations
        session.last_accessed_at = self._clock()
        await self._write(session)
        return session

    async def delete_session(self, token: str) -> None:
        """Remove a session (no-op if it does not exist)."""
        await self._kv.delete(_session_key(token))
