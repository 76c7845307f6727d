"""Desktop credentials kept between runs.

The session token from `issuedesk auth login`, the installation to sync
as, and a snapshot of the installation token cache live in the local
key/value store so later commands can reuse them.
"""

from __future__ import annotations

import json

from pydantic import BaseModel, Field, ValidationError

from issuedesk.auth.kv import KeyValueStore
from issuedesk.logging import get_logger

from .cache import CachedInstallationToken, TokenCache
from .client import AuthServiceClient
from .manager import InstallationTokenManager

logger = get_logger(__name__)

LOGIN_KEY = "desktop:login"
TOKEN_CACHE_KEY = "desktop:token_cache"


class StoredLogin(BaseModel):
    """What a successful login leaves behind."""

    session_token: str = Field(min_length=1)
    login: str
    installation_id: int | None = None


class CredentialStore:
    """Reads and writes desktop credentials in a KeyValueStore.

    Usage:
        store = CredentialStore(SqlKeyValueStore(get_session_factory()))
        await store.save_login(StoredLogin(session_token=..., login="octocat"))
        token = await store.installation_token(auth_client)
    """

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    async def save_login(self, login: StoredLogin) -> None:
        """Remember a login; cached tokens of a previous login are dropped."""
        await self._kv.put(LOGIN_KEY, login.model_dump_json())
        await self._kv.delete(TOKEN_CACHE_KEY)

    async def load_login(self) -> StoredLogin | None:
        raw = await self._kv.get(LOGIN_KEY)
        if raw is None:
            return None
        try:
            return StoredLogin.model_validate_json(raw)
        except ValidationError:
            logger.warning("Ignoring unreadable stored login")
            return None

    async def save_cache(self, cache: TokenCache) -> None:
        await self._kv.put(TOKEN_CACHE_KEY, json.dumps(cache.to_json()))

    async def load_cache(self, cache: TokenCache) -> None:
        """Restore a snapshot into ``cache`` (expired tokens are skipped)."""
        raw = await self._kv.get(TOKEN_CACHE_KEY)
        if raw is None:
            return
        try:
            cache.from_json(json.loads(raw))
        except (ValueError, ValidationError):
            logger.warning("Ignoring unreadable token cache snapshot")

    async def clear(self) -> None:
        await self._kv.delete(LOGIN_KEY)
        await self._kv.delete(TOKEN_CACHE_KEY)

    async def installation_token(
        self,
        client: AuthServiceClient,
        cache: TokenCache | None = None,
    ) -> CachedInstallationToken | None:
        """Token for the stored installation, from the snapshot or the auth service.

        Returns:
            None if nobody is signed in or no installation was chosen

        Raises:
            AuthServiceClientError: The auth service refused or could not be reached
        """
        login = await self.load_login()
        if login is None or login.installation_id is None:
            return None

        cache = cache if cache is not None else TokenCache()
        await self.load_cache(cache)
        manager = InstallationTokenManager(client, cache, login.session_token)
        token = await manager.switch_installation(login.installation_id)
        await self.save_cache(cache)
        return token
