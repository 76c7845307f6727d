"""Desktop-side installation token lifecycle."""

from __future__ import annotations

from issuedesk.logging import get_logger

from .cache import CachedInstallationToken, TokenCache
from .client import AuthServiceClient

logger = get_logger(__name__)


class InstallationTokenManager:
    """Serves installation tokens from the cache, fetching on a miss.

    Switching installations is instant when the target's token is cached.
    """

    def __init__(
        self,
        client: AuthServiceClient,
        cache: TokenCache,
        session_token: str,
    ) -> None:
        self._client = client
        self._cache = cache
        self._session_token = session_token
        self._current: int | None = None

    @property
    def current_installation_id(self) -> int | None:
        return self._current

    @property
    def cache(self) -> TokenCache:
        return self._cache

    async def get_token(self, installation_id: int) -> CachedInstallationToken:
        """Cached token for the installation, fetched if missing or expired."""
        cached = self._cache.get_token(installation_id)
        if cached is not None:
            return cached
        return await self._fetch(installation_id, refresh=False)

    async def refresh_token(self, installation_id: int) -> CachedInstallationToken:
        """Fetch a new token even if one is cached."""
        return await self._fetch(installation_id, refresh=True)

    async def switch_installation(self, installation_id: int) -> CachedInstallationToken:
        """Make ``installation_id`` current and return its token."""
        token = await self.get_token(installation_id)
        if self._current != installation_id:
            logger.info("Switched to installation {}", installation_id)
        self._current = installation_id
        return token

    async def current_token(self) -> CachedInstallationToken | None:
        """Token of the current installation (None if none selected)."""
        if self._current is None:
            return None
        return await self.get_token(self._current)

    async def _fetch(self, installation_id: int, *, refresh: bool) -> CachedInstallationToken:
        response = await self._client.get_installation_token(
            self._session_token, installation_id, refresh=refresh
        )
        cached = CachedInstallationToken(
            installation_id=installation_id,
            token=response.token,
            expires_at=response.expires_at,
        )
        self._cache.put_token(cached)
        logger.debug(
            "Cached token for installation {} (expires {})",
            installation_id,
            cached.expires_at.isoformat(),
        )
        return cached
