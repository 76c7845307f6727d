"""GitHub OAuth and App endpoints used by the authentication service.

Talks to github.com directly through httpx:
- device code issuance and polling (OAuth device flow)
- the signed-in user's profile and installations
- installation access tokens (signed with the App JWT)
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

import httpx

from issuedesk.config import AuthServiceConfig, RetryConfig
from issuedesk.github.retry import retry_with_config
from issuedesk.logging import get_logger
from issuedesk.schemas.github_api import (
    DeviceAuthorization,
    DeviceTokenResponse,
    GitHubUser,
    Installation,
    InstallationToken,
)

from .errors import GitHubHTTPError, GitHubOAuthError
from .jwt import create_app_jwt

logger = get_logger(__name__)

T = TypeVar("T")

GITHUB_WEB_BASE = "https://github.com"
GITHUB_API_BASE = "https://api.github.com"
USER_AGENT = "IssueDesk/1.0.0"
API_VERSION = "2022-11-28"
DEVICE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"


class GitHubAppClient:
    """Async client for the GitHub endpoints behind device-flow login.

    Usage:
        async with GitHubAppClient(settings.auth) as github:
            authorization = await github.initiate_device_flow()
    """

    def __init__(
        self,
        config: AuthServiceConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        retry_config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: GitHub App secrets
            http_client: Shared httpx client (one is created if omitted)
            retry_config: Retry policy for idempotent calls
            sleep: Sleep used between retries (for tests)
            clock: Time source for JWT signing
        """
        self._config = config
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(10.0))
        self._retry = retry_config or RetryConfig()
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(UTC))

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> GitHubAppClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------
    def _api_headers(self, bearer: str) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {bearer}",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": USER_AGENT,
        }

    @staticmethod
    def _oauth_headers() -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

    async def _with_retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self._sleep is None:
            return await retry_with_config(operation, self._retry)
        return await retry_with_config(operation, self._retry, sleep=self._sleep)

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        try:
            body: dict[str, Any] = response.json()
        except ValueError:
            body = {"message": response.reason_phrase}
        message = body.get("message") or f"GitHub API error: {response.status_code}"
        raise GitHubHTTPError(response.status_code, message, body)

    # -------------------------------------------------------------------------
    # Device Flow
    # -------------------------------------------------------------------------
    async def initiate_device_flow(self) -> DeviceAuthorization:
        """Request a device/user code pair."""

        async def request() -> httpx.Response:
            response = await self._http.post(
                f"{GITHUB_WEB_BASE}/login/device/code",
                headers=self._oauth_headers(),
                json={"client_id": self._config.github_client_id, "scope": ""},
            )
            self._raise_for_status(response)
            return response

        response = await self._with_retry(request)
        data = response.json()
        if "error" in data:
            raise GitHubOAuthError(data["error"], data.get("error_description"))
        return DeviceAuthorization.model_validate(data)

    async def poll_device_flow(self, device_code: str) -> DeviceTokenResponse:
        """Poll the token endpoint once (never retried).

        Raises:
            GitHubOAuthError: authorization_pending, slow_down,
                expired_token, access_denied or another OAuth error
            GitHubHTTPError: Non-2xx response
        """
        response = await self._http.post(
            f"{GITHUB_WEB_BASE}/login/oauth/access_token",
            headers=self._oauth_headers(),
            json={
                "client_id": self._config.github_client_id,
                "device_code": device_code,
                "grant_type": DEVICE_GRANT_TYPE,
            },
        )
        self._raise_for_status(response)
        data = response.json()
        # GitHub reports pending/denied states with 200 and an error field
        if "error" in data:
            raise GitHubOAuthError(data["error"], data.get("error_description"))
        return DeviceTokenResponse.model_validate(data)

    # -------------------------------------------------------------------------
    # User
    # -------------------------------------------------------------------------
    async def get_user(self, access_token: str) -> GitHubUser:
        """Get the profile of the user owning ``access_token``."""

        async def request() -> httpx.Response:
            response = await self._http.get(
                f"{GITHUB_API_BASE}/user", headers=self._api_headers(access_token)
            )
            self._raise_for_status(response)
            return response

        response = await self._with_retry(request)
        return GitHubUser.model_validate(response.json())

    async def get_user_installations(self, access_token: str) -> list[Installation]:
        """List App installations the user can access."""

        async def request() -> httpx.Response:
            response = await self._http.get(
                f"{GITHUB_API_BASE}/user/installations",
                headers=self._api_headers(access_token),
            )
            self._raise_for_status(response)
            return response

        response = await self._with_retry(request)
        raw = response.json().get("installations") or []
        installations = [Installation.model_validate(item) for item in raw]
        logger.debug("User has {} installations", len(installations))
        return installations

    # -------------------------------------------------------------------------
    # Installation Tokens
    # -------------------------------------------------------------------------
    async def create_installation_token(self, installation_id: int) -> InstallationToken:
        """Exchange an installation id for a short-lived access token.

        A fresh App JWT is signed for every call. The caller must already
        have checked the installation belongs to the session.
        """
        app_jwt = create_app_jwt(
            self._config.github_app_id,
            self._config.github_private_key,
            now=self._clock(),
        )

        async def request() -> httpx.Response:
            response = await self._http.post(
                f"{GITHUB_API_BASE}/app/installations/{installation_id}/access_tokens",
                headers=self._api_headers(app_jwt),
            )
            self._raise_for_status(response)
            return response

        response = await self._with_retry(request)
        return InstallationToken.model_validate(response.json())
