"""httpx client for the IssueDesk authentication service."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from issuedesk.logging import get_logger
from issuedesk.schemas.auth import (
    InstallationsResponse,
    InstallationTokenResponse,
    PollSuccessResponse,
)
from issuedesk.schemas.github_api import DeviceAuthorization

logger = get_logger(__name__)

SESSION_HEADER = "X-Session-Token"
DEFAULT_LOGIN_TIMEOUT = timedelta(minutes=15)


class AuthServiceClientError(Exception):
    """The auth service answered with an error (or could not be reached)."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        status: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
        self.retryable = retryable


class AuthServiceClient:
    """Calls the auth service on behalf of the desktop app.

    Usage:
        async with AuthServiceClient(settings.auth_service_url) as auth:
            authorization = await auth.request_device_code()
            print(authorization.user_code)
            login = await auth.wait_for_authorization(authorization)
    """

    def __init__(
        self,
        base_url: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url, timeout=httpx.Timeout(15.0)
        )
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(UTC))

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> AuthServiceClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _post(
        self,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        session_token: str | None = None,
    ) -> httpx.Response:
        headers = {SESSION_HEADER: session_token} if session_token else None
        try:
            return await self._http.post(path, json=json, headers=headers)
        except httpx.TimeoutException as e:
            raise AuthServiceClientError(
                "TIMEOUT", str(e) or "Request timed out", retryable=True
            ) from e
        except httpx.TransportError as e:
            raise AuthServiceClientError(
                "NETWORK_ERROR", str(e) or "Network error", retryable=True
            ) from e

    @staticmethod
    def _raise_for_error(response: httpx.Response) -> None:
        if response.is_success and response.status_code != 202:
            return
        try:
            body = response.json()
        except ValueError:
            body = {}
        raise AuthServiceClientError(
            str(body.get("error", "UNKNOWN")),
            str(body.get("message", f"Auth service error ({response.status_code})")),
            status=response.status_code,
            retryable=bool(body.get("retryable", False)),
        )

    # -------------------------------------------------------------------------
    # Device Flow
    # -------------------------------------------------------------------------
    async def request_device_code(self) -> DeviceAuthorization:
        response = await self._post("/auth/device")
        self._raise_for_error(response)
        return DeviceAuthorization.model_validate(response.json())

    async def poll(self, device_code: str) -> PollSuccessResponse:
        """Poll once.

        Raises:
            AuthServiceClientError: status 202 while pending, 429 on slow_down
                or the edge rate limit, 410 once expired, 403 if denied
        """
        response = await self._post("/auth/poll", json={"device_code": device_code})
        self._raise_for_error(response)
        return PollSuccessResponse.model_validate(response.json())

    async def wait_for_authorization(
        self,
        authorization: DeviceAuthorization,
        *,
        timeout: timedelta = DEFAULT_LOGIN_TIMEOUT,
    ) -> PollSuccessResponse:
        """Poll until the user authorizes, honoring interval and slow_down.

        Each consecutive slow_down doubles the base interval again.

        Raises:
            AuthServiceClientError: TIMEOUT, EXPIRED_TOKEN, ACCESS_DENIED or
                any other non-pending failure
        """
        base_interval = float(authorization.interval)
        interval = base_interval
        slow_downs = 0
        deadline = self._clock() + timeout

        while True:
            if self._clock() > deadline:
                raise AuthServiceClientError("TIMEOUT", "Login timed out. Please try again.")

            await self._sleep(interval)

            try:
                return await self.poll(authorization.device_code)
            except AuthServiceClientError as e:
                if e.status == 202:
                    continue
                if e.code == "SLOW_DOWN":
                    slow_downs += 1
                    interval = base_interval * (2**slow_downs)
                    logger.info("Auth service asked to slow down, polling every {}s", interval)
                    continue
                if e.status == 410:
                    raise AuthServiceClientError(
                        "EXPIRED_TOKEN", "Device code expired. Please try again.", status=410
                    ) from e
                if e.status == 403:
                    raise AuthServiceClientError(
                        "ACCESS_DENIED", "Access denied by user.", status=403
                    ) from e
                raise

    # -------------------------------------------------------------------------
    # Session-scoped calls
    # -------------------------------------------------------------------------
    async def get_installation_token(
        self,
        session_token: str,
        installation_id: int,
        *,
        refresh: bool = False,
    ) -> InstallationTokenResponse:
        path = "/auth/refresh-installation-token" if refresh else "/auth/installation-token"
        response = await self._post(
            path, json={"installation_id": installation_id}, session_token=session_token
        )
        self._raise_for_error(response)
        return InstallationTokenResponse.model_validate(response.json())

    async def refresh_installations(self, session_token: str) -> InstallationsResponse:
        response = await self._post("/auth/installations", session_token=session_token)
        self._raise_for_error(response)
        return InstallationsResponse.model_validate(response.json())

    async def logout(self, session_token: str) -> None:
        response = await self._post("/auth/logout", session_token=session_token)
        self._raise_for_error(response)
