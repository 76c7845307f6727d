"""GitHub OAuth device flow for the authentication service.

States per device code::

    idle -> code_issued -> polling -> authorized | denied | expired

Only codes this service issued are tracked, and only until they settle or
their ``expires_in`` passes; a settled or expired code reads as idle again.
Callers drive the polling cadence; nothing here runs in the background.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from issuedesk.logging import get_logger
from issuedesk.schemas.github_api import DeviceAuthorization, Installation, User

from .errors import AuthServiceError, ErrorCode, GitHubOAuthError, to_service_error
from .github import GitHubAppClient
from .rate_limit import SlidingWindowRateLimiter
from .security_log import SecurityEventType, log_security_event
from .sessions import SessionStore

logger = get_logger(__name__)

# Device codes tracked at once; the oldest are forgotten first
MAX_TRACKED_CODES = 10_000


class DeviceFlowState(StrEnum):
    IDLE = "idle"
    CODE_ISSUED = "code_issued"
    POLLING = "polling"
    AUTHORIZED = "authorized"
    DENIED = "denied"
    EXPIRED = "expired"


_TERMINAL_STATES = {
    ErrorCode.ACCESS_DENIED: DeviceFlowState.DENIED,
    ErrorCode.EXPIRED_TOKEN: DeviceFlowState.EXPIRED,
}


@dataclass
class _TrackedCode:
    state: DeviceFlowState
    expires_at: datetime


@dataclass(frozen=True)
class DeviceFlowResult:
    """Successful poll: a session was created."""

    session_token: str
    user: User
    installations: list[Installation]

    def to_dict(self) -> dict[str, object]:
        return {
            "session_token": self.session_token,
            "user": self.user.model_dump(mode="json"),
            "installations": [inst.model_dump(mode="json") for inst in self.installations],
        }


class DeviceFlowAuthenticator:
    """Issues device codes and turns an authorized poll into a session.

    Usage:
        authenticator = DeviceFlowAuthenticator(github, sessions, limiter)
        authorization = await authenticator.initiate_device_flow()
        # ... user enters authorization.user_code ...
        result = await authenticator.poll_device_flow(authorization.device_code)
    """

    def __init__(
        self,
        github: GitHubAppClient,
        sessions: SessionStore,
        rate_limiter: SlidingWindowRateLimiter,
        *,
        prefer_installation_identity: bool = True,
        clock: Callable[[], datetime] | None = None,
        max_tracked: int = MAX_TRACKED_CODES,
    ) -> None:
        """Initialize the authenticator.

        Args:
            github: GitHub OAuth/App client
            sessions: Where sessions are created
            rate_limiter: Throttle keyed by resolved user id
            prefer_installation_identity: Use the first installation's
                account as identity instead of fetching the profile
            clock: Time source for device code expiry
            max_tracked: Upper bound on tracked device codes
        """
        self._github = github
        self._sessions = sessions
        self._rate_limiter = rate_limiter
        self._prefer_installation_identity = prefer_installation_identity
        self._clock = clock or (lambda: datetime.now(UTC))
        self._max_tracked = max_tracked
        self._codes: dict[str, _TrackedCode] = {}

    def state_of(self, device_code: str) -> DeviceFlowState:
        """Current state of an issued device code (idle if unknown, settled or expired)."""
        tracked = self._codes.get(device_code)
        if tracked is None or tracked.expires_at <= self._clock():
            return DeviceFlowState.IDLE
        return tracked.state

    @property
    def tracked_count(self) -> int:
        return len(self._codes)

    def _prune(self) -> None:
        now = self._clock()
        for code in [c for c, tracked in self._codes.items() if tracked.expires_at <= now]:
            del self._codes[code]
        while len(self._codes) >= self._max_tracked:
            del self._codes[next(iter(self._codes))]

    def _set_state(self, device_code: str, state: DeviceFlowState) -> None:
        tracked = self._codes.get(device_code)
        if tracked is not None:
            tracked.state = state

    async def initiate_device_flow(self) -> DeviceAuthorization:
        """Request a device/user code pair for display.

        Raises:
            AuthServiceError: GitHub could not issue a code
        """
        try:
            authorization = await self._github.initiate_device_flow()
        except Exception as e:
            logger.error("Error initiating device flow: {}", e)
            raise to_service_error(e) from e

        self._prune()
        self._codes[authorization.device_code] = _TrackedCode(
            DeviceFlowState.CODE_ISSUED,
            self._clock() + timedelta(seconds=authorization.expires_in),
        )
        log_security_event(SecurityEventType.AUTH_ATTEMPT, user_code=authorization.user_code)
        return authorization

    async def poll_device_flow(self, device_code: str) -> DeviceFlowResult:
        """Poll once; on authorization create a session.

        Raises:
            AuthServiceError: AUTHORIZATION_PENDING (202), SLOW_DOWN (429),
                EXPIRED_TOKEN (410), ACCESS_DENIED (403), RATE_LIMIT (429)
                or a 500 for other upstream failures
        """
        self._prune()
        self._set_state(device_code, DeviceFlowState.POLLING)
        try:
            token = await self._github.poll_device_flow(device_code)
            installations = await self._github.get_user_installations(token.access_token)
            user = await self._resolve_identity(token.access_token, installations)
        except AuthServiceError:
            raise
        except Exception as e:
            error = to_service_error(e)
            if error.code in _TERMINAL_STATES:
                self._forget(device_code, _TERMINAL_STATES[error.code])
            if isinstance(e, GitHubOAuthError) and error.retryable:
                logger.debug("Device flow {}: {}", device_code[:8], error.code.value)
            else:
                log_security_event(SecurityEventType.AUTH_FAILURE, reason=error.code.value)
            raise error from e

        await self._rate_limiter.enforce(str(user.id))

        session_token = await self._sessions.create_session(
            user.id, token.access_token, installations
        )
        self._forget(device_code, DeviceFlowState.AUTHORIZED)
        log_security_event(
            SecurityEventType.AUTH_SUCCESS,
            user_id=user.id,
            installations=len(installations),
        )
        return DeviceFlowResult(session_token=session_token, user=user, installations=installations)

    def _forget(self, device_code: str, state: DeviceFlowState) -> None:
        if self._codes.pop(device_code, None) is not None:
            logger.debug("Device flow {} settled as {}", device_code[:8], state.value)

    async def _resolve_identity(
        self,
        access_token: str,
        installations: list[Installation],
    ) -> User:
        if installations and self._prefer_installation_identity:
            user = User.from_account(installations[0].account)
            logger.info("Using installation account as user: {}", user.login)
            return user
        github_user = await self._github.get_user(access_token)
        user = User.from_github_user(github_user)
        logger.info("Using GitHub user profile: {}", user.login)
        return user
