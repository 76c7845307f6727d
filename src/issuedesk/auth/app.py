"""FastAPI application exposing the authentication service.

Routes:
    POST /auth/device                      start a device flow
    POST /auth/poll                        poll it, creating a session
    POST /auth/installation-token          installation access token
    POST /auth/refresh-installation-token  same, for refreshes
    POST /auth/installations               refresh the session's installations
    POST /auth/logout                      delete the session
    GET  /health
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Annotated, Any

import httpx
from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from issuedesk import __version__
from issuedesk.config import AuthServiceConfig, Settings, get_settings
from issuedesk.logging import get_logger
from issuedesk.schemas.auth import (
    BackendSession,
    InstallationsResponse,
    InstallationTokenRequest,
    InstallationTokenResponse,
    PollRequest,
)
from issuedesk.schemas.github_api import DeviceAuthorization

from .device_flow import DeviceFlowAuthenticator
from .errors import AuthServiceError, ErrorCode, to_service_error
from .github import GitHubAppClient
from .kv import KeyValueStore, MemoryKeyValueStore
from .rate_limit import SlidingWindowRateLimiter
from .security_log import SecurityEventType, log_security_event
from .sessions import SessionNotFoundError, SessionStore, is_valid_session_token_format

logger = get_logger(__name__)

SESSION_HEADER = "X-Session-Token"


@dataclass
class AuthServices:
    """Collaborators shared by the request handlers."""

    config: AuthServiceConfig
    github: GitHubAppClient
    sessions: SessionStore
    rate_limiter: SlidingWindowRateLimiter
    authenticator: DeviceFlowAuthenticator
    clock: Callable[[], datetime]


def _error_response(error: AuthServiceError) -> JSONResponse:
    return JSONResponse(error.to_dict(), status_code=error.status, headers=error.headers)


class ConfigurationCheckMiddleware(BaseHTTPMiddleware):
    """Refuse every request while GitHub App secrets are missing or malformed."""

    def __init__(self, app: Any, *, config: AuthServiceConfig) -> None:
        super().__init__(app)
        self._config = config

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        missing = self._config.missing_secrets()
        if missing:
            logger.error("Missing environment variables: {}", ", ".join(missing))
            log_security_event(SecurityEventType.CONFIGURATION_ERROR, missing=missing)
            return _error_response(
                AuthServiceError(
                    ErrorCode.CONFIGURATION_ERROR,
                    f"Missing required environment variables: {', '.join(missing)}",
                    status=500,
                    extra={"missing": missing},
                )
            )
        if not self._config.has_pem_private_key:
            logger.error("GITHUB_PRIVATE_KEY is not PEM encoded")
            log_security_event(SecurityEventType.CONFIGURATION_ERROR, reason="private_key_format")
            return _error_response(
                AuthServiceError(
                    ErrorCode.CONFIGURATION_ERROR,
                    "GITHUB_PRIVATE_KEY must be in PEM format "
                    "(BEGIN PRIVATE KEY or BEGIN RSA PRIVATE KEY)",
                    status=500,
                    extra={"missing": []},
                )
            )
        return await call_next(request)


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------
def get_services(request: Request) -> AuthServices:
    services: AuthServices = request.app.state.services
    return services


ServicesDep = Annotated[AuthServices, Depends(get_services)]


async def require_session_token(
    x_session_token: Annotated[str | None, Header(alias=SESSION_HEADER)] = None,
) -> str:
    """Session token from the header, format-checked."""
    if not x_session_token:
        raise AuthServiceError(
            ErrorCode.UNAUTHORIZED, f"Missing {SESSION_HEADER} header", status=401
        )
    if not is_valid_session_token_format(x_session_token):
        raise AuthServiceError(
            ErrorCode.INVALID_SESSION_TOKEN, "Malformed session token", status=401
        )
    return x_session_token


SessionTokenDep = Annotated[str, Depends(require_session_token)]


async def require_session(token: SessionTokenDep, services: ServicesDep) -> BackendSession:
    """Load the caller's session, then apply the per-user rate limit."""
    session = await services.sessions.get_session(token)
    if session is None:
        log_security_event(SecurityEventType.AUTH_FAILURE, reason="invalid_session")
        raise AuthServiceError(ErrorCode.UNAUTHORIZED, "Invalid or expired session", status=401)

    result = await services.rate_limiter.check(str(session.user_id))
    if not result.allowed:
        log_security_event(SecurityEventType.RATE_LIMIT_HIT, user_id=session.user_id)
        raise result.to_error(services.clock())
    return session


SessionDep = Annotated[BackendSession, Depends(require_session)]


# -----------------------------------------------------------------------------
# Handlers
# -----------------------------------------------------------------------------
async def device(services: ServicesDep) -> DeviceAuthorization:
    """Start a device flow."""
    return await services.authenticator.initiate_device_flow()


async def poll(body: PollRequest, services: ServicesDep) -> dict[str, Any]:
    """Poll a device flow once."""
    result = await services.authenticator.poll_device_flow(body.device_code)
    return result.to_dict()


async def installation_token(
    body: InstallationTokenRequest,
    session: SessionDep,
    services: ServicesDep,
) -> InstallationTokenResponse:
    """Exchange an installation id owned by the session for an access token."""
    if not session.owns_installation(body.installation_id):
        log_security_event(
            SecurityEventType.AUTH_FAILURE,
            user_id=session.user_id,
            installation_id=body.installation_id,
            reason="installation_not_owned",
        )
        raise AuthServiceError(
            ErrorCode.UNAUTHORIZED,
            "Installation not accessible. This installation does not belong to your account.",
            status=403,
        )

    try:
        token = await services.github.create_installation_token(body.installation_id)
    except Exception as e:
        logger.error("Error getting installation token: {}", e)
        raise to_service_error(e) from e

    log_security_event(
        SecurityEventType.TOKEN_GENERATED,
        user_id=session.user_id,
        installation_id=body.installation_id,
    )
    return InstallationTokenResponse(token=token.token, expires_at=token.expires_at)


async def installations(
    token: SessionTokenDep,
    session: SessionDep,
    services: ServicesDep,
) -> InstallationsResponse:
    """Re-fetch the user's installations and cache them on the session."""
    try:
        fresh = await services.github.get_user_installations(session.access_token)
    except Exception as e:
        logger.error("Error refreshing installations: {}", e)
        raise to_service_error(e) from e

    try:
        await services.sessions.update_session_installations(token, fresh)
    except SessionNotFoundError as e:
        raise AuthServiceError(
            ErrorCode.UNAUTHORIZED, "Session no longer exists", status=401
        ) from e

    logger.info("User {} has {} installations", session.user_id, len(fresh))
    return InstallationsResponse(installations=fresh)


async def logout(token: SessionTokenDep, services: ServicesDep) -> dict[str, bool]:
    """Delete the session (idempotent)."""
    await services.sessions.delete_session(token)
    log_security_event(SecurityEventType.SESSION_DELETED)
    return {"success": True}


async def health() -> dict[str, str]:
    return {"status": "healthy", "service": "IssueDesk Auth", "version": __version__}


# -----------------------------------------------------------------------------
# Exception handlers
# -----------------------------------------------------------------------------
async def _handle_auth_error(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, AuthServiceError)
    return _error_response(exc)


async def _handle_validation_error(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, RequestValidationError)
    details = ", ".join(
        f"{'.'.join(str(part) for part in err['loc'][1:]) or 'body'}: {err['msg']}"
        for err in exc.errors()
    )
    log_security_event(SecurityEventType.INVALID_REQUEST, path=request.url.path)
    return _error_response(
        AuthServiceError(ErrorCode.INVALID_REQUEST, f"Invalid request: {details}", status=400)
    )


async def _handle_http_error(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, StarletteHTTPException)
    if exc.status_code in (404, 405):
        return JSONResponse(
            {"error": ErrorCode.NOT_FOUND.value, "message": "Endpoint not found"},
            status_code=404,
        )
    return JSONResponse(
        {"error": ErrorCode.UNKNOWN.value, "message": str(exc.detail), "retryable": False},
        status_code=exc.status_code,
    )


async def _handle_unexpected(request: Request, exc: Exception) -> Response:
    logger.exception("Unhandled error on {}", request.url.path)
    return _error_response(
        AuthServiceError(
            ErrorCode.INTERNAL_ERROR, "Internal server error", status=500, retryable=True
        )
    )


# -----------------------------------------------------------------------------
# Factory
# -----------------------------------------------------------------------------
def create_app(
    settings: Settings | None = None,
    *,
    kv: KeyValueStore | None = None,
    http_client: httpx.AsyncClient | None = None,
    github: GitHubAppClient | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    """Build the auth service application.

    Args:
        settings: Settings (defaults to get_settings())
        kv: Session and rate-limit storage (in-memory if omitted)
        http_client: httpx client for GitHub calls
        github: Prebuilt GitHub client (overrides http_client)
        clock: Time source shared by sessions and the rate limiter

    Returns:
        The FastAPI application
    """
    settings = settings or get_settings()
    config = settings.auth
    clock = clock or (lambda: datetime.now(UTC))
    kv = kv or MemoryKeyValueStore(clock=clock)
    owns_github = github is None
    github = github or GitHubAppClient(
        config, http_client=http_client, retry_config=settings.retry, clock=clock
    )
    sessions = SessionStore(kv, ttl=settings.session.ttl, clock=clock)
    rate_limiter = SlidingWindowRateLimiter(kv, settings.edge_rate_limit, clock=clock)
    authenticator = DeviceFlowAuthenticator(
        github,
        sessions,
        rate_limiter,
        prefer_installation_identity=config.prefer_installation_identity,
        clock=clock,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting IssueDesk auth service")
        yield
        logger.info("Stopping IssueDesk auth service")
        if owns_github:
            await github.close()

    app = FastAPI(
        title="IssueDesk Auth",
        description="GitHub App device-flow login, sessions and installation tokens",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = AuthServices(
        config=config,
        github=github,
        sessions=sessions,
        rate_limiter=rate_limiter,
        authenticator=authenticator,
        clock=clock,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.cors_origin],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", SESSION_HEADER],
        max_age=86400,
    )
    # Added last so it wraps everything, preflights included
    app.add_middleware(ConfigurationCheckMiddleware, config=config)

    app.add_exception_handler(AuthServiceError, _handle_auth_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, _handle_http_error)
    app.add_exception_handler(Exception, _handle_unexpected)

    app.add_api_route("/auth/device", device, methods=["POST"])
    app.add_api_route("/auth/poll", poll, methods=["POST"])
    app.add_api_route("/auth/installation-token", installation_token, methods=["POST"])
    app.add_api_route("/auth/refresh-installation-token", installation_token, methods=["POST"])
    app.add_api_route("/auth/installations", installations, methods=["POST"])
    app.add_api_route("/auth/logout", logout, methods=["POST"])
    app.add_api_route("/health", health, methods=["GET"])

    return app
