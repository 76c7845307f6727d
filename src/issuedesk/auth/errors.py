"""Error taxonomy of the authentication service.

Every failing endpoint answers with ``{error, message, retryable}``.
GitHub failures are classified by map_github_error().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import httpx

from issuedesk.github.retry import is_default_retryable_error


class ErrorCode(StrEnum):
    """Error codes used throughout the auth service."""

    # Configuration
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Request validation
    INVALID_REQUEST = "INVALID_REQUEST"
    MISSING_PARAMETER = "MISSING_PARAMETER"

    # Authentication
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_SESSION_TOKEN = "INVALID_SESSION_TOKEN"
    SESSION_EXPIRED = "SESSION_EXPIRED"

    # GitHub
    GITHUB_API_ERROR = "GITHUB_API_ERROR"
    DEVICE_FLOW_ERROR = "DEVICE_FLOW_ERROR"
    ACCESS_DENIED = "ACCESS_DENIED"
    AUTHORIZATION_PENDING = "AUTHORIZATION_PENDING"
    SLOW_DOWN = "SLOW_DOWN"
    EXPIRED_TOKEN = "EXPIRED_TOKEN"

    # Throttling
    RATE_LIMIT = "RATE_LIMIT"

    # Network
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"

    # Generic
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNKNOWN = "UNKNOWN"


class AuthServiceError(Exception):
    """Error surfaced to auth service callers with an HTTP status."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        status: int = 400,
        retryable: bool = False,
        extra: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
        self.retryable = retryable
        self.extra = extra or {}
        self.headers = headers or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
            **self.extra,
        }


class GitHubOAuthError(Exception):
    """GitHub answered with an OAuth error payload (``{"error": ...}``)."""

    def __init__(self, error: str, description: str | None = None) -> None:
        super().__init__(description or error)
        self.error = error
        self.description = description


class GitHubHTTPError(Exception):
    """Non-2xx response from a GitHub endpoint."""

    def __init__(self, status: int, message: str, body: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body or {}


@dataclass(frozen=True)
class MappedError:
    """Classification of an upstream failure."""

    code: ErrorCode
    message: str
    retryable: bool
    extra: dict[str, Any] = field(default_factory=dict)


# OAuth device-flow error -> (code, message, retryable, HTTP status at the boundary)
_DEVICE_FLOW_ERRORS: dict[str, tuple[ErrorCode, str, bool, int]] = {
    "authorization_pending": (
        ErrorCode.AUTHORIZATION_PENDING,
        "User has not yet authorized the device",
        True,
        202,
    ),
    "slow_down": (
        ErrorCode.SLOW_DOWN,
        "Polling too frequently. Please slow down.",
        True,
        429,
    ),
    "expired_token": (ErrorCode.EXPIRED_TOKEN, "Device code has expired", False, 410),
    "access_denied": (ErrorCode.ACCESS_DENIED, "User denied access", False, 403),
}

_CODE_STATUS: dict[ErrorCode, int] = {
    code: status for code, _, _, status in _DEVICE_FLOW_ERRORS.values()
}


def map_github_error(error: BaseException) -> MappedError:
    """Classify a failure talking to GitHub.

    OAuth error payloads map to their dedicated codes; HTTP 429 and 5xx
    and network failures are retryable; anything else is UNKNOWN.
    """
    if isinstance(error, GitHubOAuthError):
        known = _DEVICE_FLOW_ERRORS.get(error.error)
        if known is not None:
            code, message, retryable, _ = known
            return MappedError(code, message, retryable)
        return MappedError(
            ErrorCode.GITHUB_API_ERROR,
            error.description or "GitHub API error",
            False,
        )

    if isinstance(error, GitHubHTTPError):
        if error.status == 429:
            return MappedError(ErrorCode.RATE_LIMIT, "Rate limit exceeded", True)
        if error.status >= 500:
            return MappedError(ErrorCode.GITHUB_API_ERROR, "GitHub service unavailable", True)
        return MappedError(ErrorCode.GITHUB_API_ERROR, str(error), False)

    if isinstance(error, httpx.TimeoutException):
        return MappedError(ErrorCode.TIMEOUT, "Timed out connecting to GitHub", True)

    if isinstance(error, httpx.TransportError) or is_default_retryable_error(error):
        return MappedError(ErrorCode.NETWORK_ERROR, "Network error connecting to GitHub", True)

    return MappedError(ErrorCode.UNKNOWN, str(error) or "Unknown error", False)


def status_for(code: ErrorCode, default: int = 500) -> int:
    """HTTP status used for a mapped code (device-flow codes have their own)."""
    return _CODE_STATUS.get(code, default)


def to_service_error(error: BaseException, *, default_status: int = 500) -> AuthServiceError:
    """Wrap an upstream failure as an AuthServiceError."""
    mapped = map_github_error(error)
    return AuthServiceError(
        mapped.code,
        mapped.message,
        status=status_for(mapped.code, default_status),
        retryable=mapped.retryable,
        extra=mapped.extra,
    )
