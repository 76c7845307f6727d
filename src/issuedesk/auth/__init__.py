"""Authentication service: GitHub App device flow, sessions and tokens."""

from .device_flow import DeviceFlowAuthenticator, DeviceFlowResult, DeviceFlowState
from .errors import AuthServiceError, ErrorCode, map_github_error
from .github import GitHubAppClient
from .jwt import create_app_jwt
from .kv import KeyValueStore, MemoryKeyValueStore, SqlKeyValueStore
from .rate_limit import RateLimitResult, SlidingWindowRateLimiter
from .sessions import (
    SessionNotFoundError,
    SessionStore,
    generate_session_token,
    is_valid_session_token_format,
)

__all__ = [
    "AuthServiceError",
    "DeviceFlowAuthenticator",
    "DeviceFlowResult",
    "DeviceFlowState",
    "ErrorCode",
    "GitHubAppClient",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "RateLimitResult",
    "SessionNotFoundError",
    "SessionStore",
    "SlidingWindowRateLimiter",
    "SqlKeyValueStore",
    "create_app_jwt",
    "generate_session_token",
    "is_valid_session_token_format",
    "map_github_error",
]
