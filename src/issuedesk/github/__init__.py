"""GitHub API client module.

This module provides:
- GitHubClient: Async GitHub API client with rate limit tracking
- Rate limit tracking: RateLimitTracker, RateLimitState
- Retry executor: retry, is_default_retryable_error
"""

from .client import GitHubClient
from .exceptions import (
    GitHubAuthenticationError,
    GitHubClientError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubRetryableError,
    GitHubServerError,
)
from .rate_limit import RateLimitState, RateLimitTracker
from .retry import is_default_retryable_error, retry, retry_with_config

__all__ = [
    # Client
    "GitHubClient",
    # Exceptions
    "GitHubAuthenticationError",
    "GitHubClientError",
    "GitHubNotFoundError",
    "GitHubRateLimitError",
    "GitHubRetryableError",
    "GitHubServerError",
    # Rate limit tracking
    "RateLimitState",
    "RateLimitTracker",
    # Retry
    "is_default_retryable_error",
    "retry",
    "retry_with_config",
]
