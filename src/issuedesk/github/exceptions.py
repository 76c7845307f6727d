"""GitHub client exceptions."""

from datetime import datetime


class GitHubClientError(Exception):
    """Base exception for GitHub client errors.

    Carries the HTTP status of the failed response when there was one.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class GitHubAuthenticationError(GitHubClientError):
    """Raised when authentication fails (401)."""

    pass


class GitHubNotFoundError(GitHubClientError):
    """Raised when a resource is not found (404)."""

    pass


class GitHubRetryableError(GitHubClientError):
    """Base class for errors worth retrying.

    The retry executor retries these within a call; the sync engine
    keeps the queue entry and schedules it for a later drain.
    """

    pass


class GitHubRateLimitError(GitHubRetryableError):
    """Raised when rate limit is exceeded (429, or 403 with zero remaining)."""

    def __init__(
        self,
        message: str,
        status: int | None = 429,
        reset_at: datetime | None = None,
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message, status)
        self.reset_at = reset_at
        self.retry_after = retry_after


class GitHubServerError(GitHubRetryableError):
    """Raised on 5xx responses."""

    pass
