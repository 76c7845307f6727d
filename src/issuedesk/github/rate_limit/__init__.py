"""Rate limit tracking for the GitHub API."""

from .schemas import RateLimitState
from .tracker import RateLimitTracker, WarningCallback

__all__ = [
    "RateLimitState",
    "RateLimitTracker",
    "WarningCallback",
]
