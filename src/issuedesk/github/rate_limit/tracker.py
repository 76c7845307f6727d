"""Rate limit tracking for GitHub API.

Tracks the quota passively from response headers (zero API cost) and
warns when it runs low.

Key Features:
- Header parsing tolerant of casing and list values
- Configurable warning threshold
- Single replaceable warning callback
- Injectable clock for tests
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from issuedesk.config import RateLimitConfig, get_settings
from issuedesk.logging import get_logger

from .schemas import RateLimitState

logger = get_logger(__name__)

WarningCallback = Callable[[RateLimitState], None]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RateLimitTracker:
    """Tracks GitHub API rate limits from response headers.

    Construct one per client and pass it in; there is no shared instance.

    Usage:
        tracker = RateLimitTracker()
        tracker.on_warning(lambda state: print(state.remaining))

        async with GitHubClient(tracker=tracker) as client:
            await client.list_issues("owner", "repo")

        if not tracker.can_make_request():
            wait = tracker.get_time_until_reset()
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the tracker.

        Args:
            config: Optional rate limit configuration (uses settings if not provided)
            clock: Returns the current UTC time (defaults to the system clock)
        """
        self._config = config or get_settings().rate_limit
        self._clock = clock or _utcnow
        self._state: RateLimitState | None = None
        self._callback: WarningCallback | None = None

    @property
    def current(self) -> RateLimitState | None:
        """Latest parsed state (None if no response tracked yet)."""
        return self._state

    @property
    def warning_threshold(self) -> float:
        return self._config.warning_threshold

    def update(self, headers: Mapping[str, Any]) -> RateLimitState | None:
        """Update state from response headers.

        Headers lacking any required rate limit field leave the state
        untouched.

        Args:
            headers: HTTP response headers

        Returns:
            The new state, or None if the headers could not be parsed
        """
        state = RateLimitState.parse_headers(headers)
        if state is None:
            return None

        self._state = state
        ratio = state.remaining_ratio
        if 0 < ratio <= self._config.warning_threshold:
            logger.warning(
                "GitHub rate limit low: {}/{} remaining, resets at {}",
                state.remaining,
                state.limit,
                state.reset_at.isoformat(),
            )
            self._fire_warning(state)
        return state

    def _fire_warning(self, state: RateLimitState) -> None:
        if self._callback is None:
            return
        try:
            self._callback(state)
        except Exception as e:
            logger.error("Rate limit warning callback failed: {}", e)

    def on_warning(self, callback: WarningCallback | None) -> None:
        """Register the warning callback, replacing any previous one.

        Args:
            callback: Called with the new state when the quota runs low,
                or None to unregister
        """
        self._callback = callback

    def can_make_request(self) -> bool:
        """Check whether a request may be sent now.

        Returns:
            True with no recorded state, with quota left, or once the
            reset time has passed
        """
        if self._state is None:
            return True
        if self._state.remaining > 0:
            return True
        return self._clock() >= self._state.reset_at

    def is_exhausted(self) -> bool:
        """Whether the quota is used up and has not reset yet."""
        return not self.can_make_request()

    def get_time_until_reset(self) -> float:
        """Seconds until the window resets (0 if unknown or already past)."""
        if self._state is None:
            return 0.0
        delta = (self._state.reset_at - self._clock()).total_seconds()
        return max(0.0, delta)

    def get_remaining_percentage(self) -> float:
        """Percentage of quota remaining (100.0 when unknown)."""
        if self._state is None:
            return 100.0
        return self._state.remaining_ratio * 100

    def reset(self) -> None:
        """Forget the tracked state (the callback stays registered)."""
        self._state = None

    def to_dict(self) -> dict[str, Any]:
        """Export current state as dictionary (for logging/CLI output)."""
        if self._state is None:
            return {"tracked": False}
        return {
            "tracked": True,
            "limit": self._state.limit,
            "remaining": self._state.remaining,
            "used": self._state.used,
            "resource": self._state.resource,
            "reset_at": self._state.reset_at.isoformat(),
            "seconds_until_reset": round(self.get_time_until_reset()),
            "remaining_percent": round(self.get_remaining_percentage(), 2),
        }
