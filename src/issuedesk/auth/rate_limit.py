"""Per-identifier sliding-window request throttle.

Timestamps of recent requests are stored under ``rate-limit:<id>``
with a TTL equal to the window. The read-modify-write is not atomic,
so concurrent requests may slightly undercount.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from issuedesk.config import EdgeRateLimitConfig
from issuedesk.logging import get_logger

from .errors import AuthServiceError, ErrorCode
from .kv import KeyValueStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one rate limit check."""

    allowed: bool
    remaining: int
    reset_at: datetime
    limit: int

    def to_error(self, now: datetime) -> AuthServiceError:
        """HTTP 429 error carrying the standard rate limit headers."""
        return AuthServiceError(
            ErrorCode.RATE_LIMIT,
            f"Rate limit exceeded. Try again after {self.reset_at.isoformat()}",
            status=429,
            retryable=True,
            extra={"reset_at": self.reset_at.isoformat()},
            headers={
                "X-RateLimit-Limit": str(self.limit),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(int(self.reset_at.timestamp())),
                "Retry-After": str(max(1, int((self.reset_at - now).total_seconds()))),
            },
        )


def _key(identifier: str) -> str:
    return f"rate-limit:{identifier}"


class SlidingWindowRateLimiter:
    """Allow at most ``max_requests`` per identifier in any window."""

    def __init__(
        self,
        kv: KeyValueStore,
        config: EdgeRateLimitConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._kv = kv
        self._config = config or EdgeRateLimitConfig()
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def window(self) -> timedelta:
        return timedelta(seconds=self._config.window_seconds)

    async def check(self, identifier: str) -> RateLimitResult:
        """Record a request for ``identifier`` unless the window is full.

        Returns:
            allowed/remaining/reset_at for this request
        """
        now = self._clock()
        window = self.window
        cap = self._config.max_requests

        raw = await self._kv.get(_key(identifier))
        stamps = [float(ts) for ts in json.loads(raw)] if raw else []
        cutoff = (now - window).timestamp()
        stamps = [ts for ts in stamps if ts > cutoff]

        if len(stamps) >= cap:
            oldest = datetime.fromtimestamp(min(stamps), tz=UTC)
            logger.warning("Rate limit exceeded for {}", identifier)
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_at=oldest + window,
                limit=cap,
            )

        stamps.append(now.timestamp())
        await self._kv.put(_key(identifier), json.dumps(stamps), ttl=window)
        return RateLimitResult(
            allowed=True,
            remaining=cap - len(stamps),
            reset_at=now + window,
            limit=cap,
        )

    async def enforce(self, identifier: str) -> RateLimitResult:
        """Like check(), but raise a 429 AuthServiceError when denied."""
        result = await self.check(identifier)
        if not result.allowed:
            raise result.to_error(self._clock())
        return result

    async def clear(self, identifier: str) -> None:
        """Forget the window of ``identifier``."""
        await self._kv.delete(_key(identifier))
