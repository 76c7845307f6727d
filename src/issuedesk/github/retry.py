"""Exponential-backoff retry for outbound GitHub calls.

Usage:
    issue = await retry(lambda: client.get_issue("owner", "repo", 42))

Callers decide what is retryable; the default predicate covers network
failures, 429 and 5xx.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from issuedesk.config import RetryConfig
from issuedesk.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RetryPredicate = Callable[[BaseException], bool]
SleepFunc = Callable[[float], Awaitable[None]]

_NETWORK_MARKERS = ("network", "fetch", "timeout", "econnrefused", "enotfound", "connection")


def _status_of(error: BaseException) -> int | None:
    """Best-effort HTTP status of an error."""
    for attr in ("status", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    return None


def is_default_retryable_error(error: BaseException) -> bool:
    """Classify an error as transient.

    Retryable: transport failures, messages that look like network
    failures, HTTP 429 and HTTP 5xx.
    """
    if isinstance(error, httpx.TransportError):
        return True

    status = _status_of(error)
    if status is not None and (status == 429 or status >= 500):
        return True

    message = str(error).lower()
    return any(marker in message for marker in _NETWORK_MARKERS)


async def retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    backoff_multiplier: float = 2.0,
    is_retryable: RetryPredicate | None = None,
    sleep: SleepFunc = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or a non-retryable error occurs.

    Args:
        operation: Zero-argument coroutine factory
        max_attempts: Total attempts including the first
        initial_delay: Seconds to wait before the second attempt
        backoff_multiplier: Factor applied to the delay after each failure
        is_retryable: Error classifier (defaults to is_default_retryable_error)
        sleep: Awaitable sleep, replaceable in tests

    Returns:
        The operation's result

    Raises:
        The last error, once attempts run out or it is not retryable
    """
    predicate = is_retryable or is_default_retryable_error
    delay = initial_delay
    attempt = 1

    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_attempts or not predicate(e):
                raise
            logger.warning(
                "Attempt {}/{} failed ({}), retrying in {:.1f}s",
                attempt,
                max_attempts,
                e,
                delay,
            )
            await sleep(delay)
            delay *= backoff_multiplier
            attempt += 1


async def retry_with_config(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig,
    *,
    is_retryable: RetryPredicate | None = None,
    sleep: SleepFunc = asyncio.sleep,
) -> T:
    """Run ``retry`` with the attempts and delays from a RetryConfig."""
    return await retry(
        operation,
        max_attempts=config.max_attempts,
        initial_delay=config.initial_delay_seconds,
        backoff_multiplier=config.backoff_multiplier,
        is_retryable=is_retryable,
        sleep=sleep,
    )
