"""Audit logging of authentication events."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from issuedesk.logging import get_logger

logger = get_logger("issuedesk.security")


class SecurityEventType(StrEnum):
    AUTH_ATTEMPT = "AUTH_ATTEMPT"
    AUTH_SUCCESS = "AUTH_SUCCESS"
    AUTH_FAILURE = "AUTH_FAILURE"
    TOKEN_GENERATED = "TOKEN_GENERATED"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    SESSION_CREATED = "SESSION_CREATED"
    SESSION_DELETED = "SESSION_DELETED"
    RATE_LIMIT_HIT = "RATE_LIMIT_HIT"
    INVALID_REQUEST = "INVALID_REQUEST"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


_ERROR_EVENTS = {
    SecurityEventType.AUTH_FAILURE,
    SecurityEventType.RATE_LIMIT_HIT,
    SecurityEventType.INVALID_REQUEST,
    SecurityEventType.CONFIGURATION_ERROR,
}


def log_security_event(
    event: SecurityEventType,
    *,
    user_id: int | None = None,
    installation_id: int | None = None,
    **details: Any,
) -> None:
    """Log an audit event; failures at ERROR, everything else at INFO."""
    bound = logger.bind(
        event=event.value,
        user_id=user_id,
        installation_id=installation_id,
        **details,
    )
    level = "ERROR" if event in _ERROR_EVENTS else "INFO"
    bound.log(
        level,
        "[Security] {} | user={} | {}",
        event.value,
        user_id if user_id is not None else "N/A",
        details or {},
    )
