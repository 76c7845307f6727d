"""GitHub App JWT signing."""

from __future__ import annotations

from datetime import UTC, datetime

import jwt

# GitHub rejects App JWTs living longer than 10 minutes
JWT_LIFETIME_SECONDS = 600
# Backdated to tolerate clock drift
JWT_CLOCK_SKEW_SECONDS = 60


def create_app_jwt(app_id: str, private_key: str, now: datetime | None = None) -> str:
    """Sign an RS256 JWT asserting the GitHub App identity.

    Args:
        app_id: GitHub App ID (the ``iss`` claim)
        private_key: PEM private key, PKCS#8 or PKCS#1
        now: Signing time (defaults to now)

    Returns:
        Encoded JWT
    """
    issued = int((now or datetime.now(UTC)).timestamp())
    payload = {
        "iat": issued - JWT_CLOCK_SKEW_SECONDS,
        "exp": issued + JWT_LIFETIME_SECONDS,
        "iss": str(app_id),
    }
    return jwt.encode(payload, private_key, algorithm="RS256")
