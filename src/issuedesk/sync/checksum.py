"""Content checksums for conflict detection."""

import hashlib


def body_checksum(body: str | None) -> str:
    """SHA-256 hex digest of an issue body ("" for a missing body)."""
    if body is None:
        return ""
    return hashlib.sha256(body.encode("utf-8")).hexdigest()
