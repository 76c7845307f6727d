"""Pytest configuration and shared fixtures.

Usage Guide:
- For ORM model tests: import factories from tests.factories
- For schema validation tests: use dict fixtures (sample_issue_create, etc.)
- For GitHub API tests: import response factories from tests.factories
"""

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from issuedesk.db.engine import _enable_sqlite_foreign_keys
from issuedesk.db.models import Base

# -----------------------------------------------------------------------------
# Test Timeline Constants
#
# Define a consistent "test epoch" for deterministic date matching across tests.
# All hardcoded dates should reference these constants for consistency.
# -----------------------------------------------------------------------------

# Base dates (datetime objects for Pydantic/ORM)
JAN_10 = datetime(2024, 1, 10, 9, 0, 0, tzinfo=UTC)   # Issue opened on GitHub
JAN_12 = datetime(2024, 1, 12, 16, 0, 0, tzinfo=UTC)  # Last synced remote update
JAN_15 = datetime(2024, 1, 15, 10, 0, 0, tzinfo=UTC)  # Local edit / drain time
JAN_16 = datetime(2024, 1, 16, 14, 0, 0, tzinfo=UTC)  # Concurrent remote edit
JAN_20 = datetime(2024, 1, 20, 16, 0, 0, tzinfo=UTC)  # Far future retry time

# ISO 8601 strings (for GitHub API mocks)
JAN_10_ISO = "2024-01-10T09:00:00Z"
JAN_12_ISO = "2024-01-12T16:00:00Z"
JAN_15_ISO = "2024-01-15T10:00:00Z"
JAN_16_ISO = "2024-01-16T14:00:00Z"
JAN_20_ISO = "2024-01-20T16:00:00Z"


# -----------------------------------------------------------------------------
# Database Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
async def test_engine():
    """Create an in-memory SQLite engine for tests.

    Each test gets a fresh database with all tables created and
    foreign keys enforced (cascades on issue_labels and sync_conflicts).
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )
    event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(session_factory):
    """Create an async session with auto-rollback.

    Changes are rolled back after each test to ensure isolation.
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


# -----------------------------------------------------------------------------
# Sample Data Fixtures (Dict-based)
#
# Use these for testing Pydantic schema parsing/validation.
# For ORM model tests, prefer factory functions (make_issue, etc.)
# -----------------------------------------------------------------------------
@pytest.fixture
def sample_issue_create() -> dict[str, Any]:
    """Input for a new local issue."""
    return {
        "title": "Crash on start",
        "body": "The app crashes when opened offline.",
        "labels": ["bug"],
    }


@pytest.fixture
def sample_label_create() -> dict[str, Any]:
    """Input for a new local label."""
    return {
        "name": "needs-triage",
        "color": "#FBCA04",
        "description": "Waiting for a maintainer",
    }


# -----------------------------------------------------------------------------
# Utility Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def utc_now() -> datetime:
    """Current UTC datetime for tests."""
    return datetime.now(UTC)


class FakeClock:
    """Manually advanced clock for time-dependent tests."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    """Clock frozen at JAN_15 until advanced."""
    return FakeClock(JAN_15)
