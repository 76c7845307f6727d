"""Fixtures shared by the sync engine tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from issuedesk.config import RetryConfig, SyncConfig
from issuedesk.github import GitHubClient
from issuedesk.sync import SyncEngine


@pytest.fixture
def github() -> MagicMock:
    """GitHubClient double; async methods are AsyncMocks, no tracker."""
    client = MagicMock(spec=GitHubClient)
    client.tracker = None
    client.list_labels.return_value = []
    client.list_issues.return_value = []
    return client


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def engine(db_session, github, clock, sleep) -> SyncEngine:
    return SyncEngine(
        db_session,
        github,
        "octo",
        "desk",
        config=SyncConfig(retry_backoff_base_seconds=30, drain_batch_size=100),
        retry_config=RetryConfig(max_attempts=2, initial_delay_seconds=1.0),
        sleep=sleep,
        clock=clock,
    )
