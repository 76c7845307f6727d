"""Tests for GitHubClient.

Tests cover:
- Pagination and pull request filtering in list_issues
- Field selection for issue and label writes
- Error translation (401, 403/429 rate limits, 404/410, 5xx, network)
- Rate limit header tracking
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from githubkit.exception import RequestError, RequestFailed

from issuedesk.config import RateLimitConfig
from issuedesk.github.client import GitHubClient
from issuedesk.github.exceptions import (
    GitHubAuthenticationError,
    GitHubClientError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubRetryableError,
    GitHubServerError,
)
from issuedesk.github.rate_limit import RateLimitTracker
from tests.conftest import JAN_15, JAN_16_ISO
from tests.factories import make_github_issue, make_github_label

RESET_TS = int(JAN_15.timestamp()) + 3600


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def make_response(data, headers=None):
    """MagicMock shaped like a githubkit Response."""
    response = MagicMock()
    response.headers = headers or {}
    if isinstance(data, list):
        items = []
        for item in data:
            parsed = MagicMock()
            parsed.model_dump.return_value = item
            items.append(parsed)
        response.parsed_data = items
    else:
        response.parsed_data.model_dump.return_value = data
    return response


def make_failure(status, headers=None):
    """RequestFailed carrying a response with the given status."""
    response = MagicMock()
    response.status_code = status
    response.headers = headers or {}
    return RequestFailed(response)


def rate_headers(remaining: int, limit: int = 5000) -> dict[str, str]:
    return {
        "x-ratelimit-limit": str(limit),
        "x-ratelimit-remaining": str(remaining),
        "x-ratelimit-reset": str(RESET_TS),
        "x-ratelimit-resource": "core",
    }


# -----------------------------------------------------------------------------
# Test Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def mock_github():
    """Create a mock githubkit GitHub client."""
    with patch("issuedesk.github.client.GitHub") as mock_class:
        mock_instance = MagicMock()
        mock_class.return_value = mock_instance
        yield mock_instance


@pytest.fixture
def tracker(clock) -> RateLimitTracker:
    return RateLimitTracker(RateLimitConfig(warning_threshold=0.2), clock=clock)


@pytest.fixture
def client(mock_github, tracker) -> GitHubClient:
    return GitHubClient(token="test-token", tracker=tracker)


# -----------------------------------------------------------------------------
# Test: Initialization
# -----------------------------------------------------------------------------
class TestGitHubClientInit:
    """Tests for GitHubClient initialization."""

    def test_init_with_token(self):
        """Client initializes with provided token."""
        with patch("issuedesk.github.client.get_settings") as mock_settings:
            mock_settings.return_value.github_token = ""
            client = GitHubClient(token="test-token")
            assert client._token == "test-token"

    def test_init_falls_back_to_settings(self):
        with patch("issuedesk.github.client.get_settings") as mock_settings:
            mock_settings.return_value.github_token = "settings-token"
            client = GitHubClient()
            assert client._token == "settings-token"

    def test_init_without_token_raises(self):
        """Client raises error when no token available."""
        with patch("issuedesk.github.client.get_settings") as mock_settings:
            mock_settings.return_value.github_token = ""
            with pytest.raises(GitHubAuthenticationError):
                GitHubClient(token=None)

    def test_tracker_property(self, client, tracker):
        assert client.tracker is tracker

    def test_githubkit_retries_disabled(self):
        with patch("issuedesk.github.client.GitHub") as mock_class:
            client = GitHubClient(token="test-token")
            _ = client._github
            mock_class.assert_called_once_with("test-token", auto_retry=False)


# -----------------------------------------------------------------------------
# Test: Issues
# -----------------------------------------------------------------------------
class TestIssues:
    """Tests for issue reads and writes."""

    async def test_list_issues_paginates_and_skips_pull_requests(self, client, mock_github):
        page1 = [
            make_github_issue(number=1),
            make_github_issue(number=2, pull_request={"url": "https://x/pulls/2"}),
        ]
        page2 = [make_github_issue(number=3)]
        mock_github.rest.issues.async_list_for_repo = AsyncMock(
            side_effect=[make_response(page1), make_response(page2)]
        )

        issues = await client.list_issues("octo", "desk", per_page=2)

        assert [issue.number for issue in issues] == [1, 3]
        assert mock_github.rest.issues.async_list_for_repo.await_count == 2
        last_call = mock_github.rest.issues.async_list_for_repo.await_args
        assert last_call.kwargs["page"] == 2

    async def test_list_issues_passes_filters(self, client, mock_github):
        mock_github.rest.issues.async_list_for_repo = AsyncMock(return_value=make_response([]))
        since = datetime(2024, 1, 12, tzinfo=UTC)

        await client.list_issues("octo", "desk", state="open", since=since)

        mock_github.rest.issues.async_list_for_repo.assert_awaited_once_with(
            "octo", "desk", page=1, state="open", per_page=100, since=since
        )

    async def test_get_issue(self, client, mock_github):
        mock_github.rest.issues.async_get = AsyncMock(
            return_value=make_response(make_github_issue(number=42, updated_at=JAN_16_ISO))
        )

        issue = await client.get_issue("octo", "desk", 42)

        assert issue.number == 42
        assert issue.updated_at.day == 16
        mock_github.rest.issues.async_get.assert_awaited_once_with("octo", "desk", 42)

    @pytest.mark.parametrize("status", [404, 410])
    async def test_get_issue_not_found(self, client, mock_github, status):
        mock_github.rest.issues.async_get = AsyncMock(side_effect=make_failure(status))

        with pytest.raises(GitHubNotFoundError) as exc_info:
            await client.get_issue("octo", "desk", 99)

        assert "#99" in str(exc_info.value)
        assert "octo/desk" in str(exc_info.value)
        assert exc_info.value.status == status

    async def test_create_issue(self, client, mock_github):
        mock_github.rest.issues.async_create = AsyncMock(
            return_value=make_response(make_github_issue(number=7, title="New"))
        )

        issue = await client.create_issue(
            "octo", "desk", title="New", body="Body", labels=["bug"]
        )

        assert issue.number == 7
        mock_github.rest.issues.async_create.assert_awaited_once_with(
            "octo", "desk", data={"title": "New", "body": "Body", "labels": ["bug"]}
        )

    async def test_create_issue_without_labels(self, client, mock_github):
        mock_github.rest.issues.async_create = AsyncMock(
            return_value=make_response(make_github_issue(number=7))
        )

        await client.create_issue("octo", "desk", title="New", labels=[])

        data = mock_github.rest.issues.async_create.await_args.kwargs["data"]
        assert data == {"title": "New", "body": None}

    async def test_update_issue_sends_only_given_fields(self, client, mock_github):
        mock_github.rest.issues.async_update = AsyncMock(
            return_value=make_response(make_github_issue(number=42))
        )

        await client.update_issue("octo", "desk", 42, body="", labels=[])

        mock_github.rest.issues.async_update.assert_awaited_once_with(
            "octo", "desk", 42, data={"body": "", "labels": []}
        )

    async def test_close_issue(self, client, mock_github):
        mock_github.rest.issues.async_update = AsyncMock(
            return_value=make_response(make_github_issue(number=42, state="closed"))
        )

        issue = await client.close_issue("octo", "desk", 42)

        assert issue.state == "closed"
        data = mock_github.rest.issues.async_update.await_args.kwargs["data"]
        assert data == {"state": "closed"}


# -----------------------------------------------------------------------------
# Test: Labels
# -----------------------------------------------------------------------------
class TestLabels:
    """Tests for label reads and writes."""

    async def test_list_labels(self, client, mock_github):
        mock_github.rest.issues.async_list_labels_for_repo = AsyncMock(
            return_value=make_response(
                [make_github_label(name="bug"), make_github_label(id=2, name="ui")]
            )
        )

        labels = await client.list_labels("octo", "desk")

        assert [label.name for label in labels] == ["bug", "ui"]

    async def test_create_label(self, client, mock_github):
        mock_github.rest.issues.async_create_label = AsyncMock(
            return_value=make_response(make_github_label(name="wip", color="cccccc"))
        )

        label = await client.create_label("octo", "desk", name="wip", color="cccccc")

        assert label.name == "wip"
        mock_github.rest.issues.async_create_label.assert_awaited_once_with(
            "octo", "desk", data={"name": "wip", "color": "cccccc"}
        )

    async def test_update_label_renames(self, client, mock_github):
        mock_github.rest.issues.async_update_label = AsyncMock(
            return_value=make_response(make_github_label(name="defect"))
        )

        await client.update_label("octo", "desk", "bug", new_name="defect", color="ee0701")

        mock_github.rest.issues.async_update_label.assert_awaited_once_with(
            "octo", "desk", "bug", data={"new_name": "defect", "color": "ee0701"}
        )

    async def test_update_label_same_name_is_not_a_rename(self, client, mock_github):
        mock_github.rest.issues.async_update_label = AsyncMock(
            return_value=make_response(make_github_label(name="bug"))
        )

        await client.update_label("octo", "desk", "bug", new_name="bug", description="Broken")

        data = mock_github.rest.issues.async_update_label.await_args.kwargs["data"]
        assert data == {"description": "Broken"}

    async def test_delete_label_not_found(self, client, mock_github):
        mock_github.rest.issues.async_delete_label = AsyncMock(side_effect=make_failure(404))

        with pytest.raises(GitHubNotFoundError) as exc_info:
            await client.delete_label("octo", "desk", "gone")

        assert "'gone'" in str(exc_info.value)


# -----------------------------------------------------------------------------
# Test: Error Translation
# -----------------------------------------------------------------------------
class TestErrorTranslation:
    """Tests for mapping githubkit failures to client exceptions."""

    async def test_401(self, client, mock_github):
        mock_github.rest.issues.async_create = AsyncMock(side_effect=make_failure(401))

        with pytest.raises(GitHubAuthenticationError):
            await client.create_issue("octo", "desk", title="x")

    async def test_403_with_exhausted_quota(self, client, mock_github):
        mock_github.rest.issues.async_create = AsyncMock(
            side_effect=make_failure(403, rate_headers(remaining=0))
        )

        with pytest.raises(GitHubRateLimitError) as exc_info:
            await client.create_issue("octo", "desk", title="x")

        assert exc_info.value.status == 403
        assert exc_info.value.reset_at == datetime.fromtimestamp(RESET_TS, tz=UTC)
        assert exc_info.value.retry_after is None

    async def test_429_with_retry_after(self, client, mock_github):
        mock_github.rest.issues.async_create = AsyncMock(
            side_effect=make_failure(429, {"retry-after": "30"})
        )

        with pytest.raises(GitHubRateLimitError) as exc_info:
            await client.create_issue("octo", "desk", title="x")

        assert exc_info.value.retry_after == 30
        assert exc_info.value.reset_at is None

    @pytest.mark.parametrize("reset", ["soon", "1705312800.5", " "])
    async def test_429_with_malformed_reset_header(self, client, mock_github, reset):
        mock_github.rest.issues.async_create = AsyncMock(
            side_effect=make_failure(429, {"x-ratelimit-reset": reset, "retry-after": "30"})
        )

        with pytest.raises(GitHubRateLimitError) as exc_info:
            await client.create_issue("octo", "desk", title="x")

        assert exc_info.value.reset_at is None
        assert exc_info.value.retry_after == 30

    async def test_403_without_rate_limit_is_forbidden(self, client, mock_github):
        mock_github.rest.issues.async_create = AsyncMock(
            side_effect=make_failure(403, rate_headers(remaining=4000))
        )

        with pytest.raises(GitHubClientError) as exc_info:
            await client.create_issue("octo", "desk", title="x")

        assert not isinstance(exc_info.value, GitHubRetryableError)
        assert "forbidden" in str(exc_info.value)

    async def test_5xx(self, client, mock_github):
        mock_github.rest.issues.async_create = AsyncMock(side_effect=make_failure(502))

        with pytest.raises(GitHubServerError) as exc_info:
            await client.create_issue("octo", "desk", title="x")

        assert exc_info.value.status == 502

    async def test_422_is_plain_client_error(self, client, mock_github):
        mock_github.rest.issues.async_create_label = AsyncMock(side_effect=make_failure(422))

        with pytest.raises(GitHubClientError) as exc_info:
            await client.create_label("octo", "desk", name="bug", color="d73a4a")

        assert type(exc_info.value) is GitHubClientError
        assert exc_info.value.status == 422

    async def test_network_error_is_retryable(self, client, mock_github):
        mock_github.rest.issues.async_get = AsyncMock(side_effect=RequestError("reset"))

        with pytest.raises(GitHubRetryableError) as exc_info:
            await client.get_issue("octo", "desk", 1)

        assert exc_info.value.status is None


# -----------------------------------------------------------------------------
# Test: Rate Limit Tracking
# -----------------------------------------------------------------------------
class TestRateLimitTracking:
    """Tests for feeding response headers to the tracker."""

    async def test_updates_tracker_from_response(self, client, mock_github, tracker):
        mock_github.rest.issues.async_get = AsyncMock(
            return_value=make_response(make_github_issue(), rate_headers(remaining=4999))
        )

        await client.get_issue("octo", "desk", 42)

        assert tracker.current is not None
        assert tracker.current.remaining == 4999
        assert tracker.current.limit == 5000

    async def test_updates_tracker_from_error_response(self, client, mock_github, tracker):
        mock_github.rest.issues.async_get = AsyncMock(
            side_effect=make_failure(403, rate_headers(remaining=0))
        )

        with pytest.raises(GitHubRateLimitError):
            await client.get_issue("octo", "desk", 42)

        assert tracker.is_exhausted()

    async def test_no_tracker_no_error(self, mock_github):
        mock_github.rest.issues.async_get = AsyncMock(
            return_value=make_response(make_github_issue(), rate_headers(remaining=1))
        )

        client = GitHubClient(token="test-token")
        issue = await client.get_issue("octo", "desk", 42)

        assert issue.number == 42

    async def test_get_rate_limit(self, client, mock_github):
        response = MagicMock()
        response.headers = rate_headers(remaining=4321)
        core = response.parsed_data.resources.core
        core.limit, core.remaining, core.used, core.reset = 5000, 4321, 679, RESET_TS
        mock_github.rest.rate_limit.async_get = AsyncMock(return_value=response)

        result = await client.get_rate_limit()

        assert result == {
            "limit": 5000,
            "remaining": 4321,
            "used": 679,
            "reset": datetime.fromtimestamp(RESET_TS, tz=UTC),
        }


# -----------------------------------------------------------------------------
# Test: Context Manager
# -----------------------------------------------------------------------------
class TestContextManager:
    """Tests for async context manager protocol."""

    async def test_context_manager_closes_on_exit(self, mock_github):
        client = GitHubClient(token="test-token")
        _ = client._github

        async with client as entered:
            assert entered is client

        assert client._client is None
