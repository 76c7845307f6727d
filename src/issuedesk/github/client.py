"""Async GitHub API client wrapper using githubkit.

This module provides a typed async interface to the GitHub REST API
for issue and label management with integrated rate limit tracking.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, Literal

from githubkit import GitHub
from githubkit.exception import RequestError, RequestFailed
from pydantic import ValidationError

from issuedesk.config import get_settings
from issuedesk.logging import get_logger
from issuedesk.schemas.github_api import GitHubIssue, GitHubLabel, GitHubUser

from .exceptions import (
    GitHubAuthenticationError,
    GitHubClientError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubRetryableError,
    GitHubServerError,
)
from .rate_limit import RateLimitTracker

logger = get_logger(__name__)

IssueStateFilter = Literal["open", "closed", "all"]


class GitHubClient:
    """Async GitHub API client for issues and labels.

    Usage:
        async with GitHubClient(tracker=tracker) as client:
            issues = await client.list_issues("octo", "desk")
            for issue in issues:
                print(issue.title)

    Or without context manager:
        client = GitHubClient()
        issue = await client.get_issue("octo", "desk", 42)
        await client.close()
    """

    def __init__(
        self,
        token: str | None = None,
        tracker: RateLimitTracker | None = None,
    ) -> None:
        """Initialize the GitHub client.

        Args:
            token: PAT or installation token. If not provided, uses
                GITHUB_TOKEN from settings.
            tracker: Optional RateLimitTracker updated from every response.

        Raises:
            GitHubAuthenticationError: If no token is available.
        """
        self._token = token or get_settings().github_token
        if not self._token:
            raise GitHubAuthenticationError(
                "GitHub token required. Set GITHUB_TOKEN environment variable."
            )
        self._client: GitHub[Any] | None = None
        self._tracker = tracker

    @property
    def _github(self) -> GitHub[Any]:
        """Get or create the githubkit client instance."""
        if self._client is None:
            # Retries are driven by issuedesk.github.retry, not githubkit
            self._client = GitHub(self._token, auto_retry=False)
        return self._client

    @property
    def tracker(self) -> RateLimitTracker | None:
        """Access the rate limit tracker (if configured)."""
        return self._tracker

    def _track(self, response: Any) -> None:
        """Feed response headers to the tracker."""
        if self._tracker is None:
            return
        headers = getattr(response, "headers", None)
        if headers is None:
            return
        self._tracker.update(dict(headers.items()) if hasattr(headers, "items") else headers)

    async def close(self) -> None:
        """Drop the underlying githubkit client."""
        if self._client is not None:
            self._client = None

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Rate Limit / User
    # -------------------------------------------------------------------------
    async def get_rate_limit(self) -> dict[str, int | datetime]:
        """Get current core rate limit status.

        Returns:
            Dict with 'limit', 'remaining', 'reset' (datetime), 'used' keys.
        """
        try:
            resp = await self._github.rest.rate_limit.async_get()
        except RequestFailed as e:
            raise self._handle_error(e) from e
        except RequestError as e:
            raise GitHubRetryableError(f"GitHub network error: {e}") from e
        self._track(resp)
        core = resp.parsed_data.resources.core
        return {
            "limit": core.limit,
            "remaining": core.remaining,
            "used": core.used,
            "reset": datetime.fromtimestamp(core.reset, tz=UTC),
        }

    async def get_authenticated_user(self) -> GitHubUser:
        """Get the user the token belongs to."""
        try:
            resp = await self._github.rest.users.async_get_authenticated()
        except RequestFailed as e:
            raise self._handle_error(e) from e
        except RequestError as e:
            raise GitHubRetryableError(f"GitHub network error: {e}") from e
        self._track(resp)
        return GitHubUser.model_validate(resp.parsed_data.model_dump())

    # -------------------------------------------------------------------------
    # Issue Methods
    # -------------------------------------------------------------------------
    async def list_issues(
        self,
        owner: str,
        repo: str,
        *,
        state: IssueStateFilter = "all",
        since: datetime | None = None,
        per_page: int = 100,
    ) -> list[GitHubIssue]:
        """List issues of a repository (pull requests excluded).

        Args:
            owner: Repository owner (org or user)
            repo: Repository name
            state: Filter by state ("open", "closed", "all")
            since: Only issues updated at or after this time
            per_page: Results per page (max 100)

        Returns:
            List of GitHubIssue objects
        """
        issues: list[GitHubIssue] = []
        page = 1
        params: dict[str, Any] = {"state": state, "per_page": per_page}
        if since is not None:
            params["since"] = since

        try:
            while True:
                resp = await self._github.rest.issues.async_list_for_repo(
                    owner, repo, page=page, **params
                )
                self._track(resp)
                items = resp.parsed_data
                for item in items:
                    try:
                        issue = GitHubIssue.model_validate(item.model_dump())
                    except ValidationError:
                        # Skip issues that don't validate (shouldn't happen normally)
                        continue
                    if not issue.is_pull_request:
                        issues.append(issue)
                if len(items) < per_page:
                    break
                page += 1
        except RequestFailed as e:
            raise self._handle_error(e) from e
        except RequestError as e:
            raise GitHubRetryableError(f"GitHub network error: {e}") from e

        return issues

    async def get_issue(self, owner: str, repo: str, number: int) -> GitHubIssue:
        """Get a single issue.

        Raises:
            GitHubNotFoundError: If the issue doesn't exist (or was deleted)
        """
        try:
            resp = await self._github.rest.issues.async_get(owner, repo, number)
        except RequestFailed as e:
            if e.response.status_code in (404, 410):
                raise GitHubNotFoundError(
                    f"Issue #{number} not found in {owner}/{repo}",
                    status=e.response.status_code,
                ) from e
            raise self._handle_error(e) from e
        except RequestError as e:
            raise GitHubRetryableError(f"GitHub network error: {e}") from e
        self._track(resp)
        return GitHubIssue.model_validate(resp.parsed_data.model_dump())

    async def create_issue(
        self,
        owner: str,
        repo: str,
        *,
        title: str,
        body: str | None = None,
        labels: list[str] | None = None,
    ) -> GitHubIssue:
        """Create an issue.

        Returns:
            The created issue (with its assigned number)
        """
        data: dict[str, Any] = {"title": title, "body": body}
        if labels:
            data["labels"] = labels
        try:
            resp = await self._github.rest.issues.async_create(owner, repo, data=data)
        except RequestFailed as e:
            raise self._handle_error(e) from e
        except RequestError as e:
            raise GitHubRetryableError(f"GitHub network error: {e}") from e
        self._track(resp)
        return GitHubIssue.model_validate(resp.parsed_data.model_dump())

    async def update_issue(
        self,
        owner: str,
        repo: str,
        number: int,
        *,
        title: str | None = None,
        body: str | None = None,
        state: Literal["open", "closed"] | None = None,
        labels: list[str] | None = None,
    ) -> GitHubIssue:
        """Update an issue; fields left as None are not sent.

        Raises:
            GitHubNotFoundError: If the issue doesn't exist
        """
        data: dict[str, Any] = {}
        if title is not None:
            data["title"] = title
        if body is not None:
            data["body"] = body
        if state is not None:
            data["state"] = state
        if labels is not None:
            data["labels"] = labels
        try:
            resp = await self._github.rest.issues.async_update(owner, repo, number, data=data)
        except RequestFailed as e:
            if e.response.status_code in (404, 410):
                raise GitHubNotFoundError(
                    f"Issue #{number} not found in {owner}/{repo}",
                    status=e.response.status_code,
                ) from e
            raise self._handle_error(e) from e
        except RequestError as e:
            raise GitHubRetryableError(f"GitHub network error: {e}") from e
        self._track(resp)
        return GitHubIssue.model_validate(resp.parsed_data.model_dump())

    async def close_issue(self, owner: str, repo: str, number: int) -> GitHubIssue:
        """Close an issue (the REST API cannot delete issues)."""
        return await self.update_issue(owner, repo, number, state="closed")

    # -------------------------------------------------------------------------
    # Label Methods
    # -------------------------------------------------------------------------
    async def list_labels(self, owner: str, repo: str, *, per_page: int = 100) -> list[GitHubLabel]:
        """List all labels of a repository."""
        labels: list[GitHubLabel] = []
        page = 1
        try:
            while True:
                resp = await self._github.rest.issues.async_list_labels_for_repo(
                    owner, repo, per_page=per_page, page=page
                )
                self._track(resp)
                items = resp.parsed_data
                for item in items:
                    try:
                        labels.append(GitHubLabel.model_validate(item.model_dump()))
                    except ValidationError:
                        continue
                if len(items) < per_page:
                    break
                page += 1
        except RequestFailed as e:
            raise self._handle_error(e) from e
        except RequestError as e:
            raise GitHubRetryableError(f"GitHub network error: {e}") from e
        return labels

    async def create_label(
        self,
        owner: str,
        repo: str,
        *,
        name: str,
        color: str,
        description: str | None = None,
    ) -> GitHubLabel:
        """Create a label."""
        data: dict[str, Any] = {"name": name, "color": color}
        if description is not None:
            data["description"] = description
        try:
            resp = await self._github.rest.issues.async_create_label(owner, repo, data=data)
        except RequestFailed as e:
            raise self._handle_error(e) from e
        except RequestError as e:
            raise GitHubRetryableError(f"GitHub network error: {e}") from e
        self._track(resp)
        return GitHubLabel.model_validate(resp.parsed_data.model_dump())

    async def update_label(
        self,
        owner: str,
        repo: str,
        name: str,
        *,
        new_name: str | None = None,
        color: str | None = None,
        description: str | None = None,
    ) -> GitHubLabel:
        """Update a label addressed by its current remote name.

        Raises:
            GitHubNotFoundError: If no label has that name
        """
        data: dict[str, Any] = {}
        if new_name is not None and new_name != name:
            data["new_name"] = new_name
        if color is not None:
            data["color"] = color
        if description is not None:
            data["description"] = description
        try:
            resp = await self._github.rest.issues.async_update_label(owner, repo, name, data=data)
        except RequestFailed as e:
            if e.response.status_code == 404:
                raise GitHubNotFoundError(
                    f"Label '{name}' not found in {owner}/{repo}", status=404
                ) from e
            raise self._handle_error(e) from e
        except RequestError as e:
            raise GitHubRetryableError(f"GitHub network error: {e}") from e
        self._track(resp)
        return GitHubLabel.model_validate(resp.parsed_data.model_dump())

    async def delete_label(self, owner: str, repo: str, name: str) -> None:
        """Delete a label by its remote name.

        Raises:
            GitHubNotFoundError: If no label has that name
        """
        try:
            resp = await self._github.rest.issues.async_delete_label(owner, repo, name)
        except RequestFailed as e:
            if e.response.status_code == 404:
                raise GitHubNotFoundError(
                    f"Label '{name}' not found in {owner}/{repo}", status=404
                ) from e
            raise self._handle_error(e) from e
        except RequestError as e:
            raise GitHubRetryableError(f"GitHub network error: {e}") from e
        self._track(resp)

    # -------------------------------------------------------------------------
    # Error Handling
    # -------------------------------------------------------------------------
    def _handle_error(self, error: RequestFailed) -> GitHubClientError:
        """Convert githubkit exceptions to our custom exceptions."""
        # Error responses still carry (and count against) the quota
        self._track(error.response)

        status = error.response.status_code
        headers: Mapping[str, str] = error.response.headers

        if status == 401:
            return GitHubAuthenticationError("Invalid GitHub token", status=status)
        elif status in (403, 429):
            remaining = headers.get("x-ratelimit-remaining")
            retry_after = headers.get("retry-after")
            if status == 429 or remaining == "0" or retry_after is not None:
                raw_reset = str(headers.get("x-ratelimit-reset", "")).strip()
                reset_ts = int(raw_reset) if raw_reset.isdigit() else 0
                reset_at = datetime.fromtimestamp(reset_ts, tz=UTC) if reset_ts else None
                logger.warning("GitHub rate limit hit (status={}, reset_at={})", status, reset_at)
                return GitHubRateLimitError(
                    "GitHub rate limit exceeded",
                    status=status,
                    reset_at=reset_at,
                    retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                )
            return GitHubClientError(f"Access forbidden: {error}", status=status)
        elif status == 404:
            return GitHubNotFoundError(str(error), status=status)
        elif status >= 500:
            return GitHubServerError(f"GitHub server error ({status}): {error}", status=status)
        else:
            return GitHubClientError(f"GitHub API error ({status}): {error}", status=status)
