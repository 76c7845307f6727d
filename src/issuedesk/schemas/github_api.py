"""Pydantic schemas for parsing GitHub API responses.

These schemas map directly to the GitHub REST API response structure.
See: https://docs.github.com/en/rest/issues
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class GitHubUser(BaseModel):
    """GitHub user object from API responses."""

    model_config = ConfigDict(extra="ignore")

    login: str = Field(description="GitHub username")
    id: int = Field(description="GitHub user ID")
    type: str = Field(default="User", description="User type")
    name: str | None = Field(default=None, description="Display name")
    avatar_url: str = Field(default="", description="Avatar URL")
    email: str | None = Field(default=None, description="Public email")


class GitHubLabel(BaseModel):
    """GitHub label object from API responses."""

    model_config = ConfigDict(extra="ignore")

    id: int = Field(description="Label ID")
    name: str = Field(description="Label name")
    color: str = Field(description="Label color (hex without #)")
    description: str | None = Field(default=None, description="Label description")


class GitHubIssue(BaseModel):
    """GitHub issue object from API.

    Maps to: GET /repos/{owner}/{repo}/issues/{number}
    """

    model_config = ConfigDict(extra="ignore")

    id: int = Field(description="Issue ID")
    number: int = Field(description="Issue number")
    html_url: str = Field(default="", description="GitHub issue URL")
    state: Literal["open", "closed"] = Field(description="Issue state")
    title: str = Field(description="Issue title")
    body: str | None = Field(default=None, description="Issue body (markdown)")
    labels: list[GitHubLabel] = Field(default_factory=list, description="Applied labels")
    user: GitHubUser | None = Field(default=None, description="Issue author")
    created_at: datetime = Field(description="Creation timestamp")
    updated_at: datetime = Field(description="Last update timestamp")
    closed_at: datetime | None = Field(default=None, description="Close timestamp")
    # Set on pull requests, which the issues endpoint also returns
    pull_request: dict[str, object] | None = Field(default=None, exclude=True)

    @property
    def is_pull_request(self) -> bool:
        return self.pull_request is not None

    @property
    def label_names(self) -> list[str]:
        return [label.name for label in self.labels]


# -----------------------------------------------------------------------------
# GitHub App / OAuth payloads
# -----------------------------------------------------------------------------
class Account(BaseModel):
    """Account (user or organization) an installation belongs to."""

    model_config = ConfigDict(extra="ignore")

    id: int = Field(gt=0, description="Account ID")
    login: str = Field(min_length=1, max_length=39, description="Account login")
    type: Literal["User", "Organization"] = Field(default="User", description="Account type")
    avatar_url: str = Field(default="", description="Avatar URL")


class Installation(BaseModel):
    """A GitHub App installation on an account."""

    model_config = ConfigDict(extra="ignore")

    id: int = Field(gt=0, description="Installation ID")
    account: Account = Field(description="Account the app is installed on")
    repository_selection: Literal["all", "selected"] = Field(
        default="all", description="Which repositories the installation covers"
    )
    permissions: dict[str, str] = Field(default_factory=dict, description="Granted permissions")


class User(BaseModel):
    """Signed-in identity returned to the desktop client."""

    id: int = Field(gt=0, description="GitHub account ID")
    login: str = Field(min_length=1, description="GitHub login")
    name: str = Field(min_length=1, description="Display name (falls back to login)")
    avatar_url: str = Field(default="", description="Avatar URL")
    email: str | None = Field(default=None, description="Email, when known")

    @classmethod
    def from_github_user(cls, user: GitHubUser) -> "User":
        return cls(
            id=user.id,
            login=user.login,
            name=user.name or user.login,
            avatar_url=user.avatar_url,
            email=user.email,
        )

    @classmethod
    def from_account(cls, account: Account) -> "User":
        return cls(
            id=account.id,
            login=account.login,
            name=account.login,
            avatar_url=account.avatar_url,
            email=None,
        )


class DeviceAuthorization(BaseModel):
    """Response of POST https://github.com/login/device/code."""

    model_config = ConfigDict(extra="ignore")

    device_code: str = Field(min_length=1, description="Code the client polls with")
    user_code: str = Field(min_length=1, description="Code the user enters (e.g. ABCD-1234)")
    verification_uri: str = Field(description="Where the user enters the code")
    interval: int = Field(default=5, gt=0, description="Minimum seconds between polls")
    expires_in: int = Field(gt=0, description="Seconds until the device code expires")


class DeviceTokenResponse(BaseModel):
    """Successful response of the OAuth access token endpoint."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(min_length=1)
    token_type: str = Field(default="bearer")
    scope: str = Field(default="")
    expires_in: int | None = None
    refresh_token: str | None = None


class InstallationToken(BaseModel):
    """Response of POST /app/installations/{id}/access_tokens."""

    model_config = ConfigDict(extra="ignore")

    token: str = Field(min_length=1, description="Installation access token")
    expires_at: datetime = Field(description="Expiry (about one hour after issue)")
    permissions: dict[str, str] = Field(default_factory=dict)
    repository_selection: Literal["all", "selected"] = Field(default="all")
