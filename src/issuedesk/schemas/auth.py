"""Request, response and session schemas for the authentication service."""

from datetime import datetime

from pydantic import BaseModel, Field

from .github_api import Installation, User


class BackendSession(BaseModel):
    """Server-side session created by a successful device flow.

    Stored under ``session:<session_token>`` with a sliding TTL.
    """

    session_token: str = Field(min_length=128, max_length=128)
    user_id: int = Field(gt=0)
    access_token: str = Field(min_length=1, description="GitHub user access token")
    created_at: datetime
    last_accessed_at: datetime
    installations: list[Installation] = Field(default_factory=list)

    def owns_installation(self, installation_id: int) -> bool:
        return any(inst.id == installation_id for inst in self.installations)


class PollRequest(BaseModel):
    """Body of POST /auth/poll."""

    device_code: str = Field(min_length=1)


class InstallationTokenRequest(BaseModel):
    """Body of POST /auth/installation-token and its refresh alias."""

    installation_id: int = Field(gt=0)


class PollSuccessResponse(BaseModel):
    """Body returned by POST /auth/poll once the user authorized."""

    session_token: str
    user: User
    installations: list[Installation]


class InstallationTokenResponse(BaseModel):
    """Body returned by POST /auth/installation-token."""

    token: str
    expires_at: datetime


class InstallationsResponse(BaseModel):
    """Body returned by POST /auth/installations."""

    installations: list[Installation]


class ErrorBody(BaseModel):
    """Error payload shared by every failing endpoint."""

    error: str
    message: str
    retryable: bool = False
