"""Pydantic schemas for IssueDesk.

This module provides input validation and output serialization models.
"""

from .auth import (
    BackendSession,
    ErrorBody,
    InstallationsResponse,
    InstallationTokenRequest,
    InstallationTokenResponse,
    PollRequest,
    PollSuccessResponse,
)
from .base import SchemaBase
from .github_api import (
    Account,
    DeviceAuthorization,
    DeviceTokenResponse,
    GitHubIssue,
    GitHubLabel,
    GitHubUser,
    Installation,
    InstallationToken,
    User,
)
from .issue import IssueCreate, IssueRead, IssueUpdate
from .label import LabelCreate, LabelRead, LabelUpdate

__all__ = [
    # GitHub API
    "Account",
    "DeviceAuthorization",
    "DeviceTokenResponse",
    "GitHubIssue",
    "GitHubLabel",
    "GitHubUser",
    "Installation",
    "InstallationToken",
    "User",
    # Auth service
    "BackendSession",
    "ErrorBody",
    "InstallationTokenRequest",
    "InstallationTokenResponse",
    "InstallationsResponse",
    "PollRequest",
    "PollSuccessResponse",
    # Issues & labels
    "IssueCreate",
    "IssueRead",
    "IssueUpdate",
    "LabelCreate",
    "LabelRead",
    "LabelUpdate",
    # Base
    "SchemaBase",
]
