"""Common CLI option types and helpers.

Provides:
- `run_async_command`: Unified async execution with error handling for CLI commands
- `resolve_repository`: owner/name parsing with the configured default
- `resolve_github_token`: GITHUB_TOKEN or the stored installation login
- Shared option aliases (Annotated keeps Typer's call-in-default pattern in one place)
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from enum import Enum
from typing import Annotated, TypeVar

import typer
from rich.console import Console

from issuedesk.auth.kv import SqlKeyValueStore
from issuedesk.config import get_settings
from issuedesk.db import get_session_factory
from issuedesk.tokens import AuthServiceClient, CredentialStore

# Shared console instance for CLI output
console = Console()

T = TypeVar("T")


class OutputFormat(str, Enum):
    """Output format for CLI commands."""

    TEXT = "text"
    JSON = "json"


def run_async_command(
    coro: Coroutine[object, object, T],
    *,
    error_prefix: str = "Error",
) -> T:
    """Execute async code from a synchronous CLI command.

    Catches exceptions, prints a short message and exits with code 1.

    Raises:
        typer.Exit: Re-raised from deliberate exits, or raised with code 1 on error
    """
    try:
        return asyncio.run(coro)
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]{error_prefix}:[/red] {e}")
        raise typer.Exit(1) from None


OutputFormatOption = Annotated[
    OutputFormat,
    typer.Option(
        "--format",
        "-f",
        help="Output format",
    ),
]

RepoOption = Annotated[
    str | None,
    typer.Option(
        "--repo",
        "-r",
        help="Repository in owner/name format (defaults to REPOSITORY)",
    ),
]


def parse_repo_string(repo: str) -> tuple[str, str]:
    """Split ``owner/name``.

    Raises:
        ValueError: If either part is missing
    """
    owner, sep, name = repo.strip().partition("/")
    if not sep or not owner or not name or "/" in name:
        raise ValueError(f"Invalid repository '{repo}', expected owner/name")
    return owner, name


def resolve_repository(repo: str | None) -> tuple[str, str]:
    """Parse the --repo option, falling back to the configured repository.

    Raises:
        typer.Exit(1): If no repository is given or the format is invalid
    """
    value = repo or get_settings().repository
    if not value:
        console.print("[red]Error:[/red] No repository given (use --repo or set REPOSITORY)")
        raise typer.Exit(1)
    try:
        return parse_repo_string(value)
    except ValueError:
        console.print("[red]Error:[/red] Repository must be in owner/name format")
        raise typer.Exit(1) from None


def require_github_token() -> str:
    """Configured GitHub token.

    Raises:
        typer.Exit(1): If GITHUB_TOKEN is not set
    """
    token = get_settings().github_token
    if not token:
        console.print("[red]Error:[/red] GITHUB_TOKEN not set in environment")
        raise typer.Exit(1)
    return token


async def resolve_github_token() -> str:
    """GITHUB_TOKEN if set, otherwise a token for the signed-in installation.

    The local tables must exist; stored credentials live in kv_entries.

    Raises:
        typer.Exit(1): If there is neither a token nor a stored login
        AuthServiceClientError: The auth service refused the stored session
    """
    settings = get_settings()
    if settings.github_token:
        return settings.github_token

    store = CredentialStore(SqlKeyValueStore(get_session_factory()))
    async with AuthServiceClient(settings.auth_service_url) as auth:
        token = await store.installation_token(auth)
    if token is None:
        console.print(
            "[red]Error:[/red] GITHUB_TOKEN not set and no installation signed in "
            "(run `issuedesk auth login`)"
        )
        raise typer.Exit(1)
    return token.token
