"""GitHub API verification commands."""

import typer
from rich.table import Table

from issuedesk.cli.common import console, require_github_token, run_async_command
from issuedesk.config import get_settings
from issuedesk.github import (
    GitHubAuthenticationError,
    GitHubClient,
    GitHubRateLimitError,
    RateLimitTracker,
)

app = typer.Typer(help="GitHub API commands")


def _format_time_remaining(seconds: int) -> str:
    """Format seconds as human-readable time."""
    if seconds <= 0:
        return "Now"
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    return f"{hours}h {minutes}m"


@app.command("rate-limit")
def show_rate_limit() -> None:
    """Show the current core rate limit and who the token belongs to.

    Examples:
        issuedesk github rate-limit
    """

    async def _check() -> None:
        token = require_github_token()
        tracker = RateLimitTracker(get_settings().rate_limit)

        try:
            async with GitHubClient(token, tracker=tracker) as client:
                user = await client.get_authenticated_user()
                await client.get_rate_limit()
        except GitHubAuthenticationError:
            console.print("[red]Error:[/red] Invalid GitHub token")
            raise typer.Exit(1) from None
        except GitHubRateLimitError as e:
            console.print("[red]Error:[/red] Rate limit exceeded")
            if e.reset_at:
                console.print(f"  Resets at: {e.reset_at.strftime('%H:%M:%S UTC')}")
            raise typer.Exit(1) from None

        state = tracker.current
        console.print(f"[green]✓[/green] Authenticated as {user.login}")
        if state is None:
            console.print("[yellow]No rate limit headers returned[/yellow]")
            return

        percentage = tracker.get_remaining_percentage()
        if percentage > 50:
            remaining_str = f"[green]{percentage:.1f}%[/green]"
        elif percentage > tracker.warning_threshold * 100:
            remaining_str = f"[yellow]{percentage:.1f}%[/yellow]"
        else:
            remaining_str = f"[red]{percentage:.1f}%[/red]"

        table = Table(title="GitHub API Rate Limit")
        table.add_column("Resource", style="bold")
        table.add_column("Remaining", justify="right")
        table.add_column("Limit", justify="right")
        table.add_column("Remaining %", justify="right")
        table.add_column("Resets In", justify="right")
        table.add_row(
            state.resource or "core",
            str(state.remaining),
            str(state.limit),
            remaining_str,
            _format_time_remaining(int(tracker.get_time_until_reset())),
        )
        console.print()
        console.print(table)

        if tracker.is_exhausted():
            console.print("[bold red]Quota exhausted; sync will wait for the reset.[/bold red]")

    run_async_command(_check())
