"""Sync commands: drain the queue, pull from GitHub, inspect and resolve conflicts."""

import json
from typing import Annotated, Any

import typer
from rich.table import Table
from sqlalchemy.ext.asyncio import AsyncSession

from issuedesk.cli.common import (
    OutputFormat,
    OutputFormatOption,
    RepoOption,
    console,
    resolve_github_token,
    resolve_repository,
    run_async_command,
)
from issuedesk.config import get_settings
from issuedesk.db import SyncQueueRepository, create_tables, get_session
from issuedesk.github import GitHubClient, RateLimitTracker
from issuedesk.sync import MergedIssue, Resolution, SyncEngine

app = typer.Typer(help="Synchronize the local store with GitHub")


async def _with_engine(repo: str | None, action: str) -> dict[str, Any]:
    owner, name = resolve_repository(repo)
    settings = get_settings()
    await create_tables()
    token = await resolve_github_token()

    async with GitHubClient(token, tracker=RateLimitTracker(settings.rate_limit)) as client:
        async with get_session() as session:
            engine = SyncEngine(
                session,
                client,
                owner,
                name,
                config=settings.sync,
                retry_config=settings.retry,
            )
            if action == "drain":
                return (await engine.drain()).to_dict()
            if action == "pull":
                return (await engine.pull()).to_dict()
            drained, pulled = await engine.sync()
            return {"drain": drained.to_dict(), "pull": pulled.to_dict()}


def _print_drain(result: dict[str, Any]) -> None:
    console.print(
        f"[bold]Pushed:[/bold] {result['pushed']}  "
        f"[bold]Failed:[/bold] {result['failed']}  "
        f"[bold]Conflicts:[/bold] {result['conflicts']}  "
        f"[bold]Skipped:[/bold] {result['skipped']}"
    )
    if result["stopped_by_rate_limit"]:
        console.print("[yellow]Stopped early: GitHub rate limit exhausted[/yellow]")
    for outcome in result["outcomes"]:
        if outcome["action"] == "failed":
            console.print(
                f"  [red]✗[/red] {outcome['kind']} {outcome['entity_id']}: {outcome['error']}"
            )
        elif outcome["action"] == "conflict":
            console.print(
                f"  [yellow]![/yellow] {outcome['kind']} {outcome['entity_id']}: conflict"
            )


def _print_pull(result: dict[str, Any]) -> None:
    console.print(
        f"[bold]Issues:[/bold] {result['issues_created']} new, "
        f"{result['issues_updated']} updated, {result['issues_skipped']} kept local"
    )
    console.print(
        f"[bold]Labels:[/bold] {result['labels_created']} new, "
        f"{result['labels_updated']} updated, {result['labels_deleted']} removed"
    )


@app.command("run")
def sync_run(
    repo: RepoOption = None,
    pull: Annotated[
        bool,
        typer.Option("--pull/--no-pull", help="Pull remote changes after draining"),
    ] = True,
    output_format: OutputFormatOption = OutputFormat.TEXT,
) -> None:
    """Push queued local changes to GitHub (then pull).

    Examples:
        issuedesk sync run
        issuedesk sync run --repo octo/desk --no-pull
        issuedesk sync run --format json
    """
    result = run_async_command(
        _with_engine(repo, "sync" if pull else "drain"), error_prefix="Sync failed"
    )

    if output_format == OutputFormat.JSON:
        console.print(json.dumps(result, indent=2))
        return

    if pull:
        _print_drain(result["drain"])
        _print_pull(result["pull"])
    else:
        _print_drain(result)


@app.command("pull")
def sync_pull(
    repo: RepoOption = None,
    output_format: OutputFormatOption = OutputFormat.TEXT,
) -> None:
    """Mirror remote issues and labels into the local store.

    Examples:
        issuedesk sync pull --repo octo/desk
    """
    result = run_async_command(_with_engine(repo, "pull"), error_prefix="Pull failed")
    if output_format == OutputFormat.JSON:
        console.print(json.dumps(result, indent=2))
    else:
        _print_pull(result)


@app.command("status")
def sync_status(output_format: OutputFormatOption = OutputFormat.TEXT) -> None:
    """Show queue size, failing entries, conflicts and the last sync time."""

    async def _status() -> dict[str, Any]:
        await create_tables()
        async with get_session() as session:
            engine = _offline_engine(session)
            status = (await engine.status()).to_dict()
            status["queue"] = await SyncQueueRepository(session).get_stats()
            return status

    status = run_async_command(_status())
    if output_format == OutputFormat.JSON:
        console.print(json.dumps(status, indent=2))
        return

    style = {"idle": "green", "syncing": "cyan", "conflict": "yellow", "error": "red"}[
        status["status"]
    ]
    console.print(f"[bold]Status:[/bold] [{style}]{status['status']}[/{style}]")
    console.print(f"[bold]Last sync:[/bold] {status['last_sync_at'] or 'never'}")
    console.print(f"[bold]Pending:[/bold] {status['pending']} ({status['failing']} failing)")
    if status["error"]:
        console.print(f"[bold]Last error:[/bold] {status['error']}")
    if status["conflicts"]:
        count = len(status["conflicts"])
        console.print(f"[yellow]{count} conflict(s); see `issuedesk sync conflicts`[/yellow]")


@app.command("conflicts")
def sync_conflicts(output_format: OutputFormatOption = OutputFormat.TEXT) -> None:
    """List conflicted issues with their local and remote versions."""

    async def _list() -> list[dict[str, Any]]:
        await create_tables()
        async with get_session() as session:
            engine = _offline_engine(session)
            return [c.model_dump(mode="json") for c in await engine.list_conflicts()]

    conflicts = run_async_command(_list())
    if output_format == OutputFormat.JSON:
        console.print(json.dumps(conflicts, indent=2))
        return
    if not conflicts:
        console.print("[green]No conflicts[/green]")
        return

    table = Table(title="Conflicts")
    table.add_column("Issue", style="cyan")
    table.add_column("Local title", max_width=40)
    table.add_column("Remote title", max_width=40)
    table.add_column("Remote updated")
    for conflict in conflicts:
        table.add_row(
            f"#{conflict['issue_number']} ({conflict['issue_id'][:8]})",
            conflict["local_version"]["title"],
            conflict["remote_version"]["title"],
            conflict["remote_version"]["updated_at"],
        )
    console.print(table)


@app.command("resolve")
def sync_resolve(
    issue_id: Annotated[str, typer.Argument(help="Local issue id")],
    resolution: Annotated[Resolution, typer.Argument(help="local, remote or merged")],
    title: Annotated[str | None, typer.Option("--title", help="Merged title")] = None,
    body: Annotated[str | None, typer.Option("--body", help="Merged body")] = None,
    labels: Annotated[
        str | None, typer.Option("--labels", help="Merged labels, comma-separated")
    ] = None,
) -> None:
    """Resolve a conflict.

    Examples:
        issuedesk sync resolve 3f2c... local
        issuedesk sync resolve 3f2c... merged --title "Crash on start" --body "..."
    """
    merged: MergedIssue | None = None
    if resolution == Resolution.MERGED:
        if title is None:
            console.print("[red]Error:[/red] --title is required for a merged resolution")
            raise typer.Exit(1)
        merged = MergedIssue(
            title=title,
            body=body,
            labels=[name.strip() for name in labels.split(",") if name.strip()]
            if labels is not None
            else None,
        )

    async def _resolve() -> str:
        await create_tables()
        async with get_session() as session:
            engine = _offline_engine(session)
            issue = await engine.resolve_conflict(issue_id, resolution, merged)
            return issue.sync_status.value

    new_status = run_async_command(_resolve(), error_prefix="Resolve failed")
    console.print(f"[green]Resolved[/green] ({resolution.value}); issue is now {new_status}")


def _offline_engine(session: AsyncSession) -> SyncEngine:
    """Engine for commands that only touch the local store."""
    settings = get_settings()
    owner, _, name = settings.repository.partition("/")
    return SyncEngine(session, None, owner, name, config=settings.sync)
