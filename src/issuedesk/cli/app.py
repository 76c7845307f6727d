"""Main CLI application for IssueDesk."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from issuedesk import __version__
from issuedesk.cli import auth as auth_cmd
from issuedesk.cli import github as github_cmd
from issuedesk.cli import sync as sync_cmd
from issuedesk.config import get_settings
from issuedesk.logging import setup_logging

app = typer.Typer(
    name="issuedesk",
    help="Local-first GitHub Issues with offline sync.",
    add_completion=False,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"issuedesk version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable debug logging.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress non-error output (WARNING level).",
        ),
    ] = False,
) -> None:
    """IssueDesk - GitHub Issues, offline first."""
    settings = get_settings()
    log_config = settings.logging

    setup_logging(
        level=settings.log_level,
        verbose=verbose,
        quiet=quiet,
        log_file=Path(log_config.log_file) if log_config.log_file else None,
        rotation=log_config.rotation,
        retention=log_config.retention,
        serialize=log_config.serialize,
    )


app.add_typer(auth_cmd.app, name="auth")
app.add_typer(github_cmd.app, name="github")
app.add_typer(sync_cmd.app, name="sync")


if __name__ == "__main__":
    app()
