"""Authentication commands: run the auth service, sign in through it."""

from typing import Annotated

import typer
import uvicorn
from rich.table import Table

from issuedesk.auth import SqlKeyValueStore
from issuedesk.auth.app import create_app
from issuedesk.cli.common import console, run_async_command
from issuedesk.config import get_settings
from issuedesk.db import create_tables, get_session_factory
from issuedesk.logging import get_logger
from issuedesk.schemas import PollSuccessResponse
from issuedesk.tokens import (
    AuthServiceClient,
    AuthServiceClientError,
    CredentialStore,
    StoredLogin,
)

logger = get_logger(__name__)

app = typer.Typer(help="GitHub App authentication")


@app.command("serve")
def serve(
    host: Annotated[str | None, typer.Option("--host", help="Bind address")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Bind port")] = None,
    memory: Annotated[
        bool,
        typer.Option("--memory", help="Keep sessions in memory instead of the database"),
    ] = False,
) -> None:
    """Run the device-flow auth service.

    Examples:
        issuedesk auth serve
        issuedesk auth serve --host 0.0.0.0 --port 9000
    """
    settings = get_settings()
    config = settings.auth

    missing = config.missing_secrets()
    if missing:
        console.print(
            f"[yellow]Warning:[/yellow] missing {', '.join(missing)}; "
            "requests will fail with CONFIGURATION_ERROR"
        )

    kv = None
    if not memory:
        run_async_command(create_tables())
        kv = SqlKeyValueStore(get_session_factory())

    uvicorn.run(
        create_app(settings, kv=kv),
        host=host or config.host,
        port=port or config.port,
        log_config=None,
    )


@app.command("login")
def login(
    url: Annotated[
        str | None, typer.Option("--url", help="Auth service URL (defaults to AUTH_SERVICE_URL)")
    ] = None,
    installation: Annotated[
        int | None,
        typer.Option("--installation", "-i", help="Installation to sync as (defaults to first)"),
    ] = None,
) -> None:
    """Sign in with GitHub through the auth service.

    Prints the code to enter on github.com, waits for approval, then stores
    the session so `issuedesk sync` can run without GITHUB_TOKEN.
    """

    async def _login() -> StoredLogin:
        async with AuthServiceClient(url or get_settings().auth_service_url) as client:
            authorization = await client.request_device_code()
            console.print(
                f"Open [bold]{authorization.verification_uri}[/bold] "
                f"and enter [bold cyan]{authorization.user_code}[/bold cyan]"
            )
            with console.status("Waiting for authorization..."):
                result = await client.wait_for_authorization(authorization)

        _print_installations(result)
        installation_ids = [inst.id for inst in result.installations]
        if installation is not None and installation not in installation_ids:
            console.print(f"[red]Error:[/red] Installation {installation} is not available")
            raise typer.Exit(1)
        chosen = installation if installation is not None else next(iter(installation_ids), None)

        stored = StoredLogin(
            session_token=result.session_token,
            login=result.user.login,
            installation_id=chosen,
        )
        await create_tables()
        await _credential_store().save_login(stored)
        return stored

    stored = run_async_command(_login(), error_prefix="Login failed")
    if stored.installation_id is None:
        console.print("[yellow]No installations; install the GitHub App first.[/yellow]")
    else:
        console.print(f"Syncing as installation {stored.installation_id}")


@app.command("logout")
def logout(
    url: Annotated[
        str | None, typer.Option("--url", help="Auth service URL (defaults to AUTH_SERVICE_URL)")
    ] = None,
) -> None:
    """End the stored session and forget its cached tokens."""

    async def _logout() -> str | None:
        await create_tables()
        store = _credential_store()
        stored = await store.load_login()
        if stored is None:
            return None
        async with AuthServiceClient(url or get_settings().auth_service_url) as client:
            try:
                await client.logout(stored.session_token)
            except AuthServiceClientError as e:
                logger.warning("Auth service logout failed: {}", e.message)
        await store.clear()
        return stored.login

    user = run_async_command(_logout(), error_prefix="Logout failed")
    if user is None:
        console.print("Not signed in")
    else:
        console.print(f"[green]✓[/green] Signed out {user}")


def _credential_store() -> CredentialStore:
    return CredentialStore(SqlKeyValueStore(get_session_factory()))


def _print_installations(result: PollSuccessResponse) -> None:
    console.print(f"[green]✓[/green] Signed in as {result.user.login}")
    if not result.installations:
        return
    table = Table(title="Installations")
    table.add_column("ID", style="cyan")
    table.add_column("Account")
    table.add_column("Repositories")
    for inst in result.installations:
        table.add_row(str(inst.id), inst.account.login, inst.repository_selection)
    console.print(table)
