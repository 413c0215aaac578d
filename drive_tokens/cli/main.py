"""
Operator command-line interface for the drive token store.

Provides commands to create the token table, inspect which tokens are
present, seed tokens by hand after a manual sign-in, and check database
reachability.
"""
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
from typing_extensions import Annotated

from typer import Option

from drive_tokens.application.exceptions import TokenStoreError
from drive_tokens.cli.status import DEFAULT_TIMEOUT_SECONDS, render_results, run_status_checks
from drive_tokens.infrastructure import log_utils
from drive_tokens.infrastructure.connection_manager import ConnectionManager
from drive_tokens.infrastructure.di_container import get_container
from drive_tokens.infrastructure.schema import SchemaInitializer
from drive_tokens.infrastructure.token_storage import PostgresTokenStore

app = typer.Typer(help="Manage the cached drive access and refresh tokens.", no_args_is_help=True)

console = Console()

MASK_VISIBLE_CHARS = 6


def _mask(value: Optional[str]) -> str:
    if not value:
        return "-"
    if len(value) <= MASK_VISIBLE_CHARS:
        return "*" * len(value)
    return f"{value[:MASK_VISIBLE_CHARS]}…({len(value)} chars)"


def _fail(action: str, exc: TokenStoreError) -> None:
    log_utils.error(f"{action} failed: {exc}")
    typer.echo(f"{action} failed: {exc}")
    raise typer.Exit(code=1)


def _close_pool() -> None:
    get_container().resolve(ConnectionManager).close()


@app.command(name="init-db")
def init_db() -> None:
    """Create the token table if it does not exist yet."""
    schema: SchemaInitializer = get_container().resolve(SchemaInitializer)
    try:
        schema.ensure_schema()
    except TokenStoreError as exc:
        _fail("Schema initialisation", exc)
    finally:
        _close_pool()
    typer.echo(f"Token table '{schema.table}' is ready.")


@app.command()
def show(
    timeout: Annotated[Optional[float], Option("--timeout", help="Per-call timeout in seconds.")] = None,
) -> None:
    """Show which tokens are currently stored (values are masked)."""
    store: PostgresTokenStore = get_container().resolve(PostgresTokenStore)
    try:
        tokens = store.get(timeout=timeout)
    except TokenStoreError as exc:
        _fail("Reading tokens", exc)
    finally:
        _close_pool()

    access_key, refresh_key = store.keys
    table = Table(title="Stored tokens")
    table.add_column("Key")
    table.add_column("State")
    table.add_column("Value")
    table.add_row(access_key, "live" if tokens.access_token else "absent/expired", _mask(tokens.access_token))
    table.add_row(refresh_key, "live" if tokens.refresh_token else "absent", _mask(tokens.refresh_token))
    console.print(table)


@app.command()
def store(
    access_token: Annotated[str, Option("--access-token", help="Access token value.")],
    expires_in: Annotated[int, Option("--expires-in", help="Access token lifetime in seconds.")],
    refresh_token: Annotated[str, Option("--refresh-token", help="Refresh token value.")],
) -> None:
    """Persist an access/refresh token pair obtained outside the app."""
    token_store: PostgresTokenStore = get_container().resolve(PostgresTokenStore)
    try:
        token_store.store(access_token, expires_in, refresh_token)
    except TokenStoreError as exc:
        _fail("Storing tokens", exc)
    finally:
        _close_pool()
    typer.echo("Tokens stored.")


@app.command()
def status(
    timeout: Annotated[float, Option("--timeout", help="Override the database check timeout in seconds.")] = DEFAULT_TIMEOUT_SECONDS,
) -> None:
    """Quick health check for the token database."""
    manager: ConnectionManager = get_container().resolve(ConnectionManager)
    try:
        results = run_status_checks(manager, timeout=timeout)
    finally:
        _close_pool()
    typer.echo(render_results(results))
    exit_code = 0 if all(result.ok for result in results) else 1
    raise typer.Exit(code=exit_code)


if __name__ == "__main__":  # pragma: no cover
    app()
