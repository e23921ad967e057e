"""Sage Accounting API CLI."""

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError
from rich.markup import escape
from rich.table import Table

from sage_api.src.client import SageClient
from sage_api.src.errors import SageError, TokenStorageError
from sage_api.src.get_token import token_oauth
from sage_api.src.models import JournalData
from sage_api.src.utils import client_from_env, console, setup_logging

app = typer.Typer(help="Sage Business Cloud Accounting tools.")


@app.callback()
def main() -> None:
    """Configure logging for every command."""
    setup_logging()


def _run(coro_fn: Callable[[SageClient], Awaitable[Any]], client: SageClient) -> Any:
    """Run an async operation against the client, closing it afterwards."""

    async def _wrapped() -> Any:
        async with client:
            return await coro_fn(client)

    try:
        return asyncio.run(_wrapped())
    except SageError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e


@app.command()
def auth(
    force: bool = typer.Option(False, "--force", "-f", help="Force new authentication"),
) -> None:
    """Authenticate with Sage and store an access token."""
    client = client_from_env()
    if force and client.token_file.exists():
        client.token_file.unlink()
        console.print("[yellow]Removed existing token.[/yellow]")

    if _run(token_oauth, client):
        console.print(f"[green]Token saved to[/green] [cyan]{client.token_file}[/cyan]")
    else:
        raise typer.Exit(1)


@app.command()
def refresh() -> None:
    """Refresh the stored token."""
    client = client_from_env()
    _run(lambda c: c.init_client(), client)
    if client.token:
        console.print("[green]Token refreshed.[/green]")
    else:
        console.print("[yellow]No token to refresh. Run: sage auth[/yellow]")


@app.command()
def accounts() -> None:
    """List ledger accounts."""
    ledger = _run(lambda c: c.get_accounts(), client_from_env())

    table = Table(title="Ledger Accounts", show_header=True, header_style="bold")
    table.add_column("Code")
    table.add_column("Name")
    table.add_column("ID", style="dim")
    for acc in ledger:
        table.add_row(acc.code or "", acc.name or "", acc.id)

    console.print(table)
    console.print(f"\n[bold]Total:[/bold] {len(ledger)} accounts")


@app.command()
def journal(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Journal JSON file"),
) -> None:
    """Create a journal from a JSON file.

    The file holds date, narration and journal_lines
    (account_code, amount, description). Positive amounts are credits,
    negative amounts are debits.
    """
    try:
        data = JournalData.load(path)
    except ValidationError as e:
        console.print(f"[red]Invalid journal file:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e
    result = _run(lambda c: c.create_journal(data), client_from_env())
    console.print(f"[green]Journal created:[/green] {result.get('id', '?')}")


@app.command()
def status() -> None:
    """Show current authentication status."""
    console.print("[bold]Sage API Status[/bold]\n")

    client = client_from_env()
    try:
        found = client.get_token()
    except TokenStorageError as e:
        console.print(f"  [red]Token:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    if found:
        console.print(f"  [green]Token:[/green] {client.token_file.name}")
        console.print(f"         [dim]{client.token['access_token'][:30]}...[/dim]")
    else:
        console.print("  [red]Token:[/red] Not found")

    missing = [
        name
        for name, value in (
            ("SAGE_CLIENT_ID", client.client_id),
            ("SAGE_CLIENT_SECRET", client.client_secret),
        )
        if not value
    ]
    if missing:
        console.print(f"  [red]Config:[/red] missing {', '.join(missing)}")
    else:
        console.print("  [green]Config:[/green] OK")


if __name__ == "__main__":
    app()
