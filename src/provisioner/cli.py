"""Operator CLI for the directory provisioner."""

import asyncio

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.provisioner.core.errors import ProvisioningError
from src.provisioner.core.services.directory.client import DirectoryClient
from src.provisioner.core.services.directory.session import DirectorySessionRegistry
from src.provisioner.core.services.store.provisioning_store import get_provisioning_store
from src.provisioner.runtime.context import get_config

console = Console()

app = typer.Typer(
    help="Directory provisioner operator commands",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.command(name="init-db")
def init_db() -> None:
    """Create the provisioning tables, or migrate them to the current schema."""
    store = get_provisioning_store(get_config())
    try:
        version = store.init_schema()
    except ProvisioningError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1) from e
    console.print(f"[green]✓[/green] Provisioning schema is at version {version}")


@app.command(name="show-record")
def show_record(
    local_id: str = typer.Argument(..., help="Local identifier of the identity"),
) -> None:
    """Show the stored provisioning record of one identity."""
    record = get_provisioning_store(get_config()).get_record(local_id)
    if record is None:
        console.print(f"[yellow]No provisioning record for {local_id}[/yellow]")
        raise typer.Exit(1)

    table = Table(title=f"Provisioning record {local_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Remote username", record.remote_username)
    table.add_row("Last updated", record.last_updated.isoformat())
    table.add_row("Delay until", record.delay_until.isoformat())
    console.print(table)


@app.command(name="check-session")
def check_session() -> None:
    """Authenticate to the directory and report the session expiry."""
    config = get_config().directory

    async def _acquire():
        client = DirectoryClient(config, registry=DirectorySessionRegistry())
        return await client.acquire_session()

    try:
        session = asyncio.run(_acquire())
    except ProvisioningError as e:
        console.print(f"[red]✗[/red] Directory session failed: {e}")
        raise typer.Exit(1) from e

    console.print(
        Panel.fit(
            f"Domain: {session.domain}\n"
            f"Tenant: {session.tenant_id}\n"
            f"Token: {session.token_preview}\n"
            f"Expires in: {session.ttl_seconds()}s",
            title="[bold green]Directory session[/bold green]",
            border_style="green",
        )
    )


@app.command()
def serve(
    host: str | None = typer.Option(None, help="Host to bind (default from config)"),
    port: int | None = typer.Option(None, help="Port to bind (default from config)"),
) -> None:
    """Run the HTTP endpoints for delayed logins."""
    import uvicorn

    config = get_config().app
    uvicorn.run(
        "src.provisioner.api.http.app:app",
        host=host or config.host,
        port=port or config.port,
    )


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
