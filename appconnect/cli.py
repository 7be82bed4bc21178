"""AppConnect CLI tool (appconnect)."""

import asyncio
import logging
from typing import Optional

import typer

from appconnect.core.config import settings
from appconnect.core.exceptions import AppConnectError

app = typer.Typer(name="appconnect", help="Integration connection manager CLI")


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _print_connection(connection) -> None:
    message = connection.status_message or ""
    typer.echo(
        f"  [{connection.id}] {connection.display_name} "
        f"({connection.family.value}) {connection.status.value} {message}".rstrip()
    )


@app.command("list")
def list_connections():
    """List connections stored in the local cache."""
    _configure_logging()
    from appconnect.engine.manager import ConnectionManager

    async def _run():
        manager = ConnectionManager()
        manager.sync.load_local()
        connections = manager.list()
        await manager.shutdown()
        return connections

    connections = asyncio.run(_run())
    if not connections:
        typer.echo("No connections configured")
    for connection in connections:
        _print_connection(connection)


@app.command("refresh")
def refresh():
    """Load connections and re-probe every connected or failed one."""
    _configure_logging()
    from appconnect.engine.manager import ConnectionManager

    async def _run():
        async with ConnectionManager() as manager:
            await manager.refresh_all()
            return manager.list()

    for connection in asyncio.run(_run()):
        _print_connection(connection)


@app.command("migrate")
def migrate():
    """Run the schema migration check."""
    _configure_logging()
    from appconnect.engine.manager import ConnectionManager

    async def _run():
        manager = ConnectionManager()
        outcome = await manager.migration.run()
        await manager.shutdown()
        return outcome

    outcome = asyncio.run(_run())
    if outcome.migrated:
        typer.echo(f"Migrated {outcome.previous_version or 'unversioned'} -> {outcome.current_version}; state wiped")
    else:
        typer.echo(f"Schema {outcome.current_version} is current")


@app.command("add-webhook")
def add_webhook(
    url: str = typer.Argument(..., help="Webhook URL"),
    family: str = typer.Option("webhook-generic", help="webhook-generic, cloud-drive or chat-webhook"),
    provider: Optional[str] = typer.Option(None, help="Provider key, e.g. google-drive"),
    name: Optional[str] = typer.Option(None, help="Display name"),
):
    """Add a webhook-backed connection and probe it."""
    _configure_logging()
    from appconnect.engine.manager import ConnectionManager

    async def _run():
        async with ConnectionManager() as manager:
            return await manager.add_connection(
                family, {"webhookUrl": url}, display_name=name, provider=provider
            )

    try:
        connection = asyncio.run(_run())
    except (AppConnectError, ValueError) as e:
        typer.echo(f"Error: {getattr(e, 'message', e)}", err=True)
        raise typer.Exit(code=1)
    if connection is not None:
        _print_connection(connection)


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Host"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(False, help="Auto-reload"),
):
    """Start the FastAPI server."""
    import uvicorn
    uvicorn.run("appconnect.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
