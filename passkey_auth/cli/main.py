"""CLI entry point.

Provides:
- serve: Run the API server
- init-db: Create the credential tables (database backend)
- config: Show the effective relying party configuration
"""

import asyncio
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from passkey_auth.logging_config import configure_logging
from passkey_auth.settings import get_settings

app = typer.Typer(
    name="passkey-auth",
    help="WebAuthn passkey registration and authentication service",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main() -> None:
    """Configure logging before any command runs."""
    configure_logging()


@app.command()
def serve(
    host: Annotated[
        str,
        typer.Option("--host", "-h", help="Host to bind to"),
    ] = "",
    port: Annotated[
        int,
        typer.Option("--port", "-p", help="Port to bind to"),
    ] = 0,
    reload: Annotated[
        bool,
        typer.Option("--reload", "-r", help="Enable auto-reload for development"),
    ] = False,
    workers: Annotated[
        int,
        typer.Option("--workers", "-w", help="Number of worker processes"),
    ] = 0,
) -> None:
    """Start the API server.

    Defaults are loaded from settings (env vars / .env). Challenges live in
    process memory whatever the storage backend, so a begin and its finish
    must reach the same process: only a single worker is supported.
    """
    import uvicorn

    settings = get_settings()
    resolved_host = host or settings.api_host
    resolved_port = port or settings.api_port
    resolved_workers = workers or settings.api_workers
    if resolved_workers > 1:
        console.print("[red]Challenges live in process memory; run a single worker.[/red]")
        raise typer.Exit(code=1)

    console.print(
        Panel(
            f"[bold green]Starting Passkey Auth API Server[/bold green]\n"
            f"Host: {resolved_host}\n"
            f"Port: {resolved_port}\n"
            f"Workers: {resolved_workers}\n"
            f"Storage: {settings.storage_backend}\n"
            f"Reload: {reload}",
            title="Passkey Auth",
            border_style="green",
        )
    )

    uvicorn.run(
        "passkey_auth.api.main:create_app",
        factory=True,
        host=resolved_host,
        port=resolved_port,
        reload=reload,
        workers=1,
        log_level=settings.log_level.lower(),
    )


@app.command("init-db")
def init_db() -> None:
    """Create the passkey_user and passkey_credential tables."""
    asyncio.run(_create_tables())
    console.print("[green]Tables created.[/green]")


async def _create_tables() -> None:
    from passkey_auth.storage import build_engine, close_db, create_tables

    engine = build_engine(get_settings())
    try:
        await create_tables(engine)
    finally:
        await close_db(engine)


@app.command()
def config() -> None:
    """Show the relying party configuration in effect."""
    settings = get_settings()

    table = Table(title="Relying Party")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("RP name", settings.webauthn_rp_name)
    table.add_row("RP ID", settings.webauthn_rp_id)
    table.add_row("Origin", settings.webauthn_origin)
    table.add_row("Timeout (ms)", str(settings.webauthn_timeout_ms))
    table.add_row("User verification", settings.webauthn_user_verification)
    table.add_row("Challenge TTL (ms)", str(settings.challenge_ttl_ms))
    table.add_row("Storage backend", settings.storage_backend)
    console.print(table)


if __name__ == "__main__":
    app()
