"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import time
from pathlib import Path

import aiohttp
import typer
from rich.console import Console
from rich.logging import RichHandler

from ncore_stream import __version__
from ncore_stream.exceptions import AdminAccessError, NcoreStreamError
from ncore_stream.models.config import StreamConfig
from ncore_stream.server.app import run_server
from ncore_stream.server.handlers import ADMIN_TOKEN_HEADER
from ncore_stream.server.services import build_services
from ncore_stream.storage.config_manager import ConfigManager

from .formatters import (
    print_cleanup_summary,
    print_config,
    print_store_stats_table,
    print_validation_table,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("ncore_stream")

app = typer.Typer(
    name="ncore-stream",
    help=(
        "Streams nCore torrents to Stremio over HTTP range requests. Use"
        " 'ncore-stream <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "ncore-stream"


DEFAULT_CONFIG_FILE = get_config_dir() / "config.ini"


def _config_manager(ctx: typer.Context) -> ConfigManager:
    return ConfigManager(ctx.obj["config_file"])


def _load_config(ctx: typer.Context, cli_options: dict | None = None) -> StreamConfig:
    return _config_manager(ctx).load_config(cli_options)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    config_file: Path = typer.Option(  # noqa: B008
        DEFAULT_CONFIG_FILE,
        "--config",
        "-c",
        help="Path of the INI configuration file.",
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the effective configuration."
    ),
):
    """nCore stream addon"""
    if version:
        console.print(f"[bold]ncore-stream[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    elif verbose == 0:
        logging.getLogger("aiohttp.access").setLevel("WARNING")
    logging.getLogger("ncore_stream").setLevel(log_level)

    ctx.obj = {"config_file": config_file}

    if show_config:
        config = _load_config(ctx)
        print_config(config_file, ConfigManager.redacted(config))
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    ctx: typer.Context,
    username: str = typer.Argument(..., help="nCore username."),
    password: str = typer.Argument(..., help="nCore password."),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration file."
    ),
):
    """Write a configuration file with nCore credentials."""
    config_file = ctx.obj["config_file"]
    if (
        config_file.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    _config_manager(ctx).save_new_config(
        {"ncore_username": username, "ncore_password": password}
    )
    console.print(
        f"\n[bold green]✓ Configuration saved to '{config_file}'[/bold green]"
    )
    console.print("Start the addon with: [cyan]ncore-stream serve[/cyan]")


@app.command()
def validate(ctx: typer.Context):
    """Validate the current configuration."""
    try:
        config = _load_config(ctx)
    except NcoreStreamError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e
    print_validation_table(config)


@app.command()
def serve(
    ctx: typer.Context,
    host: str | None = typer.Option(None, "--host", help="Interface to bind."),
    port: int | None = typer.Option(None, "--port", "-p", help="Port to listen on."),
    public_url: str | None = typer.Option(
        None, "--public-url", help="Base URL embedded in stream links."
    ),
):
    """Run the addon HTTP server."""
    config = _load_config(
        ctx, {"host": host, "port": port, "public_url": public_url}
    )
    console.print(f"[bold cyan]🎬 Starting ncore-stream {__version__}...[/bold cyan]")
    run_server(build_services(config))


@app.command()
def cleanup(ctx: typer.Context):
    """
    Delete torrents nCore no longer requires to be seeded. Run it while the
    server is stopped.
    """
    config = _load_config(ctx)

    async def _cleanup_async():
        services = build_services(config)
        store = services.store
        start_time = time.monotonic()
        try:
            await store.start()
            loaded = await store.load_all()
            deleted = await store.delete_unnecessary(services.aggregator)
        finally:
            await store.stop()
            await services.aclose()
        print_cleanup_summary(deleted, loaded, time.monotonic() - start_time)

    asyncio.run(_cleanup_async())


@app.command()
def status(ctx: typer.Context):
    """Show the active torrents of the running server."""
    config = _load_config(ctx)
    if not config.admin_token:
        raise AdminAccessError("No admin_token configured")

    async def _status_async() -> list[dict[str, str]]:
        timeout = aiohttp.ClientTimeout(total=config.request_timeout_seconds)
        async with (
            aiohttp.ClientSession(timeout=timeout) as session,
            session.get(
                f"{config.public_url}/torrents",
                headers={ADMIN_TOKEN_HEADER: config.admin_token},
            ) as resp,
        ):
            if resp.status == 401:
                raise AdminAccessError("The server rejected the admin token")
            resp.raise_for_status()
            return await resp.json()

    print_store_stats_table(asyncio.run(_status_async()))
