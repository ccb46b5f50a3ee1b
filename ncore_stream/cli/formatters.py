"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ncore_stream.models.config import StreamConfig
from ncore_stream.utils.formatting import format_duration, format_size


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "AuthenticationError": [
            "• Verify your nCore username and password.",
            "• Run `ncore-stream init <username> <password> --force` to update them.",
            "• Log in through the website once to check the account is not locked.",
        ],
        "ConfigurationError": [
            "• Run `ncore-stream validate` to see the offending setting.",
            "• Environment variables override the config file.",
        ],
        "SourceUnavailableError": [
            "• nCore or Cinemeta may be temporarily unavailable.",
            "• Check your internet connection.",
            "• Please try again in a few minutes.",
        ],
        "AdminAccessError": [
            "• Set `admin_token` in the config file or the ADMIN_TOKEN variable.",
            "• The running server and the CLI must use the same token.",
        ],
        "ClientConnectorError": [
            "• The addon server does not seem to be running.",
            "• Check `public_url` points to the running server.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the effective configuration. Secrets must already be hidden."""
    console = Console()
    content = "\n".join(
        f"{key} = {escape(str(value))}" for key, value in config_data.items()
    )
    console.print(
        Panel(
            content,
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: StreamConfig):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("nCore User:", f"[green]{config.ncore_username}[/green]")
    table.add_row("Tracker:", config.ncore_url)
    table.add_row("Listen:", f"{config.host}:{config.port}")
    table.add_row("Public URL:", config.public_url)
    table.add_row("Torrent Files:", f"[dim]{config.torrents_dir}[/dim]")
    table.add_row("Downloads:", f"[dim]{config.downloads_dir}[/dim]")
    table.add_row(
        "Initial Window:", format_size(config.initial_window_bytes)
    )
    table.add_row("Resume Window:", format_size(config.resume_window_bytes))
    table.add_row(
        "Max Response:",
        format_size(config.max_chunk_bytes) if config.max_chunk_bytes else "to EOF",
    )
    table.add_row(
        "Admin Endpoints:", "✓ Enabled" if config.admin_token else "✗ Disabled"
    )
    cleanup = (
        f"every {config.cleanup_interval_hours:g}h"
        if config.cleanup_interval_hours > 0
        else "✗ Disabled"
    )
    table.add_row("Scheduled Cleanup:", cleanup)

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_store_stats_table(stats: list[dict[str, str]]):
    """Displays the active torrents reported by the server."""
    console = Console()
    if not stats:
        console.print("[dim]No active torrents.[/dim]")
        return

    table = Table(title=f"Active Torrents ({len(stats)})")
    table.add_column("Hash", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Progress", justify="right", style="green")
    table.add_column("Downloaded", justify="right")
    table.add_column("Size", justify="right")
    for entry in stats:
        table.add_row(
            entry["hash"][:8],
            entry["name"],
            entry["progress"],
            entry["downloaded"],
            entry["size"],
        )
    console.print(table)


def print_cleanup_summary(deleted: int, loaded: int, duration_s: float):
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column()
    table.add_row("Active Torrents:", str(loaded))
    table.add_row("✓ Deleted:", f"[bold green]{deleted}[/bold green]")
    table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")
    console.print(
        Panel(table, title="[bold]Cleanup Summary[/bold]", border_style="green")
    )
