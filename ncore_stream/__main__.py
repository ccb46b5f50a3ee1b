"""
Main entry point for the ncore-stream application.
This module handles top-level setup, exception handling, and CLI invocation.
"""

import asyncio
import logging
import sys

import typer
from rich.console import Console

from ncore_stream.cli.app import app
from ncore_stream.cli.formatters import format_error_with_suggestions
from ncore_stream.exceptions import NcoreStreamError


def main() -> None:
    """Main entry point function."""
    log = logging.getLogger("ncore_stream")
    console = Console()

    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]⚠️  Interrupted, shutting down.[/yellow]")
        sys.exit(0)
    except NcoreStreamError as e:
        console.print(f"\n{format_error_with_suggestions(e)}")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n{format_error_with_suggestions(e, {'type': 'Unexpected'})}")
        log.debug("Full traceback:", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
