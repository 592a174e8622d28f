"""Dependency commands - check and install the external tools."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from leaklock.api import Pipeline
from leaklock.cli_commands.helpers import load_settings, progress_printer
from leaklock.errors import LeakLockError
from leaklock.log import configure_logging
from leaklock.output import format_status

console = Console()


def doctor(
    config_file: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to leaklock.toml (auto-detected if not specified)"),
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Log every check command")
    ] = False,
) -> None:
    """Check Docker, the Nosey Parker image, Java and the BFG jar.

    \b
    Exit codes:
      0 - Everything is ready
      1 - At least one dependency is missing
    """
    configure_logging(verbose)
    settings = load_settings(config_file, console)
    status = Pipeline(settings).check_dependencies()
    format_status(status, console)

    if not status.ready:
        console.print(
            f"[yellow]Missing:[/yellow] {', '.join(status.missing)}. "
            "Run [bold]leaklock install[/bold] to fetch the image and BFG."
        )
        raise typer.Exit(code=1)
    console.print("[green]All dependencies are ready.[/green]")


def install(
    config_file: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to leaklock.toml (auto-detected if not specified)"),
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Log every command")
    ] = False,
) -> None:
    """Pull the Nosey Parker image and download BFG if they are missing.

    Docker and Java must be installed separately.
    """
    configure_logging(verbose)
    settings = load_settings(config_file, console)
    try:
        status = Pipeline(settings).install_dependencies(progress_printer(console))
    except LeakLockError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from e

    format_status(status, console)
    if not status.ready:
        console.print(
            f"[yellow]Still missing:[/yellow] {', '.join(status.missing)} "
            "(install these manually)"
        )
        raise typer.Exit(code=1)
