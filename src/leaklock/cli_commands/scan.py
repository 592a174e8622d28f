"""Scan command - find secrets in a directory and its git history.

Configuration can be set in leaklock.toml:
    [leaklock]
    image = "ghcr.io/praetorian-inc/noseyparker:latest"
    git_history = "full"
    scan_timeout = 600
"""

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
from leaklock.output import format_json, format_rich

console = Console()


def scan(
    path: Annotated[
        Path,
        typer.Argument(help="Directory to scan (default: current directory)"),
    ] = Path("."),
    history: Annotated[
        bool | None,
        typer.Option(
            "--history/--no-history",
            help="Include git history (default from config: full)",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output results as JSON"),
    ] = False,
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Fail if the scanner report cannot be parsed"),
    ] = False,
    ci: Annotated[
        bool,
        typer.Option("--ci", help="CI mode: exit with code 1 when secrets are found"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log scanner commands and timings"),
    ] = False,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to leaklock.toml (auto-detected if not specified)"),
    ] = None,
) -> None:
    """Scan a directory for secrets with Nosey Parker.

    \b
    Exit codes:
      0 - Scan finished (or no findings in --ci mode)
      1 - Scan failed, or secrets found in --ci mode

    \b
    Examples:
      leaklock scan                 # Scan the current directory
      leaklock scan ./repo --json   # JSON output for automation
      leaklock scan --no-history    # Working tree only
    """
    configure_logging(verbose)
    settings = load_settings(config_file, console, history=history)
    pipeline = Pipeline(settings)

    try:
        findings = pipeline.scan(
            path,
            on_progress=progress_printer(console, quiet=json_output),
            strict=strict,
        )
    except LeakLockError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from e

    if json_output:
        print(format_json(findings))
    else:
        format_rich(findings, console)

    if ci and findings:
        raise typer.Exit(code=1)
