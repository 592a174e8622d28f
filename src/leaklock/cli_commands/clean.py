"""Clean command - scan a repository and scrub the findings from git history."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from leaklock.api import Pipeline
from leaklock.cli_commands.helpers import load_settings, parse_replacements, progress_printer
from leaklock.dependencies import get_bfg_path
from leaklock.errors import LeakLockError
from leaklock.log import configure_logging
from leaklock.output import format_outcome, format_rich
from leaklock.remediation.executor import manual_command
from leaklock.remediation.planner import validate_repository
from leaklock.scanner.report import unique_findings

console = Console()

EXIT_FAILED = 1
EXIT_PARTIAL = 3


def clean(
    path: Annotated[
        Path,
        typer.Argument(help="Repository root to clean (default: current directory)"),
    ] = Path("."),
    replace: Annotated[
        list[str] | None,
        typer.Option(
            "--replace",
            "-r",
            help="Replacement for one secret as SECRET=REPLACEMENT (repeatable)",
        ),
    ] = None,
    skip_dependencies: Annotated[
        bool,
        typer.Option(
            "--skip-dependencies",
            help="Leave findings in dependency/build directories alone",
        ),
    ] = False,
    history: Annotated[
        bool | None,
        typer.Option("--history/--no-history", help="Include git history in the scan"),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Show what would run without rewriting history"),
    ] = False,
    rules_out: Annotated[
        Path | None,
        typer.Option("--rules-out", help="With --dry-run, write the BFG rules file here"),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Do not ask for confirmation"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log every command"),
    ] = False,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to leaklock.toml (auto-detected if not specified)"),
    ] = None,
) -> None:
    """Remove detected secrets from the entire git history.

    WARNING: this permanently rewrites history. Back up the repository
    first; remotes must be force-pushed afterwards.

    \b
    Exit codes:
      0 - History rewritten and cleaned up (or nothing to do)
      1 - Refused or failed before history was rewritten
      3 - History rewritten but git maintenance did not finish
    """
    configure_logging(verbose)
    settings = load_settings(config_file, console, history=history)
    pipeline = Pipeline(settings)
    replacements = parse_replacements(replace)

    try:
        repo_dir = validate_repository(path)
        findings = unique_findings(
            pipeline.scan(repo_dir, on_progress=progress_printer(console))
        )
    except LeakLockError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=EXIT_FAILED) from e

    if skip_dependencies:
        findings = [f for f in findings if not f.dependency]

    if not findings:
        console.print("[green]No secrets found. Nothing to clean.[/green]")
        return

    format_rich(findings, console)

    try:
        rules = pipeline.plan_remediation(findings, replacements, repo_dir=repo_dir)
    except LeakLockError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=EXIT_FAILED) from e

    if dry_run:
        rules_file = rules_out or repo_dir / "replacements.txt"
        if rules_out is not None:
            rules_out.write_text(
                "\n".join(rule.to_line() for rule in rules) + "\n", encoding="utf-8"
            )
            console.print(f"Wrote {len(rules)} rule(s) to {escape(str(rules_out))}")
        else:
            console.print(f"{len(rules)} replacement rule(s) planned.")
            console.print(
                "[yellow]Note:[/yellow] the rules file is not written. "
                "Rerun with --rules-out to create it."
            )
        console.print("[bold]Manual command:[/bold]")
        console.print(
            manual_command(repo_dir, get_bfg_path(settings), rules_file, settings),
            markup=False,
            soft_wrap=True,
        )
        return

    if not yes:
        typer.confirm(
            f"This will permanently rewrite the git history of {repo_dir} "
            f"to remove {len(rules)} secret(s). Continue?",
            abort=True,
        )

    try:
        outcome = pipeline.run_remediation(repo_dir, rules, on_progress=progress_printer(console))
    except LeakLockError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=EXIT_FAILED) from e

    format_outcome(outcome, console)
    if outcome.partial:
        raise typer.Exit(code=EXIT_PARTIAL)
    if outcome.failed:
        raise typer.Exit(code=EXIT_FAILED)
