"""Console and JSON rendering for findings, dependency status and run outcomes."""

from __future__ import annotations

import json
from collections.abc import Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from leaklock.models import DependencyStatus, Finding, FindingSeverity, RunOutcome

SEVERITY_STYLES: dict[FindingSeverity, str] = {
    FindingSeverity.HIGH: "bold red",
    FindingSeverity.MEDIUM: "yellow",
    FindingSeverity.LOW: "green",
    FindingSeverity.WARNING: "dim",
}


def format_json(findings: Sequence[Finding]) -> str:
    """Serialize findings without their full secret text."""
    return json.dumps(
        {"total": len(findings), "findings": [f.to_dict() for f in findings]},
        indent=2,
    )


def format_rich(findings: Sequence[Finding], console: Console) -> None:
    if not findings:
        console.print("[green]No secrets found.[/green]")
        return

    table = Table(title=f"{len(findings)} potential secret(s)", show_lines=False)
    table.add_column("Severity")
    table.add_column("Rule")
    table.add_column("Location", overflow="fold")
    table.add_column("Preview", overflow="fold")
    table.add_column("Notes", style="dim")

    for finding in findings:
        notes = []
        if finding.git_history:
            notes.append("git history")
        if finding.dependency:
            notes.append("dependency dir")
        if finding.untracked:
            notes.append("untracked")
        style = SEVERITY_STYLES.get(finding.severity, "")
        table.add_row(
            f"[{style}]{finding.severity.value}[/{style}]" if style else finding.severity.value,
            escape(finding.rule_name) or "-",
            escape(f"{finding.file_path}:{finding.line}"),
            escape(finding.preview),
            ", ".join(notes),
        )
    console.print(table)


def format_status(status: DependencyStatus, console: Console) -> None:
    table = Table(title="Dependencies")
    table.add_column("Dependency")
    table.add_column("Status")
    table.add_column("Details", overflow="fold")
    for name, ok in status.installed.items():
        table.add_row(
            name,
            "[green]ready[/green]" if ok else "[red]missing[/red]",
            escape(status.details.get(name, "")),
        )
    console.print(table)


def format_outcome(outcome: RunOutcome, console: Console) -> None:
    if outcome.succeeded:
        console.print(
            f"[green]History rewritten with {outcome.rules_applied} rule(s) "
            "and old objects purged.[/green]"
        )
        console.print("[dim]Force push to update remotes: git push --force-with-lease[/dim]")
    elif outcome.partial:
        console.print(
            f"[yellow]History was rewritten, but git maintenance stopped after "
            f"'{outcome.stage.value}':[/yellow] {escape(str(outcome.error))}"
        )
        console.print(
            "[dim]Finish manually: git reflog expire --expire=now --all && "
            "git gc --prune=now --aggressive[/dim]"
        )
    else:
        failed = outcome.failed_stage.value if outcome.failed_stage else "unknown"
        console.print(f"[red]Remediation failed at '{failed}':[/red] {escape(str(outcome.error))}")
        console.print("[dim]BFG did not complete; git maintenance was skipped.[/dim]")
