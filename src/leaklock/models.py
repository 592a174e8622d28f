"""Data model shared by the scanner, the remediation steps and the hosts."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from leaklock.errors import LeakLockError


class FindingSeverity(str, Enum):
    """Display severity derived from the rule name."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    WARNING = "warning"


@dataclass(frozen=True)
class Finding:
    """One located occurrence of a candidate secret.

    Attributes:
        rule_name: Scanner rule that matched.
        file_path: Absolute host path of the file.
        line: 1-based line of the match start.
        preview: Bounded preview of the match, safe to display.
        untracked: True if the file is not tracked by git, None if unknown.
        matched_text: Full matched text. Never displayed or serialized;
            only used to build replacement rules.
        git_history: The match was found in git history.
        dependency: The file lives in a dependency or build directory.
        severity: Heuristic severity for display.
    """

    rule_name: str
    file_path: Path
    line: int
    preview: str
    untracked: bool | None = None
    matched_text: str = field(default="", repr=False, compare=False)
    git_history: bool = False
    dependency: bool = False
    severity: FindingSeverity = FindingSeverity.LOW

    @property
    def secret(self) -> str:
        """Text used for remediation (falls back to the preview)."""
        return self.matched_text or self.preview

    def to_dict(self) -> dict[str, Any]:
        """Return a display-safe mapping (no full secret text)."""
        return {
            "rule_name": self.rule_name,
            "file_path": str(self.file_path),
            "line": self.line,
            "preview": self.preview,
            "untracked": self.untracked,
            "git_history": self.git_history,
            "dependency": self.dependency,
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class ReplacementRule:
    """A literal replacement consumed by BFG's --replace-text."""

    pattern: str
    replacement: str

    def to_line(self) -> str:
        return f"{self.pattern}==>{self.replacement}"


@dataclass
class DependencyStatus:
    """Readiness of each external dependency at the time of the check."""

    installed: dict[str, bool] = field(default_factory=dict)
    details: dict[str, str] = field(default_factory=dict)

    def __getitem__(self, name: str) -> bool:
        return self.installed.get(name, False)

    @property
    def ready(self) -> bool:
        return bool(self.installed) and all(self.installed.values())

    @property
    def missing(self) -> list[str]:
        return [name for name, ok in self.installed.items() if not ok]

    def to_dict(self) -> dict[str, bool]:
        return dict(self.installed)


@dataclass(frozen=True)
class ScanSession:
    """Target directory plus the scratch datastore used for one scan."""

    target_dir: Path
    workspace: Path


class RunStage(str, Enum):
    """Stages of a remediation run, in execution order."""

    IDLE = "idle"
    RULES_WRITTEN = "rules_written"
    TOOL_EXECUTED = "tool_executed"
    REFLOG_EXPIRED = "reflog_expired"
    GC_COMPLETED = "gc_completed"
    DONE = "done"


@dataclass
class RunOutcome:
    """Result of a remediation run.

    ``stage`` is the last stage that completed. When ``error`` is set the
    run stopped right after ``stage``.
    """

    stage: RunStage = RunStage.IDLE
    error: LeakLockError | None = None
    rules_applied: int = 0

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.stage is RunStage.DONE

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def partial(self) -> bool:
        """History was rewritten but git maintenance did not finish."""
        return self.failed and self.stage in (
            RunStage.TOOL_EXECUTED,
            RunStage.REFLOG_EXPIRED,
            RunStage.GC_COMPLETED,
        )

    @property
    def failed_stage(self) -> RunStage | None:
        """The stage that was being attempted when the run failed."""
        if not self.failed:
            return None
        order = list(RunStage)
        return order[min(order.index(self.stage) + 1, len(order) - 1)]

    def raise_for_failure(self) -> None:
        if self.error is not None:
            raise self.error


@dataclass(frozen=True)
class ProgressEvent:
    """A stage label emitted by a background task."""

    sequence: int
    label: str
