"""Core API consumed by host integrations.

A Pipeline bundles settings and a process executor. It holds no state
between calls; each scan and remediation owns its workspace, rule file
and outcome. The module-level functions build a fresh Pipeline per call.

Example:
    pipeline = Pipeline()
    status = pipeline.check_dependencies()
    findings = pipeline.scan(Path("."), on_progress=print)
    rules = pipeline.plan_remediation(findings, repo_dir=Path("."))
    outcome = pipeline.run_remediation(Path("."), rules)  # after user confirmation
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from pathlib import Path

from leaklock.config import LeakLockSettings, load_config
from leaklock.dependencies import DOCKER, DependencyVerifier
from leaklock.models import DependencyStatus, Finding, ReplacementRule, RunOutcome
from leaklock.remediation.executor import RemediationExecutor
from leaklock.remediation.planner import build_rules
from leaklock.scanner.noseyparker import NoseyParkerScanner, validate_target
from leaklock.scanner.report import parse_report, parse_report_strict
from leaklock.tasks import StageTask
from leaklock.utils.git import GitError, is_git_repo, list_untracked_files
from leaklock.utils.process import ProcessExecutor

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


def mark_untracked(
    findings: Sequence[Finding],
    target_dir: Path,
    executor: ProcessExecutor | None = None,
) -> list[Finding]:
    """Set ``untracked`` on findings when ``target_dir`` is a git work tree.

    Findings from git history are always tracked content. Outside a work
    tree the flag stays None.
    """
    if not findings or not is_git_repo(target_dir, executor=executor):
        return list(findings)
    try:
        untracked = list_untracked_files(target_dir, executor=executor)
    except GitError as e:
        logger.debug("Could not list untracked files: %s", e)
        return list(findings)
    return [
        dataclasses.replace(f, untracked=(not f.git_history) and f.file_path in untracked)
        for f in findings
    ]


class Pipeline:
    """Scan-and-remediate pipeline."""

    def __init__(
        self,
        settings: LeakLockSettings | None = None,
        executor: ProcessExecutor | None = None,
    ) -> None:
        self.settings = settings or LeakLockSettings()
        self.executor = executor or ProcessExecutor()
        self.verifier = DependencyVerifier(self.settings, self.executor)

    @classmethod
    def from_config(cls, config_file: Path | None = None) -> Pipeline:
        return cls(load_config(config_file))

    def check_dependencies(self) -> DependencyStatus:
        return self.verifier.check_all()

    def install_dependencies(self, on_progress: ProgressCallback | None = None) -> DependencyStatus:
        return self.verifier.install_all(on_progress)

    def scan_raw(self, target_dir: Path, on_progress: ProgressCallback | None = None) -> str:
        """Run the scan and return the unparsed report."""
        target = validate_target(Path(target_dir))
        self.verifier.require(DOCKER)
        scanner = NoseyParkerScanner(self.settings, self.executor)
        return scanner.scan(target, on_progress=on_progress)

    def scan(
        self,
        target_dir: Path,
        on_progress: ProgressCallback | None = None,
        strict: bool = False,
    ) -> list[Finding]:
        """
        Scan ``target_dir`` and return normalized findings.

        Parameters:
            target_dir: Directory to scan.
            on_progress: Receives a stage label at each checkpoint.
            strict: Raise ReportUnparseableError on a malformed report
                instead of returning no findings.
        """
        target = Path(target_dir).resolve()
        raw = self.scan_raw(target, on_progress=on_progress)
        parse = parse_report_strict if strict else parse_report
        findings = parse(raw, target, self.settings.preview_length)
        logger.info("Scan of %s produced %d finding(s)", target, len(findings))
        return mark_untracked(findings, target, executor=self.executor)

    def plan_remediation(
        self,
        findings: Iterable[Finding],
        replacements: Mapping[str, str] | None = None,
        repo_dir: Path | None = None,
    ) -> list[ReplacementRule]:
        return build_rules(
            findings,
            replacements,
            repo_dir=repo_dir,
            mask=self.settings.mask,
            category_masks=self.settings.category_masks,
        )

    def run_remediation(
        self,
        repo_dir: Path,
        rules: Sequence[ReplacementRule],
        on_progress: ProgressCallback | None = None,
    ) -> RunOutcome:
        """Rewrite history. Requires prior explicit user confirmation."""
        executor = RemediationExecutor(self.settings, self.executor, self.verifier)
        return executor.execute(Path(repo_dir), rules, on_progress=on_progress)

    def start_install(self) -> StageTask[DependencyStatus]:
        return StageTask.start(self.install_dependencies)

    def start_scan(self, target_dir: Path, strict: bool = False) -> StageTask[list[Finding]]:
        return StageTask.start(self.scan, Path(target_dir), strict=strict)

    def start_remediation(
        self, repo_dir: Path, rules: Sequence[ReplacementRule]
    ) -> StageTask[RunOutcome]:
        return StageTask.start(self.run_remediation, Path(repo_dir), rules)


def check_dependencies(settings: LeakLockSettings | None = None) -> DependencyStatus:
    return Pipeline(settings).check_dependencies()


def install_dependencies(
    on_progress: ProgressCallback | None = None,
    settings: LeakLockSettings | None = None,
) -> DependencyStatus:
    return Pipeline(settings).install_dependencies(on_progress)


def scan(
    target_dir: Path,
    on_progress: ProgressCallback | None = None,
    settings: LeakLockSettings | None = None,
) -> list[Finding]:
    return Pipeline(settings).scan(target_dir, on_progress=on_progress)


def plan_remediation(
    findings: Iterable[Finding],
    replacements: Mapping[str, str] | None = None,
    repo_dir: Path | None = None,
    settings: LeakLockSettings | None = None,
) -> list[ReplacementRule]:
    return Pipeline(settings).plan_remediation(findings, replacements, repo_dir=repo_dir)


def run_remediation(
    repo_dir: Path,
    rules: Sequence[ReplacementRule],
    on_progress: ProgressCallback | None = None,
    settings: LeakLockSettings | None = None,
) -> RunOutcome:
    return Pipeline(settings).run_remediation(repo_dir, rules, on_progress=on_progress)
