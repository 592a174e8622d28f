"""Rewrite git history with BFG Repo-Cleaner, then purge old objects.

This is irreversible. Callers must have the user's explicit confirmation
before calling :meth:`RemediationExecutor.execute`.

Stages run strictly in order:

    idle -> rules_written -> tool_executed -> reflog_expired -> gc_completed -> done

A failure stops the run and is reported together with the last stage
that completed. A run that rewrote history but did not finish git
maintenance is a partial outcome; nothing is rolled back and nothing is
retried.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from leaklock.config import LeakLockSettings
from leaklock.dependencies import BFG, JAVA, DependencyVerifier, get_bfg_path
from leaklock.errors import LeakLockError, RemediationRefusedError, ToolFailedError
from leaklock.models import ReplacementRule, RunOutcome, RunStage
from leaklock.remediation.planner import validate_repository
from leaklock.utils.process import ProcessExecutor, format_command

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

RULES_FILE_PREFIX = ".leaklock-replacements-"
RULES_FILE_SUFFIX = ".txt"


def write_rules_file(repo_dir: Path, rules: Sequence[ReplacementRule]) -> Path:
    """Write ``rules`` to a new, uniquely named file inside ``repo_dir``."""
    fd, name = tempfile.mkstemp(prefix=RULES_FILE_PREFIX, suffix=RULES_FILE_SUFFIX, dir=repo_dir)
    path = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write("\n".join(rule.to_line() for rule in rules))
            f.write("\n")
    except BaseException:
        path.unlink(missing_ok=True)
        raise
    return path


def bfg_command(java: str, bfg_jar: Path, rules_file: Path) -> list[str]:
    return [java, "-jar", str(bfg_jar), "--replace-text", str(rules_file)]


def reflog_expire_command(git: str) -> list[str]:
    return [git, "reflog", "expire", "--expire=now", "--all"]


def gc_command(git: str) -> list[str]:
    return [git, "gc", "--prune=now", "--aggressive"]


def manual_command(
    repo_dir: Path,
    bfg_jar: Path,
    rules_file: Path,
    settings: LeakLockSettings | None = None,
) -> str:
    """Shell text that performs the same rewrite by hand."""
    settings = settings or LeakLockSettings()
    steps = [
        ["cd", str(repo_dir)],
        bfg_command(settings.java_binary, bfg_jar, rules_file),
        reflog_expire_command(settings.git_binary),
        gc_command(settings.git_binary),
    ]
    return " && ".join(format_command(step) for step in steps)


class RemediationExecutor:
    """Runs BFG against a repository and performs git maintenance."""

    def __init__(
        self,
        settings: LeakLockSettings | None = None,
        executor: ProcessExecutor | None = None,
        verifier: DependencyVerifier | None = None,
    ) -> None:
        self.settings = settings or LeakLockSettings()
        self.executor = executor or ProcessExecutor()
        self.verifier = verifier or DependencyVerifier(self.settings, self.executor)

    def _run_tool(self, tool: str, command: list[str], repo_dir: Path, timeout: float) -> None:
        result = self.executor.run(command, cwd=repo_dir, timeout=timeout, operation=tool)
        if not result.ok:
            raise ToolFailedError(tool, result.exit_code, result.stderr or result.stdout)

    def execute(
        self,
        repo_dir: Path,
        rules: Sequence[ReplacementRule],
        on_progress: Callable[[str], None] | None = None,
    ) -> RunOutcome:
        """
        Remove the rule patterns from the history of ``repo_dir``.

        Parameters:
            repo_dir: Root of the git repository to rewrite.
            rules: Replacement rules from :func:`build_rules`.
            on_progress: Receives a label before each step.

        Returns:
            RunOutcome with the last completed stage and the error, if any.

        Raises:
            RemediationRefusedError: If there are no rules or ``repo_dir`` is
                not a repository root. Nothing is written in that case.
            DependencyMissingError: If java or the BFG jar is missing.
        """
        progress = on_progress or (lambda x: None)
        if not rules:
            raise RemediationRefusedError("no replacement rules")
        repo_dir = validate_repository(Path(repo_dir))
        self.verifier.require(JAVA, BFG)
        bfg_jar = get_bfg_path(self.settings)

        outcome = RunOutcome(rules_applied=len(rules))
        progress("Writing replacement rules")
        rules_file = write_rules_file(repo_dir, rules)
        outcome.stage = RunStage.RULES_WRITTEN
        try:
            progress("Rewriting history with BFG")
            self._run_tool(
                "bfg",
                bfg_command(self.settings.java_binary, bfg_jar, rules_file),
                repo_dir,
                self.settings.bfg_timeout,
            )
            outcome.stage = RunStage.TOOL_EXECUTED

            progress("Expiring reflog")
            self._run_tool(
                "git reflog expire",
                reflog_expire_command(self.settings.git_binary),
                repo_dir,
                self.settings.reflog_timeout,
            )
            outcome.stage = RunStage.REFLOG_EXPIRED

            progress("Running git gc")
            self._run_tool(
                "git gc",
                gc_command(self.settings.git_binary),
                repo_dir,
                self.settings.gc_timeout,
            )
            outcome.stage = RunStage.GC_COMPLETED
        except LeakLockError as e:
            outcome.error = e
            if outcome.partial:
                logger.warning(
                    "History was rewritten but git maintenance stopped after %s: %s",
                    outcome.stage.value,
                    e,
                )
            else:
                logger.error("History rewrite failed: %s", e)
            return outcome
        finally:
            rules_file.unlink(missing_ok=True)

        outcome.stage = RunStage.DONE
        progress("Done")
        return outcome
