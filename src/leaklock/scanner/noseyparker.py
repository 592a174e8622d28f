"""Nosey Parker scanner running in Docker.

A scan runs three containers in order against a scratch datastore:

1. ``datastore init`` creates the datastore in the workspace.
2. ``scan`` reads the target (mounted read-only) into the datastore.
   Nosey Parker exits with a dedicated code when it found matches; that
   code is not an error.
3. ``report --format json`` prints the findings.

The workspace is created per scan and removed when the scan ends,
whether it succeeded or not.
"""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import tempfile
import time
import uuid
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

from leaklock.config import LeakLockSettings
from leaklock.errors import (
    InvalidTargetError,
    LeakLockError,
    ProcessTimeoutError,
    ScanFailedError,
)
from leaklock.models import ScanSession
from leaklock.utils.process import ProcessExecutor, ProcessResult

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

WORKSPACE_PREFIX = ".noseyparker-temp-"
DATASTORE_MOUNT = "/datastore"
SCAN_MOUNT = "/scan"
CONTAINER_PREFIX = "leaklock"

STAGE_INIT = "init"
STAGE_SCAN = "scan"
STAGE_REPORT = "report"


def validate_target(target_dir: Path) -> Path:
    """Return the resolved target or raise InvalidTargetError."""
    if not target_dir.exists():
        raise InvalidTargetError(target_dir, "directory does not exist")
    if not target_dir.is_dir():
        raise InvalidTargetError(target_dir, "not a directory")
    if not os.access(target_dir, os.R_OK | os.X_OK):
        raise InvalidTargetError(target_dir, "directory is not readable")
    return target_dir.resolve()


class NoseyParkerScanner:
    """Runs the containerized three-phase scan.

    Example:
        scanner = NoseyParkerScanner()
        raw = scanner.scan(Path("."), on_progress=print)
        findings = parse_report(raw, Path(".").resolve())
    """

    def __init__(
        self,
        settings: LeakLockSettings | None = None,
        executor: ProcessExecutor | None = None,
        workspace_root: Path | None = None,
    ) -> None:
        """
        Parameters:
            settings: Image, exit code and timeout settings.
            executor: Process runner; injected by tests.
            workspace_root: Parent directory for scratch datastores
                (defaults to the system temp directory).
        """
        self.settings = settings or LeakLockSettings()
        self.executor = executor or ProcessExecutor()
        self.workspace_root = workspace_root

    @contextlib.contextmanager
    def session(self, target_dir: Path) -> Iterator[ScanSession]:
        """Create a uniquely named workspace for one scan and remove it afterwards."""
        workspace = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=self.workspace_root))
        logger.debug("Created scan workspace %s", workspace)
        try:
            yield ScanSession(target_dir=target_dir, workspace=workspace)
        finally:
            self._remove_workspace(workspace)

    def _remove_workspace(self, workspace: Path) -> None:
        try:
            shutil.rmtree(workspace)
            return
        except FileNotFoundError:
            return
        except OSError as e:
            logger.debug("rmtree of %s failed (%s), retrying inside a container", workspace, e)

        # Files written by the container may be owned by root.
        try:
            self.executor.run(
                [
                    self.settings.docker_binary,
                    "run",
                    "--rm",
                    "-v",
                    f"{workspace.parent}:/workspace",
                    self.settings.cleanup_image,
                    "rm",
                    "-rf",
                    f"/workspace/{workspace.name}",
                ],
                timeout=self.settings.init_timeout,
                operation="workspace cleanup",
            )
        except LeakLockError as e:
            logger.warning("Could not remove scan workspace %s: %s", workspace, e)
            return
        if workspace.exists():
            logger.warning("Scan workspace %s was left behind", workspace)

    def _docker_run(self, name: str, volumes: list[str], args: list[str]) -> list[str]:
        command = [self.settings.docker_binary, "run", "--rm", "--name", name]
        for volume in volumes:
            command.extend(["-v", volume])
        command.append(self.settings.image)
        command.extend(args)
        return command

    def _remove_container(self, name: str) -> None:
        # Killing the docker client does not stop the container itself.
        try:
            self.executor.run(
                [self.settings.docker_binary, "rm", "-f", name],
                timeout=self.settings.init_timeout,
                operation="container cleanup",
            )
        except LeakLockError as e:
            logger.warning("Could not remove container %s: %s", name, e)

    def _run_phase(
        self,
        stage: str,
        volumes: list[str],
        args: list[str],
        timeout: float,
        accepted: tuple[int, ...] = (0,),
    ) -> ProcessResult:
        name = f"{CONTAINER_PREFIX}-{stage}-{uuid.uuid4().hex[:12]}"
        command = self._docker_run(name, volumes, args)
        started = time.time()
        try:
            result = self.executor.run(command, timeout=timeout, operation=f"scan:{stage}")
        except ProcessTimeoutError:
            self._remove_container(name)
            raise
        logger.debug(
            "Phase %s finished with exit %d in %dms",
            stage,
            result.exit_code,
            int((time.time() - started) * 1000),
        )
        if result.exit_code not in accepted:
            raise ScanFailedError(stage, result.exit_code, result.stderr or result.stdout)
        return result

    def init_datastore(self, session: ScanSession) -> None:
        self._run_phase(
            STAGE_INIT,
            [f"{session.workspace}:{DATASTORE_MOUNT}"],
            ["datastore", "init", "--datastore", DATASTORE_MOUNT],
            timeout=self.settings.init_timeout,
        )

    def scan_target(self, session: ScanSession) -> ProcessResult:
        return self._run_phase(
            STAGE_SCAN,
            [
                f"{session.target_dir}:{SCAN_MOUNT}:ro",
                f"{session.workspace}:{DATASTORE_MOUNT}",
            ],
            [
                "scan",
                "--datastore",
                DATASTORE_MOUNT,
                "--git-history",
                self.settings.git_history,
                SCAN_MOUNT,
            ],
            timeout=self.settings.scan_timeout,
            accepted=(0, self.settings.findings_exit_code),
        )

    def generate_report(self, session: ScanSession) -> str:
        result = self._run_phase(
            STAGE_REPORT,
            [f"{session.workspace}:{DATASTORE_MOUNT}"],
            ["report", "--datastore", DATASTORE_MOUNT, "--format", "json"],
            timeout=self.settings.report_timeout,
        )
        return result.stdout

    def scan(
        self,
        target_dir: Path,
        on_progress: Callable[[str], None] | None = None,
    ) -> str:
        """
        Scan ``target_dir`` and return the raw JSON report text.

        Raises:
            InvalidTargetError: If the directory is missing or unreadable.
            ScanFailedError: If a phase exits with a fatal code.
            ProcessTimeoutError: If a phase exceeds its timeout.
            DependencyMissingError: If the docker executable is missing.
        """
        progress = on_progress or (lambda x: None)
        target = validate_target(Path(target_dir))

        with self.session(target) as session:
            progress("Initializing datastore")
            self.init_datastore(session)

            progress(f"Scanning {target}")
            scan_result = self.scan_target(session)
            if scan_result.exit_code == self.settings.findings_exit_code:
                logger.info("Scanner reported matches in %s", target)

            progress("Generating report")
            return self.generate_report(session)
