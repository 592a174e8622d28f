"""Run one external command with a timeout and captured output.

All commands are argument lists; nothing is executed through a shell.
``format_command`` is the only place that turns arguments into a shell
string, and only for display (diagnostics and manual command hints).
"""

from __future__ import annotations

import logging
import os
import platform
import shlex
import signal
import subprocess  # nosec B404
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from leaklock.errors import DependencyMissingError, InvalidTargetError, ProcessTimeoutError

logger = logging.getLogger(__name__)

_IS_WINDOWS = platform.system() == "Windows"


@dataclass(frozen=True)
class ProcessResult:
    """Exit code and captured output of a finished command."""

    args: tuple[str, ...]
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def format_command(args: Sequence[str]) -> str:
    """Render an argument list as a copy-pasteable command line."""
    if _IS_WINDOWS:
        return subprocess.list2cmdline(list(args))
    return shlex.join(args)


def _kill_tree(proc: subprocess.Popen) -> None:
    """Forcibly terminate ``proc`` and, where possible, its descendants."""
    if _IS_WINDOWS:
        try:
            subprocess.run(  # nosec B603, B607
                ["taskkill", "/T", "/F", "/PID", str(proc.pid)],
                capture_output=True,
                timeout=10,
            )
        except (OSError, subprocess.TimeoutExpired):
            pass
    else:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            pass
    if proc.poll() is None:
        proc.kill()


class ProcessExecutor:
    """Executes external commands.

    Instances hold no state between calls, so one executor can serve
    concurrent scans. Tests substitute a fake with the same ``run``
    signature.
    """

    def run(
        self,
        command: Sequence[str],
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        operation: str | None = None,
    ) -> ProcessResult:
        """Run ``command`` and wait for it.

        Args:
            command: Executable followed by its arguments.
            cwd: Working directory for the child.
            env: Variables merged over the current environment.
            timeout: Seconds before the process tree is killed.
            operation: Name used in timeout errors (defaults to the executable).

        Returns:
            ProcessResult with the exit code and decoded output.

        Raises:
            DependencyMissingError: If the executable cannot be found or run.
            InvalidTargetError: If ``cwd`` is not an existing directory.
            ProcessTimeoutError: If the command exceeded ``timeout``.
        """
        args = tuple(str(a) for a in command)
        operation = operation or Path(args[0]).name
        child_env = {**os.environ, **env} if env else None

        if cwd is not None and not Path(cwd).is_dir():
            raise InvalidTargetError(cwd, "working directory does not exist")

        logger.debug("Running: %s", format_command(args))

        popen_kwargs: dict = {}
        if _IS_WINDOWS:
            popen_kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            popen_kwargs["start_new_session"] = True

        try:
            proc = subprocess.Popen(  # nosec B603
                args,
                cwd=str(cwd) if cwd is not None else None,
                env=child_env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                **popen_kwargs,
            )
        except FileNotFoundError as e:
            raise DependencyMissingError(args[0], "executable not found on PATH") from e
        except PermissionError as e:
            raise DependencyMissingError(args[0], "not executable") from e

        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            logger.warning("%s exceeded %ss, terminating", operation, timeout)
            _kill_tree(proc)
            try:
                proc.communicate(timeout=5)
            except subprocess.TimeoutExpired:
                logger.debug("%s pipes still open after kill", operation)
            raise ProcessTimeoutError(operation, timeout) from e

        logger.debug("%s exited with %d", operation, proc.returncode)
        return ProcessResult(
            args=args,
            exit_code=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
        )


def run_command(
    command: Sequence[str],
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
    operation: str | None = None,
) -> ProcessResult:
    """Shortcut for ``ProcessExecutor().run``."""
    return ProcessExecutor().run(command, cwd=cwd, env=env, timeout=timeout, operation=operation)
