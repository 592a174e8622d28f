"""Exception hierarchy for the scan-and-remediate pipeline.

Every error keeps the stage or tool that failed and the captured
diagnostic text, so the failing command can be reproduced by hand.
"""

from __future__ import annotations

from pathlib import Path


class LeakLockError(Exception):
    """Base exception for leaklock operations."""

    pass


class DependencyMissingError(LeakLockError):
    """A required external tool is not available."""

    def __init__(self, name: str, detail: str | None = None) -> None:
        self.name = name
        self.detail = detail
        message = f"Required dependency '{name}' is not available"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class InvalidTargetError(LeakLockError):
    """The scan target cannot be used."""

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Invalid target {self.path}: {reason}")


class ScanFailedError(LeakLockError):
    """A scan phase exited with a fatal code."""

    def __init__(self, stage: str, exit_code: int, stderr: str) -> None:
        self.stage = stage
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"Scan {stage} phase failed (exit {exit_code}): {stderr.strip()}")


class ReportUnparseableError(LeakLockError):
    """The scanner report is not a JSON array of rule entries."""

    pass


class RemediationRefusedError(LeakLockError):
    """Remediation preconditions are not met; nothing was touched."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Remediation refused: {reason}")


class ToolFailedError(LeakLockError):
    """An external tool returned a nonzero exit code."""

    def __init__(self, tool: str, exit_code: int, stderr: str) -> None:
        self.tool = tool
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"{tool} failed (exit {exit_code}): {stderr.strip()}")


class ProcessTimeoutError(LeakLockError):
    """An external process exceeded its timeout and was terminated."""

    def __init__(self, operation: str, timeout: float | None = None) -> None:
        self.operation = operation
        self.timeout = timeout
        suffix = f" after {timeout:g}s" if timeout is not None else ""
        super().__init__(f"{operation} timed out{suffix}")


class BfgInstallError(LeakLockError):
    """Failed to download the BFG jar."""

    pass
