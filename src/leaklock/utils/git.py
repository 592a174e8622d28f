"""Git utilities for leaklock.

Read-only helpers used to validate remediation targets and to mark
findings in files git does not track.
"""

from __future__ import annotations

from pathlib import Path

from leaklock.errors import LeakLockError
from leaklock.utils.process import ProcessExecutor, ProcessResult


class GitError(LeakLockError):
    """Error executing git command."""

    pass


def _git(
    args: list[str],
    cwd: Path,
    executor: ProcessExecutor | None = None,
    git_binary: str = "git",
) -> ProcessResult | None:
    """Run a git query, returning None when git is unusable."""
    executor = executor or ProcessExecutor()
    try:
        return executor.run([git_binary, *args], cwd=cwd, timeout=10, operation="git")
    except (LeakLockError, OSError):
        return None


def is_git_repo(path: Path, executor: ProcessExecutor | None = None) -> bool:
    """
    Check if the given path is inside a git work tree.

    Parameters:
        path: Path to check.

    Returns:
        True if path is inside a git work tree, False otherwise.
    """
    if not path.exists():
        return False
    result = _git(
        ["rev-parse", "--is-inside-work-tree"],
        cwd=path if path.is_dir() else path.parent,
        executor=executor,
    )
    return result is not None and result.ok and result.stdout.strip() == "true"


def get_git_root(path: Path, executor: ProcessExecutor | None = None) -> Path | None:
    """
    Get the root directory of the git repository containing the given path.

    Parameters:
        path: Path inside the git repository.

    Returns:
        Path to the git root, or None if not in a git repository.
    """
    if not path.exists():
        return None
    result = _git(
        ["rev-parse", "--show-toplevel"],
        cwd=path if path.is_dir() else path.parent,
        executor=executor,
    )
    if result is not None and result.ok and result.stdout.strip():
        return Path(result.stdout.strip()).resolve()
    return None


def list_untracked_files(repo_dir: Path, executor: ProcessExecutor | None = None) -> set[Path]:
    """
    List files in the work tree that git does not track (ignored files included).

    Parameters:
        repo_dir: Any directory inside the work tree.

    Returns:
        Set of absolute, resolved paths.

    Raises:
        GitError: If ``repo_dir`` is not inside a work tree or git fails.
    """
    git_root = get_git_root(repo_dir, executor=executor)
    if not git_root:
        raise GitError(f"Not a git repository: {repo_dir}")

    result = _git(["ls-files", "--others", "-z"], cwd=git_root, executor=executor)
    if result is None or not result.ok:
        stderr = result.stderr.strip() if result else "git unavailable"
        raise GitError(f"git ls-files failed: {stderr}")

    return {(git_root / name).resolve() for name in result.stdout.split("\0") if name}
