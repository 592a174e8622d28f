"""Utility modules for leaklock."""

from leaklock.utils.git import (
    GitError,
    get_git_root,
    is_git_repo,
    list_untracked_files,
)
from leaklock.utils.process import ProcessExecutor, ProcessResult, format_command, run_command

__all__ = [
    "GitError",
    "ProcessExecutor",
    "ProcessResult",
    "format_command",
    "get_git_root",
    "is_git_repo",
    "list_untracked_files",
    "run_command",
]
