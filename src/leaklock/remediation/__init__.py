"""Git history remediation: plan replacement rules, then run BFG and git maintenance."""

from leaklock.remediation.executor import RemediationExecutor, manual_command, write_rules_file
from leaklock.remediation.planner import DEFAULT_MASK, build_rules, escape_pattern, validate_repository

__all__ = [
    "DEFAULT_MASK",
    "RemediationExecutor",
    "build_rules",
    "escape_pattern",
    "manual_command",
    "validate_repository",
    "write_rules_file",
]
