"""Turn selected findings into BFG replace-text rules."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path

from leaklock.errors import RemediationRefusedError
from leaklock.models import Finding, ReplacementRule
from leaklock.scanner.classify import category_mask
from leaklock.utils.git import get_git_root

logger = logging.getLogger(__name__)

DEFAULT_MASK = "***REMOVED***"
RULE_SEPARATOR = "==>"


def escape_pattern(text: str) -> str:
    """Escape rule-file metacharacters so BFG treats ``text`` literally."""
    return text.replace("\\", "\\\\")


def validate_repository(repo_dir: Path) -> Path:
    """Return the resolved repository root or raise RemediationRefusedError."""
    repo_dir = Path(repo_dir)
    if not repo_dir.is_dir():
        raise RemediationRefusedError(f"repository directory does not exist: {repo_dir}")
    root = get_git_root(repo_dir)
    if root is None:
        raise RemediationRefusedError(f"not a git repository: {repo_dir}")
    if root != repo_dir.resolve():
        raise RemediationRefusedError(
            f"{repo_dir} is inside repository {root}; run against the repository root"
        )
    return root


def _validate_replacement(value: str) -> str:
    if "\n" in value or "\r" in value or RULE_SEPARATOR in value:
        raise RemediationRefusedError(
            f"replacement {value!r} may not contain newlines or '{RULE_SEPARATOR}'"
        )
    return value


def _secret_lines(secret: str) -> list[str]:
    """Multi-line matches become one literal per non-blank line."""
    return [line for line in secret.splitlines() if line.strip()]


def build_rules(
    findings: Iterable[Finding],
    replacements: Mapping[str, str] | None = None,
    *,
    repo_dir: Path | None = None,
    mask: str = DEFAULT_MASK,
    category_masks: bool = False,
) -> list[ReplacementRule]:
    """
    Build deduplicated replacement rules for the given findings.

    Parameters:
        findings: Findings the user selected for removal.
        replacements: Optional replacement per secret. Keys may be the full
            matched text or the preview shown to the user.
        repo_dir: Repository the rules are meant for; validated when given.
        mask: Replacement used when none is supplied.
        category_masks: Use a per-category mask (API key, password, ...)
            derived from the rule name instead of ``mask``.

    Returns:
        Rules with unique patterns, in first-seen order.

    Raises:
        RemediationRefusedError: If there are no findings, the repository
            is invalid, or a supplied replacement cannot be expressed.
    """
    findings = list(findings)
    if not findings:
        raise RemediationRefusedError("no findings selected")
    if repo_dir is not None:
        validate_repository(repo_dir)

    replacements = replacements or {}
    rules: dict[str, ReplacementRule] = {}
    skipped = 0

    for finding in findings:
        secret = finding.secret
        if finding.matched_text in replacements:
            replacement = _validate_replacement(replacements[finding.matched_text])
        elif finding.preview in replacements:
            replacement = _validate_replacement(replacements[finding.preview])
        elif category_masks:
            replacement = category_mask(finding.rule_name, mask)
        else:
            replacement = mask

        for literal in _secret_lines(secret):
            if RULE_SEPARATOR in literal:
                skipped += 1
                continue
            pattern = escape_pattern(literal)
            if pattern not in rules:
                rules[pattern] = ReplacementRule(pattern=pattern, replacement=replacement)

    if skipped:
        logger.warning(
            "Skipped %d secret line(s) containing '%s'; remove them manually",
            skipped,
            RULE_SEPARATOR,
        )
    if not rules:
        raise RemediationRefusedError("no finding produced a usable replacement rule")

    logger.debug("Planned %d replacement rule(s) from %d finding(s)", len(rules), len(findings))
    return list(rules.values())
