"""Normalize Nosey Parker JSON reports into Finding records.

The report is an array of rule entries:

    [
      {
        "rule_name": "AWS API Key",
        "matches": [
          {
            "provenance": [{"kind": "file", "path": "/scan/src/app.js"}],
            "location": {"source_span": {"start": {"line": 3, "column": 7}}},
            "snippet": {"before": "...", "matching": "AKIA...", "after": "..."}
          }
        ]
      }
    ]

Matches found in git history carry a ``git_repo`` provenance whose
``first_commit.blob_path`` is the file path inside the repository.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from leaklock.errors import ReportUnparseableError
from leaklock.models import Finding
from leaklock.scanner.classify import (
    PREVIEW_LIMIT,
    is_dependency_path,
    severity_for_rule,
    truncate_preview,
)

logger = logging.getLogger(__name__)

# Canonical field first. Older scanner releases used "rule".
RULE_NAME_FIELDS: tuple[str, ...] = ("rule_name", "rule")

# Where the scan target is mounted inside the container.
CONTAINER_MOUNT = "/scan"


def _rule_name(entry: dict[str, Any]) -> str:
    for key in RULE_NAME_FIELDS:
        value = entry.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def _provenances(match: dict[str, Any]) -> list[dict[str, Any]]:
    provenance = match.get("provenance")
    if isinstance(provenance, dict):
        return [provenance]
    if isinstance(provenance, list):
        return [p for p in provenance if isinstance(p, dict)]
    return []


def _source_path(match: dict[str, Any]) -> tuple[str, bool]:
    """Return (reported path, came from git history)."""
    provenances = _provenances(match)
    git_history = any(p.get("kind") == "git_repo" for p in provenances)

    for prov in provenances:
        first_commit = prov.get("first_commit")
        if prov.get("kind") == "git_repo" and isinstance(first_commit, dict):
            blob_path = first_commit.get("blob_path")
            if isinstance(blob_path, str) and blob_path.strip():
                return blob_path.strip(), git_history

    for prov in provenances:
        path = prov.get("path")
        if isinstance(path, str) and path.strip():
            return path.strip(), git_history

    return "", git_history


def _line(match: dict[str, Any]) -> int:
    try:
        line = match["location"]["source_span"]["start"]["line"]
    except (KeyError, TypeError):
        return 0
    return line if isinstance(line, int) and not isinstance(line, bool) else 0


def _matching_text(match: dict[str, Any]) -> str:
    snippet = match.get("snippet")
    if isinstance(snippet, dict):
        text = snippet.get("matching")
        if isinstance(text, str):
            return text
    return ""


def strip_mount_prefix(path: str) -> str:
    """Turn a container path under the scan mount into a target-relative one."""
    if path == CONTAINER_MOUNT:
        return ""
    if path.startswith(CONTAINER_MOUNT + "/"):
        return path[len(CONTAINER_MOUNT) + 1 :]
    return path


def resolve_host_path(base_dir: Path, reported: str) -> Path:
    """Map a reported source path onto the host.

    Relative paths are joined to ``base_dir`` and canonicalized. If
    canonicalization fails the naive join is returned instead.
    """
    relative = strip_mount_prefix(reported)
    candidate = Path(relative)
    if candidate.is_absolute():
        return candidate
    joined = base_dir / candidate
    try:
        return joined.resolve()
    except (OSError, RuntimeError, ValueError):
        return Path(base_dir, relative)


def _finding_from_match(
    rule_name: str,
    match: dict[str, Any],
    base_dir: Path,
    preview_length: int,
) -> Finding | None:
    line = _line(match)
    if line <= 0:
        logger.debug("Skipping %s match without a source line", rule_name or "unnamed")
        return None

    reported, git_history = _source_path(match)
    file_path = resolve_host_path(base_dir, reported)

    text = _matching_text(match)
    return Finding(
        rule_name=rule_name,
        file_path=file_path,
        line=line,
        preview=truncate_preview(text, preview_length),
        matched_text=text,
        git_history=git_history,
        dependency=is_dependency_path(strip_mount_prefix(reported)),
        severity=severity_for_rule(rule_name),
    )


def _parse_entries(entries: list[Any], base_dir: Path, preview_length: int) -> list[Finding]:
    findings: list[Finding] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        rule_name = _rule_name(entry)
        matches = entry.get("matches")
        if not isinstance(matches, list):
            continue
        for match in matches:
            if not isinstance(match, dict):
                continue
            finding = _finding_from_match(rule_name, match, base_dir, preview_length)
            if finding is not None:
                findings.append(finding)
    return findings


def parse_report(
    raw: str | None,
    base_dir: Path | str,
    preview_length: int = PREVIEW_LIMIT,
) -> list[Finding]:
    """Parse a raw JSON report into findings.

    Empty or malformed input yields an empty list; this function never
    raises on bad report content. No deduplication is performed.

    Args:
        raw: Report text from ``report --format json``.
        base_dir: Host directory that was scanned.
        preview_length: Maximum preview length, marker included.

    Returns:
        Findings in report order.
    """
    if not raw or not raw.strip():
        return []
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, ValueError, RecursionError):
        logger.warning("Scanner report is not valid JSON; no findings parsed")
        return []
    if not isinstance(data, list):
        logger.warning("Scanner report is not a JSON array; no findings parsed")
        return []
    return _parse_entries(data, Path(base_dir), preview_length)


def parse_report_strict(
    raw: str | None,
    base_dir: Path | str,
    preview_length: int = PREVIEW_LIMIT,
) -> list[Finding]:
    """Like :func:`parse_report` but reject non-empty text that is not a JSON array.

    Raises:
        ReportUnparseableError: If the report has content but cannot be read.
    """
    if not raw or not raw.strip():
        return []
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, ValueError, RecursionError) as e:
        raise ReportUnparseableError(f"Scanner report is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise ReportUnparseableError(
            f"Scanner report must be a JSON array, got {type(data).__name__}"
        )
    return _parse_entries(data, Path(base_dir), preview_length)


def unique_findings(findings: list[Finding]) -> list[Finding]:
    """Drop repeated (file_path, line, preview) findings, keeping the first."""
    seen: set[tuple[Path, int, str]] = set()
    unique: list[Finding] = []
    for finding in findings:
        key = (finding.file_path, finding.line, finding.preview)
        if key in seen:
            continue
        seen.add(key)
        unique.append(finding)
    return unique
