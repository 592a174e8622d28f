"""Display classification for findings.

These tables do not decide what is a secret (the scanner does that); they
only rank findings for display and flag matches in vendored or generated
directories.
"""

from __future__ import annotations

from pathlib import PurePath

from leaklock.models import FindingSeverity

PREVIEW_LIMIT = 120
TRUNCATION_MARKER = "…"

HIGH_RISK_KEYWORDS: tuple[str, ...] = (
    "api_key",
    "secret_key",
    "private_key",
    "password",
    "token",
)

MEDIUM_RISK_KEYWORDS: tuple[str, ...] = (
    "url",
    "connection_string",
    "config",
)

# Directory names whose contents are third-party, generated or tool state.
DEPENDENCY_DIRS: frozenset[str] = frozenset(
    {
        "node_modules",
        "npm-cache",
        ".npm",
        "venv",
        ".venv",
        "env",
        "__pycache__",
        ".tox",
        "site-packages",
        "dist",
        "build",
        "target",
        ".m2",
        ".gradle",
        "vendor",
        ".bundle",
        "gems",
        "composer",
        "packages",
        "bin",
        "obj",
        "out",
        ".cargo",
        "Pods",
        ".cache",
        ".idea",
        ".vscode",
    }
)

DEFAULT_CATEGORY_MASKS: dict[str, str] = {
    "api_key": "***REMOVED_API_KEY***",
    "password": "***REMOVED_PASSWORD***",
    "private_key": "***REMOVED_PRIVATE_KEY***",
    "token": "***REMOVED_TOKEN***",
    "secret": "***REMOVED_SECRET***",
}


def _normalize_rule(rule_name: str) -> str:
    return rule_name.lower().replace(" ", "_").replace("-", "_")


def severity_for_rule(rule_name: str) -> FindingSeverity:
    """Rank a rule by the kind of credential its name suggests.

    Args:
        rule_name: Scanner rule name, e.g. "AWS API Key".

    Returns:
        HIGH for keys, passwords and tokens, MEDIUM for URLs and config
        values, LOW otherwise.
    """
    if not rule_name:
        return FindingSeverity.MEDIUM
    normalized = _normalize_rule(rule_name)
    if any(k in normalized for k in HIGH_RISK_KEYWORDS):
        return FindingSeverity.HIGH
    if any(k in normalized for k in MEDIUM_RISK_KEYWORDS):
        return FindingSeverity.MEDIUM
    return FindingSeverity.LOW


def is_dependency_path(path: PurePath | str) -> bool:
    """Return True if any directory in ``path`` is a dependency/build directory."""
    parts = PurePath(path).parts[:-1]
    return any(part in DEPENDENCY_DIRS or part.endswith(".egg-info") for part in parts)


def category_mask(rule_name: str, default: str) -> str:
    """Pick a category-specific replacement token for a rule."""
    normalized = _normalize_rule(rule_name)
    for keyword, mask in DEFAULT_CATEGORY_MASKS.items():
        if keyword in normalized:
            return mask
    return default


def truncate_preview(text: str, limit: int = PREVIEW_LIMIT) -> str:
    """Bound ``text`` to ``limit`` characters, marker included.

    Examples:
        >>> truncate_preview("abc", limit=5)
        'abc'
        >>> truncate_preview("abcdefgh", limit=5)
        'abcd…'
    """
    if len(text) <= limit:
        return text
    return text[: limit - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER
