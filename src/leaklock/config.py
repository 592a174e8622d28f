"""Settings for leaklock.

Defaults come from the packaged constants.json. Values can be set in a
``leaklock.toml`` file:

    [leaklock]
    image = "ghcr.io/praetorian-inc/noseyparker:latest"
    git_history = "full"
    scan_timeout = 600

or under ``[tool.leaklock]`` in ``pyproject.toml``. Environment variables
prefixed with ``LEAKLOCK_`` override file values.
"""

from __future__ import annotations

import json
import tomllib
from functools import cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

CONFIG_FILENAME = "leaklock.toml"


@cache
def _load_constants() -> dict:
    """Load constants from the package's constants.json."""
    constants_path = Path(__file__).parent / "constants.json"
    with open(constants_path) as f:
        return json.load(f)


def _timeout(name: str) -> float:
    return float(_load_constants()["timeouts"][name])


class ConfigNotFoundError(Exception):
    """Configuration file not found."""

    pass


class LeakLockSettings(BaseSettings):
    """Runtime settings for the scan and remediation pipeline."""

    model_config = SettingsConfigDict(env_prefix="LEAKLOCK_", extra="ignore")

    image: str = Field(default_factory=lambda: _load_constants()["noseyparker_image"])
    cleanup_image: str = Field(default_factory=lambda: _load_constants()["cleanup_image"])
    findings_exit_code: int = Field(
        default_factory=lambda: _load_constants()["noseyparker_findings_exit_code"]
    )
    git_history: Literal["full", "none"] = "full"

    docker_binary: str = "docker"
    java_binary: str = "java"
    git_binary: str = "git"

    bfg_version: str = Field(default_factory=lambda: _load_constants()["bfg_version"])
    bfg_url: str = Field(default_factory=lambda: _load_constants()["bfg_download_url"])
    bfg_path: Path | None = None

    mask: str = Field(default_factory=lambda: _load_constants()["default_mask"])
    category_masks: bool = False
    preview_length: int = Field(default_factory=lambda: _load_constants()["preview_length"])

    check_timeout: float = Field(default_factory=lambda: _timeout("check"))
    pull_timeout: float = Field(default_factory=lambda: _timeout("pull"))
    init_timeout: float = Field(default_factory=lambda: _timeout("init"))
    scan_timeout: float = Field(default_factory=lambda: _timeout("scan"))
    report_timeout: float = Field(default_factory=lambda: _timeout("report"))
    bfg_timeout: float = Field(default_factory=lambda: _timeout("bfg"))
    reflog_timeout: float = Field(default_factory=lambda: _timeout("reflog"))
    gc_timeout: float = Field(default_factory=lambda: _timeout("gc"))

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over values passed in from a config file.
        return (env_settings, init_settings)

    @property
    def resolved_bfg_url(self) -> str:
        return self.bfg_url.format(version=self.bfg_version)


def find_config(start: Path | None = None) -> Path | None:
    """
    Locate the nearest config file, walking up from ``start`` (default: cwd).

    ``leaklock.toml`` is preferred; a ``pyproject.toml`` only counts when it
    has a ``[tool.leaklock]`` table.
    """
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        pyproject = directory / "pyproject.toml"
        if pyproject.is_file():
            try:
                data = tomllib.loads(pyproject.read_text())
            except (OSError, tomllib.TOMLDecodeError):
                continue
            if "leaklock" in data.get("tool", {}):
                return pyproject
    return None


def _read_table(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        data = tomllib.load(f)
    if path.name == "pyproject.toml":
        return data.get("tool", {}).get("leaklock", {})
    return data.get("leaklock", data)


def load_config(path: Path | None = None) -> LeakLockSettings:
    """Load settings from ``path`` or the auto-discovered config file.

    Args:
        path: Explicit config file. Must exist when given.

    Returns:
        LeakLockSettings with file values applied under environment overrides.

    Raises:
        ConfigNotFoundError: If ``path`` is given but does not exist.
        tomllib.TOMLDecodeError: If the file is not valid TOML.
    """
    if path is not None:
        if not path.is_file():
            raise ConfigNotFoundError(f"Config file not found: {path}")
        config_path: Path | None = path
    else:
        config_path = find_config()

    values = _read_table(config_path) if config_path else {}
    return LeakLockSettings(**values)
