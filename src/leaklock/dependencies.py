"""External tool readiness checks and installation.

The pipeline needs four things:
- docker: container runtime with a running daemon
- noseyparker: the scanner image, pulled locally
- java: runtime for BFG Repo-Cleaner
- bfg: the BFG jar, downloaded next to the virtual environment's binaries

Checks are independent of each other: one failing check never stops the
rest, and every check builds a fresh DependencyStatus.
"""

from __future__ import annotations

import logging
import os
import platform
import shutil
import sys
import tempfile
import urllib.request
from pathlib import Path
from typing import TYPE_CHECKING

from leaklock.config import LeakLockSettings
from leaklock.errors import (
    BfgInstallError,
    DependencyMissingError,
    LeakLockError,
    ToolFailedError,
)
from leaklock.models import DependencyStatus
from leaklock.utils.process import ProcessExecutor

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

DOCKER = "docker"
NOSEYPARKER = "noseyparker"
JAVA = "java"
BFG = "bfg"

ALL_DEPENDENCIES = (DOCKER, NOSEYPARKER, JAVA, BFG)


def get_venv_bin_dir() -> Path:
    """
    Determine the bin (or Scripts on Windows) directory to install user-local tools into.

    Search order:
    - If VIRTUAL_ENV is set, return its "bin" (or "Scripts" on Windows).
    - Search sys.path for a parent ".venv" or "venv" and return its "bin"/"Scripts".
    - If a ".venv" exists in the current working directory, return its "bin"/"Scripts".
    - Fall back to a user-level directory (Windows: %APPDATA%/Python/Scripts,
      non-Windows: ~/.local/bin) and create it if missing.

    Raises:
        RuntimeError: If no suitable directory can be determined.
    """
    scripts = "Scripts" if platform.system() == "Windows" else "bin"

    venv_path = os.environ.get("VIRTUAL_ENV")
    if venv_path:
        return Path(venv_path) / scripts

    for path in sys.path:
        p = Path(path)
        if ".venv" in p.parts or "venv" in p.parts:
            while p.name not in (".venv", "venv") and p.parent != p:
                p = p.parent
            if p.name in (".venv", "venv"):
                return p / scripts

    cwd_venv = Path.cwd() / ".venv"
    if cwd_venv.exists():
        return cwd_venv / scripts

    if platform.system() == "Windows":
        appdata = os.environ.get("APPDATA")
        if appdata:
            user_scripts = Path(appdata) / "Python" / "Scripts"
            user_scripts.mkdir(parents=True, exist_ok=True)
            return user_scripts
    else:
        user_bin = Path.home() / ".local" / "bin"
        user_bin.mkdir(parents=True, exist_ok=True)
        return user_bin

    raise RuntimeError("Cannot find suitable bin directory for installation")


def get_bfg_path(settings: LeakLockSettings | None = None) -> Path:
    """Return where the BFG jar is (or will be) installed."""
    settings = settings or LeakLockSettings()
    if settings.bfg_path is not None:
        return settings.bfg_path
    return get_venv_bin_dir() / f"bfg-{settings.bfg_version}.jar"


class BfgInstaller:
    """Downloads the BFG Repo-Cleaner jar."""

    def __init__(
        self,
        settings: LeakLockSettings | None = None,
        progress_callback: Callable[[str], None] | None = None,
    ) -> None:
        self.settings = settings or LeakLockSettings()
        self.progress = progress_callback or (lambda x: None)

    @property
    def download_url(self) -> str:
        return self.settings.resolved_bfg_url

    def download(self, target_path: Path) -> None:
        """Download the jar to ``target_path``.

        The file is fetched into a temporary directory first, so an
        interrupted download never leaves a truncated jar in place.

        Raises:
            BfgInstallError: If the download fails or yields an empty file.
        """
        url = self.download_url
        self.progress(f"Downloading BFG v{self.settings.bfg_version}...")

        with tempfile.TemporaryDirectory() as tmp_dir:
            tmp_jar = Path(tmp_dir) / target_path.name
            try:
                urllib.request.urlretrieve(url, tmp_jar)  # nosec B310
            except Exception as e:
                raise BfgInstallError(f"Download failed from {url}: {e}") from e

            if not tmp_jar.exists() or tmp_jar.stat().st_size == 0:
                raise BfgInstallError(f"Downloaded file from {url} is empty")

            target_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(tmp_jar), target_path)

        self.progress(f"Installed to {target_path}")

    def install(self, force: bool = False) -> Path:
        """
        Install the BFG jar unless it is already present.

        Parameters:
            force (bool): Download again even if the jar exists.

        Returns:
            Path: Location of the jar.
        """
        target_path = get_bfg_path(self.settings)
        if target_path.is_file() and not force:
            self.progress(f"BFG v{self.settings.bfg_version} already installed")
            return target_path

        self.download(target_path)
        return target_path


class DependencyVerifier:
    """Checks and installs the pipeline's external tools."""

    def __init__(
        self,
        settings: LeakLockSettings | None = None,
        executor: ProcessExecutor | None = None,
    ) -> None:
        self.settings = settings or LeakLockSettings()
        self.executor = executor or ProcessExecutor()

    def _run_check(self, command: list[str], operation: str):
        return self.executor.run(
            command,
            timeout=self.settings.check_timeout,
            operation=operation,
        )

    def check_docker(self) -> tuple[bool, str]:
        docker = self.settings.docker_binary
        version = self._run_check([docker, "--version"], "docker --version")
        if not version.ok:
            return False, "Docker not installed or not in PATH"
        info = self._run_check([docker, "info"], "docker info")
        if not info.ok:
            return False, "Docker daemon not running"
        return True, version.stdout.strip()

    def check_image(self) -> tuple[bool, str]:
        result = self._run_check(
            [self.settings.docker_binary, "image", "inspect", self.settings.image],
            "docker image inspect",
        )
        if not result.ok:
            return False, f"Image {self.settings.image} not pulled"
        return True, self.settings.image

    def check_java(self) -> tuple[bool, str]:
        result = self._run_check([self.settings.java_binary, "-version"], "java -version")
        if not result.ok:
            return False, "Java not installed or not in PATH"
        # java -version prints to stderr
        lines = (result.stderr or result.stdout).strip().splitlines()
        return True, lines[0] if lines else "java"

    def check_bfg(self) -> tuple[bool, str]:
        path = get_bfg_path(self.settings)
        if path.is_file():
            return True, str(path)
        return False, "BFG jar not downloaded"

    def _checks(self) -> dict[str, Callable[[], tuple[bool, str]]]:
        return {
            DOCKER: self.check_docker,
            NOSEYPARKER: self.check_image,
            JAVA: self.check_java,
            BFG: self.check_bfg,
        }

    def check(self, *names: str) -> DependencyStatus:
        """Check the named dependencies (all when none are given)."""
        checks = self._checks()
        status = DependencyStatus()
        for name in names or ALL_DEPENDENCIES:
            try:
                ok, detail = checks[name]()
            except (LeakLockError, OSError, RuntimeError) as e:
                ok, detail = False, str(e)
            status.installed[name] = ok
            status.details[name] = detail
            logger.debug("Dependency %s: %s (%s)", name, "ok" if ok else "missing", detail)
        return status

    def check_all(self) -> DependencyStatus:
        return self.check()

    def require(self, *names: str) -> None:
        """Raise DependencyMissingError for the first missing dependency."""
        status = self.check(*names)
        for name in names or ALL_DEPENDENCIES:
            if not status[name]:
                raise DependencyMissingError(name, status.details.get(name))

    def install_all(
        self,
        on_progress: Callable[[str], None] | None = None,
    ) -> DependencyStatus:
        """
        Fetch whatever is missing and return the resulting status.

        Only the image pull and the BFG download are automated. Docker and
        Java must be installed by the user and stay reported as missing.
        The BFG download does not depend on docker and runs even when the
        image cannot be pulled.

        Raises:
            ToolFailedError: If ``docker pull`` fails (after the BFG step).
            BfgInstallError: If the BFG download fails.
        """
        progress = on_progress or (lambda x: None)

        progress("Checking dependencies")
        status = self.check_all()

        pull_error: ToolFailedError | None = None
        if not status[NOSEYPARKER]:
            if not status[DOCKER]:
                logger.warning(
                    "Cannot pull %s: docker is not available (%s)",
                    self.settings.image,
                    status.details.get(DOCKER),
                )
                progress("Skipping image pull, docker is not available")
            else:
                progress("Pulling Nosey Parker image")
                result = self.executor.run(
                    [self.settings.docker_binary, "pull", self.settings.image],
                    timeout=self.settings.pull_timeout,
                    operation="docker pull",
                )
                if not result.ok:
                    pull_error = ToolFailedError("docker pull", result.exit_code, result.stderr)

        if not status[BFG]:
            progress("Downloading BFG")
            BfgInstaller(self.settings).install()

        if pull_error is not None:
            raise pull_error

        progress("Verifying installation")
        return self.check_all()
