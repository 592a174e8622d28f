"""Tests for the containerized Nosey Parker scan."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from leaklock.config import LeakLockSettings
from leaklock.errors import InvalidTargetError, ProcessTimeoutError, ScanFailedError
from leaklock.scanner.noseyparker import (
    WORKSPACE_PREFIX,
    NoseyParkerScanner,
    validate_target,
)


@pytest.fixture
def target(tmp_path: Path) -> Path:
    target = tmp_path / "project"
    target.mkdir()
    return target


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    root = tmp_path / "workspaces"
    root.mkdir()
    return root


def _workspaces(root: Path) -> list[Path]:
    return sorted(root.glob(f"{WORKSPACE_PREFIX}*"))


class TestValidateTarget:
    """Tests for validate_target."""

    def test_missing_directory(self, tmp_path: Path):
        with pytest.raises(InvalidTargetError) as exc_info:
            validate_target(tmp_path / "nope")
        assert exc_info.value.reason == "directory does not exist"

    def test_file_is_not_a_directory(self, tmp_path: Path):
        file_path = tmp_path / "file.txt"
        file_path.write_text("x")
        with pytest.raises(InvalidTargetError, match="not a directory"):
            validate_target(file_path)

    def test_returns_resolved_path(self, target: Path):
        assert validate_target(target / ".") == target.resolve()


class TestNoseyParkerScanner:
    """Tests for NoseyParkerScanner.scan."""

    def test_phases_run_in_order(self, fake_executor, target, workspace_root, sample_report):
        fake_executor.on("report", stdout=sample_report)
        settings = LeakLockSettings()
        scanner = NoseyParkerScanner(settings, fake_executor, workspace_root)
        labels: list[str] = []

        raw = scanner.scan(target, on_progress=labels.append)

        assert raw == sample_report
        ops = [call.operation for call in fake_executor.calls]
        assert ops == ["scan:init", "scan:scan", "scan:report"]
        assert labels == ["Initializing datastore", f"Scanning {target.resolve()}", "Generating report"]
        assert _workspaces(workspace_root) == []

    def test_volumes_and_arguments(self, fake_executor, target, workspace_root):
        settings = LeakLockSettings(image="example/np:test", git_history="none")
        NoseyParkerScanner(settings, fake_executor, workspace_root).scan(target)

        init, scan, report = fake_executor.commands()
        workspace = init[init.index("-v") + 1].split(":")[0]
        assert Path(workspace).parent == workspace_root
        assert init[:3] == ("docker", "run", "--rm")
        assert init[-4:] == ("datastore", "init", "--datastore", "/datastore")

        assert f"{target.resolve()}:/scan:ro" in scan
        assert f"{workspace}:/datastore" in scan
        assert "example/np:test" in scan
        assert scan[scan.index("--git-history") + 1] == "none"
        assert scan[-1] == "/scan"

        assert report[-4:] == ("--datastore", "/datastore", "--format", "json")
        assert f"{target.resolve()}:/scan:ro" not in report

    def test_timeouts_come_from_settings(self, fake_executor, target, workspace_root):
        settings = LeakLockSettings(init_timeout=1, scan_timeout=2, report_timeout=3)
        NoseyParkerScanner(settings, fake_executor, workspace_root).scan(target)
        assert [call.timeout for call in fake_executor.calls] == [1.0, 2.0, 3.0]

    def test_matches_found_exit_code_proceeds_to_report(self, fake_executor, target, workspace_root):
        fake_executor.on("scan", "--git-history", exit_code=2, stderr="found matches")
        fake_executor.on("report", stdout="[]")
        raw = NoseyParkerScanner(LeakLockSettings(), fake_executor, workspace_root).scan(target)
        assert raw == "[]"
        assert len(fake_executor.calls) == 3

    def test_other_scan_exit_code_is_fatal(self, fake_executor, target, workspace_root):
        fake_executor.on("scan", "--git-history", exit_code=3, stderr="bad input")
        with pytest.raises(ScanFailedError) as exc_info:
            NoseyParkerScanner(LeakLockSettings(), fake_executor, workspace_root).scan(target)
        assert (exc_info.value.stage, exc_info.value.exit_code) == ("scan", 3)
        assert not fake_executor.find("report")
        assert _workspaces(workspace_root) == []

    def test_init_failure_is_fatal(self, fake_executor, target, workspace_root):
        fake_executor.on("init", exit_code=1, stderr="permission denied")
        with pytest.raises(ScanFailedError) as exc_info:
            NoseyParkerScanner(LeakLockSettings(), fake_executor, workspace_root).scan(target)
        assert exc_info.value.stage == "init"
        assert len(fake_executor.calls) == 1

    def test_report_failure_removes_workspace(self, fake_executor, target, workspace_root):
        seen: list[Path] = []

        def record_workspace(args):
            volume = args[args.index("-v") + 1]
            seen.append(Path(volume.rsplit(":", 1)[0]))

        fake_executor.on("init", effect=record_workspace)
        fake_executor.on("report", exit_code=1, stderr="disk full")

        with pytest.raises(ScanFailedError) as exc_info:
            NoseyParkerScanner(LeakLockSettings(), fake_executor, workspace_root).scan(target)

        error = exc_info.value
        assert (error.stage, error.exit_code, error.stderr) == ("report", 1, "disk full")
        assert "disk full" in str(error)
        assert len(seen) == 1
        assert not seen[0].exists()

    def test_report_exit_code_two_is_fatal(self, fake_executor, target, workspace_root):
        fake_executor.on("report", exit_code=2)
        with pytest.raises(ScanFailedError):
            NoseyParkerScanner(LeakLockSettings(), fake_executor, workspace_root).scan(target)

    def test_timeout_propagates_and_cleans_up(self, fake_executor, target, workspace_root):
        fake_executor.on("scan", "--git-history", raises=ProcessTimeoutError("scan:scan", 2))
        with pytest.raises(ProcessTimeoutError):
            NoseyParkerScanner(LeakLockSettings(), fake_executor, workspace_root).scan(target)
        assert _workspaces(workspace_root) == []

    def test_timeout_removes_the_running_container(self, fake_executor, target, workspace_root, monkeypatch):
        def failing_rmtree(path, *args, **kwargs):
            raise PermissionError("owned by root")

        monkeypatch.setattr("leaklock.scanner.noseyparker.shutil.rmtree", failing_rmtree)
        fake_executor.on("scan", "--git-history", raises=ProcessTimeoutError("scan:scan", 2))
        with pytest.raises(ProcessTimeoutError):
            NoseyParkerScanner(LeakLockSettings(), fake_executor, workspace_root).scan(target)

        commands = fake_executor.commands()
        scan = commands[1]
        name = scan[scan.index("--name") + 1]
        assert name.startswith("leaklock-scan-")
        assert commands[2] == ("docker", "rm", "-f", name)
        assert fake_executor.calls[2].operation == "container cleanup"
        # the container is gone before the workspace is deleted
        assert commands[3][-2] == "-rf"

    def test_container_removal_failure_keeps_timeout(self, fake_executor, target, workspace_root):
        fake_executor.on("init", raises=ProcessTimeoutError("scan:init", 1))
        fake_executor.on("rm", "-f", raises=ProcessTimeoutError("container cleanup", 1))
        with pytest.raises(ProcessTimeoutError) as exc_info:
            NoseyParkerScanner(LeakLockSettings(), fake_executor, workspace_root).scan(target)
        assert exc_info.value.operation == "scan:init"
        assert len(fake_executor.find("rm", "-f")) == 1

    def test_each_phase_gets_a_unique_container_name(self, fake_executor, target, workspace_root):
        scanner = NoseyParkerScanner(LeakLockSettings(), fake_executor, workspace_root)
        scanner.scan(target)
        scanner.scan(target)
        names = [args[args.index("--name") + 1] for args in fake_executor.commands()]
        assert len(names) == 6
        assert len(set(names)) == 6
        assert not fake_executor.find("rm", "-f")

    def test_invalid_target_runs_nothing(self, fake_executor, tmp_path, workspace_root):
        with pytest.raises(InvalidTargetError):
            NoseyParkerScanner(LeakLockSettings(), fake_executor, workspace_root).scan(tmp_path / "x")
        assert fake_executor.calls == []
        assert _workspaces(workspace_root) == []

    def test_concurrent_scans_use_disjoint_workspaces(self, fake_executor, tmp_path, workspace_root):
        targets = [tmp_path / "one", tmp_path / "two"]
        for t in targets:
            t.mkdir()
        barrier = threading.Barrier(2, timeout=10)
        workspaces: dict[str, Path] = {}
        lock = threading.Lock()

        def during_scan(args):
            target_volume = next(a for a in args if a.endswith(":/scan:ro"))
            datastore = next(a for a in args if a.endswith(":/datastore"))
            workspace = Path(datastore[: -len(":/datastore")])
            assert workspace.is_dir()
            with lock:
                workspaces[target_volume] = workspace
            barrier.wait()

        fake_executor.on("scan", "--git-history", effect=during_scan)
        scanner = NoseyParkerScanner(LeakLockSettings(), fake_executor, workspace_root)
        errors: list[BaseException] = []

        def run(t: Path) -> None:
            try:
                scanner.scan(t)
            except BaseException as e:
                errors.append(e)

        threads = [threading.Thread(target=run, args=(t,)) for t in targets]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert errors == []
        assert len(workspaces) == 2
        first, second = workspaces.values()
        assert first != second
        assert _workspaces(workspace_root) == []

    def test_cleanup_falls_back_to_container(self, fake_executor, target, workspace_root, monkeypatch):
        def failing_rmtree(path, *args, **kwargs):
            raise PermissionError("owned by root")

        monkeypatch.setattr("leaklock.scanner.noseyparker.shutil.rmtree", failing_rmtree)
        NoseyParkerScanner(LeakLockSettings(), fake_executor, workspace_root).scan(target)

        cleanup = fake_executor.commands()[-1]
        assert cleanup[:3] == ("docker", "run", "--rm")
        assert f"{workspace_root}:/workspace" in cleanup
        assert cleanup[-3:-1] == ("rm", "-rf")
        assert cleanup[-1].startswith(f"/workspace/{WORKSPACE_PREFIX}")
