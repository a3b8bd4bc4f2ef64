"""Pytest configuration and fixtures."""

import os
import tempfile
from collections.abc import Sequence
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any, Generator

import pytest

from backup_lifecycle.config.settings import (
    LifecycleSettings,
    NamingSettings,
    RemoteSettings,
    TierSettings,
)
from backup_lifecycle.core.exceptions import RemoteTimeoutError, RemoteToolError
from backup_lifecycle.core.models import RemoteObject
from backup_lifecycle.ledger import ErrorLedger

BASE_MTIME = 1_700_000_000


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def ledger() -> ErrorLedger:
    return ErrorLedger(run_id="run_test")


def make_artifacts(
    directory: Path,
    count: int,
    *,
    system_type: str = "pve",
    suffix: str = ".tar.zst",
    start: int = 1,
    sidecars: Sequence[str] = (".sha256",),
    base_mtime: int = BASE_MTIME,
) -> list[Path]:
    """Create numbered artifacts with strictly increasing mtimes, oldest first."""
    directory.mkdir(parents=True, exist_ok=True)
    paths = []
    for i in range(start, start + count):
        path = directory / f"{system_type}-backup-{i:04d}{suffix}"
        path.write_text(f"artifact {i}")
        mtime = base_mtime + i * 60
        os.utime(path, (mtime, mtime))
        for sidecar in sidecars:
            side = path.with_name(path.name + sidecar)
            side.write_text("sidecar")
            os.utime(side, (mtime, mtime))
        paths.append(path)
    return paths


def make_settings(root: Path, **overrides: Any) -> LifecycleSettings:
    """Settings rooted in a temp directory with zero pauses."""
    data: dict[str, Any] = {
        "primary": TierSettings(
            backup_path=str(root / "primary" / "backup"),
            log_path=str(root / "primary" / "log"),
            max_backups=50,
            max_logs=50,
        ),
        "secondary": TierSettings(
            enabled=False,
            backup_path=str(root / "secondary" / "backup"),
            log_path=str(root / "secondary" / "log"),
        ),
        "cloud": TierSettings(
            enabled=False,
            backup_path="/backups",
            log_path="/logs",
        ),
        "remote": RemoteSettings(
            remote_name="cloud",
            verify_pause=0,
            delete_batch_pause=0,
        ),
        "naming": NamingSettings(system_type="pve", compression="zstd"),
        "work_dir_parent": str(root / "work"),
    }
    data.update(overrides)
    return LifecycleSettings(**data)


class FakeRemote:
    """
    In-memory remote tool.

    Objects are stored per remote path. Failures are programmed per
    operation name; every call is recorded in ``calls``.
    """

    def __init__(self, remote_name: str = "cloud", available: bool = True):
        self.remote_name = remote_name
        self.available = available
        self.remotes = [remote_name]
        self.objects: dict[str, dict[str, RemoteObject]] = {}
        self.calls: list[tuple[str, Any]] = []
        self.failures: dict[str, Exception] = {}
        self.list_failures_after: int | None = None
        self.stat_confirms = True
        self.stat_timeouts = 0
        self.failing_delete_batches: set[int] = set()
        self.delete_batches: list[list[str]] = []
        self._clock = 0

    @staticmethod
    def _key(path: str) -> str:
        return path.rstrip("/") or "/"

    def _maybe_fail(self, op: str) -> None:
        error = self.failures.get(op)
        if error is not None:
            raise error

    def add(self, path: str, name: str, modified: str | None = None, size: int = 10) -> None:
        self._clock += 1
        clock = self._clock
        stamp = modified or f"2030-01-01 {clock // 3600:02d}:{clock // 60 % 60:02d}:{clock % 60:02d}.000000000"
        self.objects.setdefault(self._key(path), {})[name] = RemoteObject(
            name=name, size_bytes=size, modified=stamp
        )

    def names(self, path: str) -> list[str]:
        return sorted(self.objects.get(self._key(path), {}))

    def count_calls(self, op: str) -> int:
        return sum(1 for name, _ in self.calls if name == op)

    def is_available(self) -> bool:
        return self.available

    def list_remotes(self, timeout: float) -> list[str]:
        self.calls.append(("list_remotes", None))
        self._maybe_fail("list_remotes")
        return list(self.remotes)

    def about(self, timeout: float) -> None:
        self.calls.append(("about", None))
        self._maybe_fail("about")

    def mkdir(self, path: str, timeout: float) -> None:
        self.calls.append(("mkdir", path))
        self._maybe_fail("mkdir")
        self.objects.setdefault(self._key(path), {})

    def list_detailed(self, path: str, timeout: float) -> list[RemoteObject]:
        self.calls.append(("list_detailed", path))
        if self.list_failures_after is not None and self.count_calls("list_detailed") > self.list_failures_after:
            raise RemoteToolError("lsl failed", returncode=1, stderr="listing unavailable")
        self._maybe_fail("list_detailed")
        return list(self.objects.get(self._key(path), {}).values())

    def stat(self, path: str, name: str, timeout: float) -> bool:
        self.calls.append(("stat", name))
        if self.stat_timeouts > 0:
            self.stat_timeouts -= 1
            raise RemoteTimeoutError("lsl timed out", timeout_seconds=timeout)
        self._maybe_fail("stat")
        return self.stat_confirms and name in self.objects.get(self._key(path), {})

    def list_flat(self, path: str, timeout: float) -> list[str]:
        self.calls.append(("list_flat", path))
        self._maybe_fail("list_flat")
        return self.names(path)

    def list_names(self, path: str, include: str, timeout: float) -> list[str]:
        self.calls.append(("list_names", include))
        self._maybe_fail("list_names")
        return [n for n in self.names(path) if fnmatchcase(n, include)]

    def copy(self, local_path: Path, path: str, timeout: float) -> None:
        self.calls.append(("copy", Path(local_path).name))
        self._maybe_fail("copy")
        self.add(path, Path(local_path).name, size=Path(local_path).stat().st_size)

    def delete_files(
        self, path: str, names: Sequence[str], timeout: float, work_dir: Path | None = None
    ) -> None:
        self.calls.append(("delete_files", list(names)))
        self.delete_batches.append(list(names))
        if len(self.delete_batches) in self.failing_delete_batches:
            raise RemoteToolError("delete failed", returncode=1)
        self._maybe_fail("delete_files")
        bucket = self.objects.get(self._key(path), {})
        for name in names:
            bucket.pop(name, None)


def populate_remote(remote: FakeRemote, path: str, count: int, *, metadata: bool = False) -> list[str]:
    """Add numbered remote artifacts (oldest first) with their sha256 sidecars."""
    names = []
    for i in range(1, count + 1):
        name = f"pve-backup-{i:04d}.tar.zst"
        stamp = f"2024-01-{1 + i // 60:02d} 00:{i % 60:02d}:00.000000000"
        remote.add(path, name, modified=stamp)
        remote.add(path, f"{name}.sha256", modified=stamp)
        if metadata:
            remote.add(path, f"{name}.metadata", modified=stamp)
            remote.add(path, f"{name}.metadata.sha256", modified=stamp)
        names.append(name)
    return names


@pytest.fixture
def fake_remote() -> FakeRemote:
    return FakeRemote()
