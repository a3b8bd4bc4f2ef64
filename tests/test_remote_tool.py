"""Tests for the rclone wrapper."""

import subprocess
from pathlib import Path

import pytest

from backup_lifecycle.config.settings import RemoteSettings
from backup_lifecycle.core.exceptions import RemoteTimeoutError, RemoteToolError
from backup_lifecycle.storage import remote as remote_module
from backup_lifecycle.storage.remote import RcloneRemote, join_remote, parse_ls, parse_lsl

LSL_OUTPUT = """\
     1024 2024-01-02 03:04:05.123456789 pve-backup-0001.tar.zst
       64 2024-01-02 03:04:06.000000000 pve-backup-0001.tar.zst.sha256
  2048 2024-01-03 10:00:00.000000000 name with spaces.tar.zst
garbage line
"""


class RunRecorder:
    """Replacement for subprocess.run returning canned results."""

    def __init__(self, stdout: str = "", returncode: int = 0, stderr: str = "", raises: Exception | None = None):
        self.stdout = stdout
        self.returncode = returncode
        self.stderr = stderr
        self.raises = raises
        self.commands: list[list[str]] = []
        self.timeouts: list[float] = []

    def __call__(self, command, capture_output=True, text=True, timeout=None):
        self.commands.append(list(command))
        self.timeouts.append(timeout)
        if self.raises is not None:
            raise self.raises
        return subprocess.CompletedProcess(command, self.returncode, self.stdout, self.stderr)


def write_script(path: Path, body: str) -> Path:
    path.write_text("#!/bin/sh\n" + body + "\n")
    path.chmod(0o755)
    return path


class TestParsing:
    """Tests for listing parsers."""

    def test_parse_lsl(self) -> None:
        """lsl lines yield size, timestamp and name; junk is skipped."""
        objects = parse_lsl(LSL_OUTPUT)
        assert [o.name for o in objects] == [
            "pve-backup-0001.tar.zst",
            "pve-backup-0001.tar.zst.sha256",
            "name with spaces.tar.zst",
        ]
        assert objects[0].size_bytes == 1024
        assert objects[0].modified == "2024-01-02 03:04:05.123456789"

    def test_parse_ls(self) -> None:
        """ls lines yield names."""
        assert parse_ls("  10 a.tar.zst\n 20 b c.log\n") == ["a.tar.zst", "b c.log"]

    def test_join_remote(self) -> None:
        assert join_remote("/backups/", "a") == "/backups/a"
        assert join_remote("/backups", "a") == "/backups/a"


class TestCommands:
    """Tests for command construction and error mapping."""

    def test_list_detailed_command(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Listings address remote:path with the configured flags."""
        recorder = RunRecorder(stdout=LSL_OUTPUT)
        monkeypatch.setattr(remote_module.subprocess, "run", recorder)
        remote = RcloneRemote("gdrive", flags=["--config", "/etc/rclone.conf"])

        objects = remote.list_detailed("/backups", 30)

        assert len(objects) == 3
        assert recorder.commands[0] == [
            "rclone", "--config", "/etc/rclone.conf", "lsl", "--fast-list", "--max-depth", "1", "gdrive:/backups",
        ]
        assert recorder.timeouts == [30]

    def test_nonzero_exit_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A failing command raises RemoteToolError with stderr."""
        monkeypatch.setattr(remote_module.subprocess, "run", RunRecorder(returncode=3, stderr="directory not found"))
        with pytest.raises(RemoteToolError) as exc_info:
            RcloneRemote("gdrive").list_flat("/backups", 30)
        assert exc_info.value.returncode == 3
        assert "directory not found" in exc_info.value.stderr

    def test_timeout_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """An expired timeout maps to RemoteTimeoutError."""
        monkeypatch.setattr(
            remote_module.subprocess,
            "run",
            RunRecorder(raises=subprocess.TimeoutExpired(["rclone"], 10)),
        )
        with pytest.raises(RemoteTimeoutError) as exc_info:
            RcloneRemote("gdrive").about(10)
        assert exc_info.value.timeout_seconds == 10

    def test_missing_binary_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """An unexecutable binary maps to RemoteToolError."""
        monkeypatch.setattr(remote_module.subprocess, "run", RunRecorder(raises=FileNotFoundError("rclone")))
        with pytest.raises(RemoteToolError):
            RcloneRemote("gdrive").list_remotes(30)

    def test_list_remotes_strips_colons(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(remote_module.subprocess, "run", RunRecorder(stdout="gdrive:\ns3:\n"))
        assert RcloneRemote("gdrive").list_remotes(30) == ["gdrive", "s3"]

    def test_stat_found_and_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """stat is True only when the exact name is listed."""
        monkeypatch.setattr(remote_module.subprocess, "run", RunRecorder(stdout=LSL_OUTPUT))
        remote = RcloneRemote("gdrive")
        assert remote.stat("/backups", "pve-backup-0001.tar.zst", 30)
        assert not remote.stat("/backups", "pve-backup-9999.tar.zst", 30)

        monkeypatch.setattr(remote_module.subprocess, "run", RunRecorder(returncode=3))
        assert not remote.stat("/backups", "pve-backup-0001.tar.zst", 30)

    def test_stat_timeout_propagates(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            remote_module.subprocess, "run", RunRecorder(raises=subprocess.TimeoutExpired(["rclone"], 30))
        )
        with pytest.raises(RemoteTimeoutError):
            RcloneRemote("gdrive").stat("/backups", "x", 30)

    def test_list_names_uses_include(self, monkeypatch: pytest.MonkeyPatch) -> None:
        recorder = RunRecorder(stdout="a.tar.zst\na.tar.zst.sha256\n")
        monkeypatch.setattr(remote_module.subprocess, "run", recorder)
        names = RcloneRemote("gdrive").list_names("/backups", "a.*", 30)
        assert names == ["a.tar.zst", "a.tar.zst.sha256"]
        assert recorder.commands[0][1:4] == ["lsf", "--include", "a.*"]

    def test_delete_files_writes_list(self, monkeypatch: pytest.MonkeyPatch, temp_dir: Path) -> None:
        """Batch deletes pass a files-from list created in the work dir and removed afterwards."""
        seen: dict[str, str] = {}

        def fake_run(command, capture_output=True, text=True, timeout=None):
            list_file = command[command.index("--files-from") + 1]
            seen["path"] = list_file
            seen["content"] = Path(list_file).read_text()
            return subprocess.CompletedProcess(command, 0, "", "")

        monkeypatch.setattr(remote_module.subprocess, "run", fake_run)
        RcloneRemote("gdrive").delete_files("/backups", ["a", "b"], 60, work_dir=temp_dir)

        assert seen["content"] == "a\nb\n"
        assert Path(seen["path"]).parent == temp_dir
        assert not Path(seen["path"]).exists()

    def test_from_settings(self) -> None:
        settings = RemoteSettings(remote_name="s3", flags="--config /x.conf", bandwidth_limit="10M")
        remote = RcloneRemote.from_settings(settings)
        assert remote.remote_name == "s3"
        assert remote.flags == ["--config", "/x.conf"]
        assert remote.address("/p") == "s3:/p"


class TestCopy:
    """Tests for streaming copy with a wall-clock timeout."""

    def test_copy_success_logs_progress(self, temp_dir: Path, caplog: pytest.LogCaptureFixture) -> None:
        """Progress lines are sampled to debug logging."""
        script = write_script(temp_dir / "fake-rclone", "echo 'Transferred: 1 MiB / 1 MiB, 100%'\nexit 0")
        source = temp_dir / "a.tar.zst"
        source.write_text("data")

        with caplog.at_level("DEBUG", logger="backup_lifecycle"):
            RcloneRemote("gdrive", binary=str(script), bandwidth_limit="5M").copy(source, "/backups", 10)

        assert any("Transfer progress: Transferred: 1 MiB" in r.getMessage() for r in caplog.records)

    def test_copy_failure(self, temp_dir: Path) -> None:
        """A non-zero exit raises with the output tail."""
        script = write_script(temp_dir / "fake-rclone", "echo 'Failed to copy: quota exceeded'\nexit 1")
        source = temp_dir / "a.tar.zst"
        source.write_text("data")

        with pytest.raises(RemoteToolError) as exc_info:
            RcloneRemote("gdrive", binary=str(script)).copy(source, "/backups", 10)
        assert "quota exceeded" in exc_info.value.stderr

    def test_copy_timeout_kills_process(self, temp_dir: Path) -> None:
        """A hung transfer is killed when the timeout elapses."""
        script = write_script(temp_dir / "fake-rclone", "exec sleep 30")
        source = temp_dir / "a.tar.zst"
        source.write_text("data")

        with pytest.raises(RemoteTimeoutError):
            RcloneRemote("gdrive", binary=str(script)).copy(source, "/backups", 0.3)

    def test_copy_missing_binary(self, temp_dir: Path) -> None:
        source = temp_dir / "a.tar.zst"
        source.write_text("data")
        with pytest.raises(RemoteToolError):
            RcloneRemote("gdrive", binary=str(temp_dir / "missing")).copy(source, "/backups", 5)

    def test_is_available(self, temp_dir: Path) -> None:
        assert not RcloneRemote("gdrive", binary=str(temp_dir / "missing")).is_available()
        script = write_script(temp_dir / "fake-rclone", "exit 0")
        assert RcloneRemote("gdrive", binary=str(script)).is_available()

    def test_copy_requests_stats_at_default_log_level(
        self, temp_dir: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Stats are emitted at NOTICE so progress lines reach the output without -v."""
        script = write_script(temp_dir / "fake-rclone", 'echo "args: $*"\nexit 0')
        source = temp_dir / "a.tar.zst"
        source.write_text("data")

        with caplog.at_level("DEBUG", logger="backup_lifecycle"):
            RcloneRemote("gdrive", binary=str(script)).copy(source, "/backups", 10)

        messages = " ".join(r.getMessage() for r in caplog.records)
        assert "--stats-log-level NOTICE" in messages
