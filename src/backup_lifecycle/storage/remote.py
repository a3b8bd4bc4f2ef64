"""
Remote tool wrapper.

Thin subprocess layer over rclone. Every call carries a wall-clock
timeout; failures surface as RemoteToolError or RemoteTimeoutError and
are classified by the caller.
"""

import logging
import os
import shutil
import subprocess
import tempfile
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from backup_lifecycle.config.settings import RemoteSettings
from backup_lifecycle.core.exceptions import RemoteTimeoutError, RemoteToolError
from backup_lifecycle.core.models import RemoteObject

logger = logging.getLogger(__name__)


class RemoteTool(Protocol):
    """Operations the lifecycle needs from a remote tool."""

    remote_name: str

    def is_available(self) -> bool: ...

    def list_remotes(self, timeout: float) -> list[str]: ...

    def about(self, timeout: float) -> None: ...

    def mkdir(self, path: str, timeout: float) -> None: ...

    def list_detailed(self, path: str, timeout: float) -> list[RemoteObject]: ...

    def stat(self, path: str, name: str, timeout: float) -> bool: ...

    def list_flat(self, path: str, timeout: float) -> list[str]: ...

    def list_names(self, path: str, include: str, timeout: float) -> list[str]: ...

    def copy(self, local_path: Path, path: str, timeout: float) -> None: ...

    def delete_files(
        self, path: str, names: Sequence[str], timeout: float, work_dir: Path | None = None
    ) -> None: ...


def join_remote(path: str, name: str) -> str:
    return f"{path.rstrip('/')}/{name}"


def parse_lsl(output: str) -> list[RemoteObject]:
    """Parse ``rclone lsl`` output: size, date, time, name."""
    objects = []
    for line in output.splitlines():
        parts = line.strip().split(maxsplit=3)
        if len(parts) < 4:
            continue
        size, date, time_of_day, name = parts
        try:
            size_bytes = int(size)
        except ValueError:
            logger.debug(f"Skipping unparseable listing line: {line!r}")
            continue
        objects.append(RemoteObject(name=name, size_bytes=size_bytes, modified=f"{date} {time_of_day}"))
    return objects


def parse_ls(output: str) -> list[str]:
    """Parse ``rclone ls`` output: size, name."""
    names = []
    for line in output.splitlines():
        parts = line.strip().split(maxsplit=1)
        if len(parts) == 2:
            names.append(parts[1])
    return names


class RcloneRemote:
    """
    rclone-backed remote tier.

    Addresses are built as ``remote_name:path``.
    """

    def __init__(
        self,
        remote_name: str,
        *,
        binary: str = "rclone",
        flags: Sequence[str] = (),
        bandwidth_limit: str = "",
        progress_sample_every: int = 1,
    ):
        self.remote_name = remote_name
        self.binary = binary
        self.flags = list(flags)
        self.bandwidth_limit = bandwidth_limit
        self.progress_sample_every = max(1, progress_sample_every)

    @classmethod
    def from_settings(cls, settings: RemoteSettings) -> "RcloneRemote":
        return cls(
            settings.remote_name,
            binary=settings.binary,
            flags=settings.flags,
            bandwidth_limit=settings.bandwidth_limit,
            progress_sample_every=settings.progress_sample_every,
        )

    def address(self, path: str = "") -> str:
        return f"{self.remote_name}:{path}"

    def is_available(self) -> bool:
        return shutil.which(self.binary) is not None

    def _run(self, args: Sequence[str], timeout: float) -> subprocess.CompletedProcess:
        command = [self.binary, *self.flags, *args]
        logger.debug(f"Running: {' '.join(command)}")
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise RemoteTimeoutError(
                f"{args[0]} timed out after {timeout}s", command=command, timeout_seconds=timeout
            ) from e
        except OSError as e:
            raise RemoteToolError(f"Cannot execute {self.binary}: {e}", command=command) from e

        if result.returncode != 0:
            raise RemoteToolError(
                f"{args[0]} failed",
                command=command,
                returncode=result.returncode,
                stderr=result.stderr.strip(),
            )
        return result

    def list_remotes(self, timeout: float) -> list[str]:
        result = self._run(["listremotes"], timeout)
        return [line.strip().rstrip(":") for line in result.stdout.splitlines() if line.strip()]

    def about(self, timeout: float) -> None:
        self._run(["about", self.address()], timeout)

    def mkdir(self, path: str, timeout: float) -> None:
        self._run(["mkdir", self.address(path)], timeout)

    def list_detailed(self, path: str, timeout: float) -> list[RemoteObject]:
        result = self._run(["lsl", "--fast-list", "--max-depth", "1", self.address(path)], timeout)
        return parse_lsl(result.stdout)

    def stat(self, path: str, name: str, timeout: float) -> bool:
        """True when the object is listable at path/name."""
        try:
            result = self._run(["lsl", self.address(join_remote(path, name))], timeout)
        except RemoteTimeoutError:
            raise
        except RemoteToolError as e:
            logger.debug(f"Object not listed: {join_remote(path, name)} ({e.returncode})")
            return False
        return any(obj.name == name for obj in parse_lsl(result.stdout))

    def list_flat(self, path: str, timeout: float) -> list[str]:
        result = self._run(["ls", "--max-depth", "1", self.address(path)], timeout)
        return parse_ls(result.stdout)

    def list_names(self, path: str, include: str, timeout: float) -> list[str]:
        result = self._run(["lsf", "--include", include, self.address(path)], timeout)
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def copy(self, local_path: Path, path: str, timeout: float) -> None:
        """
        Copy one file into the remote path.

        Progress lines are sampled to the debug log. The process is
        killed when the wall-clock timeout elapses.
        """
        args = ["copy", "--stats=5s", "--stats-one-line", "--stats-log-level", "NOTICE"]
        if self.bandwidth_limit:
            args += ["--bwlimit", self.bandwidth_limit]
        args += [str(local_path), self.address(path)]
        command = [self.binary, *self.flags, *args]
        logger.debug(f"Running: {' '.join(command)}")

        try:
            process = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except OSError as e:
            raise RemoteToolError(f"Cannot execute {self.binary}: {e}", command=command) from e

        timed_out = threading.Event()

        def _kill() -> None:
            timed_out.set()
            process.kill()

        timer = threading.Timer(timeout, _kill)
        timer.start()
        tail: list[str] = []
        try:
            for index, line in enumerate(process.stdout):
                line = line.rstrip()
                if not line:
                    continue
                tail = (tail + [line])[-5:]
                if index % self.progress_sample_every == 0:
                    logger.debug(f"Transfer progress: {line}")
            returncode = process.wait()
        finally:
            timer.cancel()
            process.stdout.close()

        if timed_out.is_set():
            raise RemoteTimeoutError(
                f"copy timed out after {timeout}s", command=command, timeout_seconds=timeout
            )
        if returncode != 0:
            raise RemoteToolError(
                "copy failed", command=command, returncode=returncode, stderr="\n".join(tail)
            )

    def delete_files(
        self,
        path: str,
        names: Sequence[str],
        timeout: float,
        work_dir: Path | None = None,
    ) -> None:
        """Delete the listed objects under path in a single call."""
        fd, list_file = tempfile.mkstemp(
            prefix="delete_batch_", suffix=".txt", dir=str(work_dir) if work_dir else None
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write("\n".join(names) + "\n")
            self._run(
                ["--fast-list", "--files-from", list_file, "delete", self.address(path)], timeout
            )
        finally:
            try:
                os.unlink(list_file)
            except FileNotFoundError:
                pass
