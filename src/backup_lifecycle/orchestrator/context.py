"""
Per-run context.

Owns everything that lives exactly as long as one run: the run id, the
ledger, the per-kind count caches and a temporary working directory.
"""

import logging
import shutil
import signal
import tempfile
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from types import FrameType
from typing import Any

from backup_lifecycle.core.exceptions import TierAccessError
from backup_lifecycle.core.models import ArtifactKind
from backup_lifecycle.ledger import ErrorLedger
from backup_lifecycle.storage.count_cache import TierCountCache

logger = logging.getLogger(__name__)

_HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def new_run_id() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"run_{stamp}_{uuid.uuid4().hex[:8]}"


def flush_log_handlers() -> None:
    """Flush every handler reachable from the root and package loggers."""
    for name in ("", "backup_lifecycle"):
        for handler in logging.getLogger(name).handlers:
            try:
                handler.flush()
            except (OSError, ValueError):
                continue


class RunContext:
    """
    Scoped resources for one run.

    Use as a context manager. On every exit path, including SIGINT and
    SIGTERM (translated into SystemExit), logging handlers are flushed
    and the working directory is removed.
    """

    def __init__(
        self,
        run_id: str | None = None,
        *,
        work_dir_parent: Path | str | None = None,
        handle_signals: bool = True,
    ):
        self.run_id = run_id or new_run_id()
        self.ledger = ErrorLedger(run_id=self.run_id)
        self.count_caches: dict[ArtifactKind, TierCountCache] = {}
        self.work_dir: Path | None = None
        self._work_dir_parent = Path(work_dir_parent) if work_dir_parent else None
        self._handle_signals = handle_signals
        self._previous_handlers: dict[int, Any] = {}

    def _on_signal(self, signum: int, frame: FrameType | None) -> None:
        logger.warning(f"Received signal {signal.Signals(signum).name}, cleaning up")
        raise SystemExit(128 + signum)

    def _install_signal_handlers(self) -> None:
        if not self._handle_signals or threading.current_thread() is not threading.main_thread():
            return
        for signum in _HANDLED_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self._on_signal)

    def _restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    def __enter__(self) -> "RunContext":
        try:
            if self._work_dir_parent:
                self._work_dir_parent.mkdir(parents=True, exist_ok=True)
            self.work_dir = Path(
                tempfile.mkdtemp(
                    prefix=f"backup_lifecycle_{self.run_id}_",
                    dir=str(self._work_dir_parent) if self._work_dir_parent else None,
                )
            )
        except OSError as e:
            raise TierAccessError(
                f"Cannot create work directory: {e}",
                tier="work",
                path=str(self._work_dir_parent or tempfile.gettempdir()),
            ) from e
        self._install_signal_handlers()
        logger.debug(f"Run {self.run_id} started, work dir {self.work_dir}")
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    def close(self) -> None:
        """Release run resources; safe to call more than once."""
        self._restore_signal_handlers()
        if self.work_dir is not None:
            shutil.rmtree(self.work_dir, ignore_errors=True)
            logger.debug(f"Removed work dir {self.work_dir}")
            self.work_dir = None
        flush_log_handlers()
