"""
Cross-run metrics accumulation.

Provides:
- A JSON metrics file shared by overlapping runs, updated under an
  exclusive advisory lock with a bounded acquisition timeout
- Prometheus text export, optionally written to a textfile collector
  directory
"""

import fcntl
import json
import logging
import os
import tempfile
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from backup_lifecycle.core.exceptions import LockTimeoutError
from backup_lifecycle.core.models import ArtifactKind, Tier
from backup_lifecycle.ledger import ErrorLedger, Severity

logger = logging.getLogger(__name__)

PROM_FILENAME = "backup_lifecycle.prom"


@contextmanager
def file_lock(lock_path: Path, timeout: float, poll_interval: float = 0.1) -> Iterator[None]:
    """
    Hold an exclusive flock on lock_path.

    Raises:
        LockTimeoutError: If the lock is not acquired within timeout seconds
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with open(lock_path, "a", encoding="utf-8") as handle:
        deadline = time.monotonic() + timeout
        while True:
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise LockTimeoutError(
                        "Metrics lock not acquired",
                        lock_path=str(lock_path),
                        timeout_seconds=timeout,
                    ) from None
                time.sleep(poll_interval)
        try:
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


def _atomic_write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except OSError:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


@dataclass
class LifecycleMetrics:
    """Accumulated metrics across runs."""

    runs_total: int = 0
    warnings_total: int = 0
    criticals_total: int = 0
    last_exit_code: int = 0
    last_cloud_connectivity: int = -2
    last_run_at: str | None = None
    counts: dict[str, dict[str, int]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "runs_total": self.runs_total,
            "warnings_total": self.warnings_total,
            "criticals_total": self.criticals_total,
            "last_exit_code": self.last_exit_code,
            "last_cloud_connectivity": self.last_cloud_connectivity,
            "last_run_at": self.last_run_at,
            "counts": self.counts,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LifecycleMetrics":
        return cls(
            runs_total=data.get("runs_total", 0),
            warnings_total=data.get("warnings_total", 0),
            criticals_total=data.get("criticals_total", 0),
            last_exit_code=data.get("last_exit_code", 0),
            last_cloud_connectivity=data.get("last_cloud_connectivity", -2),
            last_run_at=data.get("last_run_at"),
            counts=data.get("counts", {}),
        )

    def to_prometheus(self) -> str:
        """
        Export metrics in Prometheus text format.

        Returns:
            Prometheus-formatted metrics string
        """
        lines = []

        lines.append("# HELP backup_lifecycle_count Artifacts stored per tier")
        lines.append("# TYPE backup_lifecycle_count gauge")
        for kind in ArtifactKind:
            for tier in Tier:
                value = self.counts.get(kind.value, {}).get(tier.value, 0)
                lines.append(f'backup_lifecycle_count{{kind="{kind.value}",tier="{tier.value}"}} {value}')

        lines.append("# HELP backup_lifecycle_count_total Artifacts stored across all tiers")
        lines.append("# TYPE backup_lifecycle_count_total gauge")
        for kind in ArtifactKind:
            total = sum(self.counts.get(kind.value, {}).values())
            lines.append(f'backup_lifecycle_count_total{{kind="{kind.value}"}} {total}')

        lines.append("# HELP backup_lifecycle_cloud_connectivity Cloud connectivity (1 ok, 0 error, -1 disabled, -2 unknown)")
        lines.append("# TYPE backup_lifecycle_cloud_connectivity gauge")
        lines.append(f"backup_lifecycle_cloud_connectivity {self.last_cloud_connectivity}")

        lines.append("# HELP backup_lifecycle_exit_code Exit code of the last run")
        lines.append("# TYPE backup_lifecycle_exit_code gauge")
        lines.append(f"backup_lifecycle_exit_code {self.last_exit_code}")

        lines.append("# HELP backup_lifecycle_runs_total Total runs recorded")
        lines.append("# TYPE backup_lifecycle_runs_total counter")
        lines.append(f"backup_lifecycle_runs_total {self.runs_total}")

        lines.append("# HELP backup_lifecycle_warnings_total Total warning records")
        lines.append("# TYPE backup_lifecycle_warnings_total counter")
        lines.append(f"backup_lifecycle_warnings_total {self.warnings_total}")

        lines.append("# HELP backup_lifecycle_criticals_total Total critical records")
        lines.append("# TYPE backup_lifecycle_criticals_total counter")
        lines.append(f"backup_lifecycle_criticals_total {self.criticals_total}")

        return "\n".join(lines) + "\n"


class MetricsStore:
    """
    JSON metrics file shared between runs.

    Lock failures never block a run: the update is skipped and a warning
    is recorded.
    """

    def __init__(
        self,
        metrics_file: Path,
        *,
        lock_timeout: float = 60,
        textfile_dir: Path | None = None,
    ):
        self.metrics_file = Path(metrics_file)
        self.lock_path = self.metrics_file.with_name(self.metrics_file.name + ".lock")
        self.lock_timeout = lock_timeout
        self.textfile_dir = Path(textfile_dir) if textfile_dir else None

    def load(self) -> LifecycleMetrics:
        """Load metrics from disk if available."""
        if not self.metrics_file.exists():
            return LifecycleMetrics()
        try:
            return LifecycleMetrics.from_dict(json.loads(self.metrics_file.read_text()))
        except (json.JSONDecodeError, OSError, AttributeError) as e:
            logger.warning(f"Failed to load metrics from {self.metrics_file}: {e}")
            return LifecycleMetrics()

    def record_run(
        self,
        ledger: ErrorLedger,
        counts: dict[str, dict[str, int]],
        cloud_connectivity: int = -2,
    ) -> bool:
        """
        Fold one run into the accumulated metrics.

        Args:
            ledger: The finished run's ledger
            counts: Final counts keyed by kind then tier
            cloud_connectivity: Connectivity gauge value

        Returns:
            True when the metrics file was updated
        """
        try:
            with file_lock(self.lock_path, self.lock_timeout):
                metrics = self.load()
                metrics.runs_total += 1
                metrics.warnings_total += len(ledger.by_severity(Severity.WARNING))
                metrics.criticals_total += len(ledger.by_severity(Severity.CRITICAL))
                metrics.last_exit_code = ledger.exit_code()
                metrics.last_cloud_connectivity = cloud_connectivity
                metrics.last_run_at = datetime.now(timezone.utc).isoformat()
                metrics.counts = counts

                _atomic_write(self.metrics_file, json.dumps(metrics.to_dict(), indent=2))
                if self.textfile_dir:
                    _atomic_write(self.textfile_dir / PROM_FILENAME, metrics.to_prometheus())
        except LockTimeoutError as e:
            ledger.warning("metrics", "Metrics update skipped: lock not acquired", str(e))
            return False
        except OSError as e:
            ledger.warning("metrics", "Metrics update failed", str(e))
            return False

        logger.debug(f"Metrics updated in {self.metrics_file}")
        return True
