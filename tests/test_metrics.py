"""Tests for cross-run metrics accumulation."""

import fcntl
import json
from pathlib import Path

import pytest

from backup_lifecycle.core.exceptions import LockTimeoutError
from backup_lifecycle.ledger import ErrorLedger, Severity
from backup_lifecycle.monitoring.metrics import PROM_FILENAME, LifecycleMetrics, MetricsStore, file_lock

COUNTS = {
    "backup": {"primary": 50, "secondary": 20, "cloud": 21},
    "log": {"primary": 10, "secondary": 0, "cloud": 0},
}


class TestMetricsStore:
    """Tests for recording runs."""

    def test_record_run_accumulates(self, temp_dir: Path) -> None:
        """Counters add up across runs and gauges reflect the last run."""
        store = MetricsStore(temp_dir / "metrics.json", lock_timeout=1)

        first = ErrorLedger()
        first.warning("upload", "failed")
        assert store.record_run(first, COUNTS, cloud_connectivity=1)

        second = ErrorLedger()
        second.critical("tier", "unavailable")
        assert store.record_run(second, COUNTS, cloud_connectivity=0)

        metrics = store.load()
        assert metrics.runs_total == 2
        assert metrics.warnings_total == 1
        assert metrics.criticals_total == 1
        assert metrics.last_exit_code == 2
        assert metrics.last_cloud_connectivity == 0
        assert metrics.counts["backup"]["cloud"] == 21

        on_disk = json.loads((temp_dir / "metrics.json").read_text())
        assert on_disk["runs_total"] == 2

    def test_writes_prometheus_textfile(self, temp_dir: Path) -> None:
        """A configured textfile directory receives the rendering."""
        store = MetricsStore(temp_dir / "metrics.json", lock_timeout=1, textfile_dir=temp_dir / "prom")
        store.record_run(ErrorLedger(), COUNTS, cloud_connectivity=1)

        text = (temp_dir / "prom" / PROM_FILENAME).read_text()
        assert 'backup_lifecycle_count{kind="backup",tier="primary"} 50' in text
        assert 'backup_lifecycle_count_total{kind="backup"} 91' in text
        assert "backup_lifecycle_cloud_connectivity 1" in text
        assert "backup_lifecycle_exit_code 0" in text

    def test_lock_timeout_skips_update(self, temp_dir: Path) -> None:
        """A held lock skips the update with a warning instead of blocking."""
        store = MetricsStore(temp_dir / "metrics.json", lock_timeout=0.2)
        ledger = ErrorLedger()

        with open(store.lock_path, "a") as holder:
            fcntl.flock(holder.fileno(), fcntl.LOCK_EX)
            try:
                updated = store.record_run(ledger, COUNTS)
            finally:
                fcntl.flock(holder.fileno(), fcntl.LOCK_UN)

        assert not updated
        assert not (temp_dir / "metrics.json").exists()
        warnings = ledger.by_severity(Severity.WARNING)
        assert len(warnings) == 1
        assert warnings[0].category == "metrics"

    def test_corrupt_file_starts_fresh(self, temp_dir: Path) -> None:
        """An unreadable metrics file is replaced rather than failing the run."""
        path = temp_dir / "metrics.json"
        path.write_text("{not json")
        store = MetricsStore(path, lock_timeout=1)
        assert store.record_run(ErrorLedger(), COUNTS)
        assert store.load().runs_total == 1


class TestFileLock:
    """Tests for the bounded advisory lock."""

    def test_lock_released_after_use(self, temp_dir: Path) -> None:
        lock = temp_dir / "x.lock"
        with file_lock(lock, timeout=0.5):
            pass
        with file_lock(lock, timeout=0.5):
            pass

    def test_lock_contention_times_out(self, temp_dir: Path) -> None:
        lock = temp_dir / "x.lock"
        with file_lock(lock, timeout=0.5):
            with pytest.raises(LockTimeoutError) as exc_info:
                with file_lock(lock, timeout=0.2):
                    pass
        assert exc_info.value.timeout_seconds == 0.2


class TestPrometheus:
    """Tests for the text rendering."""

    def test_defaults(self) -> None:
        """Fresh metrics render zero counts and unknown connectivity."""
        text = LifecycleMetrics().to_prometheus()
        assert "# TYPE backup_lifecycle_count gauge" in text
        assert 'backup_lifecycle_count{kind="log",tier="cloud"} 0' in text
        assert "backup_lifecycle_cloud_connectivity -2" in text
        assert "# TYPE backup_lifecycle_runs_total counter" in text
