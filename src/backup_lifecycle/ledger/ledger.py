"""
Append-only error ledger for one run.

Every recoverable or fatal issue observed during a run is appended here,
mirrored to the logger, and folded into a monotonic run outcome that
becomes the process exit code.
"""

import fcntl
import logging
import os
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from backup_lifecycle.ledger.models import LedgerEntry, RunOutcome, Severity

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.CRITICAL: logging.ERROR,
}


@dataclass
class LedgerWriteResult:
    """Result of persisting the ledger to disk."""

    success: bool
    log_file: str
    entries_written: int = 0
    error: str | None = None


class ErrorLedger:
    """
    Ordered, append-only record of classified issues.

    The run outcome only moves upward: a warning raises it from success,
    a critical raises it from anything, and an explicit success request
    is ignored once any escalation happened.
    """

    LOG_PREFIX = "ledger_"
    LOG_SUFFIX = ".jsonl"

    def __init__(self, run_id: str | None = None):
        self.run_id = run_id
        self._entries: list[LedgerEntry] = []
        self._outcome = RunOutcome.SUCCESS

    @property
    def entries(self) -> tuple[LedgerEntry, ...]:
        """Snapshot of the records in append order."""
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def record(
        self,
        category: str,
        severity: Severity,
        message: str,
        details: str = "",
        *,
        advisory: bool = False,
    ) -> LedgerEntry:
        """Append a record, log it, and escalate the outcome."""
        entry = LedgerEntry(
            category=category,
            severity=severity,
            message=message,
            details=details,
            advisory=advisory,
            run_id=self.run_id,
        )
        self._entries.append(entry)

        text = f"[{category}] {message}"
        if details:
            text = f"{text}: {details}"
        logger.log(_LOG_LEVELS[severity], text)

        self.escalate(entry.escalates_to)
        return entry

    def info(self, category: str, message: str, details: str = "") -> LedgerEntry:
        return self.record(category, Severity.INFO, message, details)

    def warning(
        self, category: str, message: str, details: str = "", *, advisory: bool = False
    ) -> LedgerEntry:
        return self.record(category, Severity.WARNING, message, details, advisory=advisory)

    def critical(self, category: str, message: str, details: str = "") -> LedgerEntry:
        return self.record(category, Severity.CRITICAL, message, details)

    def escalate(self, outcome: RunOutcome) -> RunOutcome:
        """
        Raise the run outcome.

        Args:
            outcome: Requested outcome

        Returns:
            The outcome in effect after the request
        """
        if outcome > self._outcome:
            logger.debug(f"Run outcome escalated {self._outcome.name} -> {outcome.name}")
            self._outcome = outcome
        return self._outcome

    @property
    def outcome(self) -> RunOutcome:
        return self._outcome

    def final_severity(self) -> RunOutcome:
        """Maximum non-advisory severity observed, never below the escalated outcome."""
        observed = max(
            (entry.escalates_to for entry in self._entries),
            default=RunOutcome.SUCCESS,
        )
        return max(observed, self._outcome)

    def exit_code(self) -> int:
        return int(self.final_severity())

    def has_critical(self) -> bool:
        return any(e.severity is Severity.CRITICAL for e in self._entries)

    def by_severity(self, severity: Severity) -> list[LedgerEntry]:
        return [e for e in self._entries if e.severity is severity]

    def by_category(self, category: str) -> list[LedgerEntry]:
        return [e for e in self._entries if e.category == category]

    def summary(self) -> dict[str, Any]:
        """Totals by severity and by category."""
        severities = Counter(e.severity.value for e in self._entries)
        categories = Counter(e.category for e in self._entries)
        return {
            "total": len(self._entries),
            "by_severity": {s.value: severities.get(s.value, 0) for s in Severity},
            "by_category": dict(categories),
            "advisory": sum(1 for e in self._entries if e.advisory),
            "exit_code": self.exit_code(),
        }

    def most_common_message(self) -> tuple[str, int] | None:
        """Return the most repeated message, if any message repeats."""
        if not self._entries:
            return None
        message, count = Counter(e.message for e in self._entries).most_common(1)[0]
        if count < 2:
            return None
        return message, count

    def to_dicts(self) -> list[dict[str, Any]]:
        return [e.model_dump(mode="json", exclude_none=True) for e in self._entries]

    def write_jsonl(self, directory: Path) -> LedgerWriteResult:
        """
        Append this run's records to the date-named ledger file.

        Args:
            directory: Directory holding ledger files

        Returns:
            LedgerWriteResult describing the write
        """
        directory = Path(directory)
        date = datetime.now(timezone.utc)
        log_file = directory / f"{self.LOG_PREFIX}{date.strftime('%Y%m%d')}{self.LOG_SUFFIX}"

        if not self._entries:
            return LedgerWriteResult(success=True, log_file=str(log_file))

        content = "\n".join(e.to_log_line() for e in self._entries) + "\n"
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with open(log_file, "a", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                try:
                    f.write(content)
                    f.flush()
                    os.fsync(f.fileno())
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            logger.warning(f"Failed to persist ledger to {log_file}: {e}")
            return LedgerWriteResult(success=False, log_file=str(log_file), error=str(e))

        return LedgerWriteResult(
            success=True, log_file=str(log_file), entries_written=len(self._entries)
        )
