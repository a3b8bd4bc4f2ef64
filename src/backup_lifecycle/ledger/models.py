"""
Ledger data models.

Defines the severity taxonomy, the run outcome scale, and the immutable
record appended for every classified issue of a run.
"""

from datetime import datetime, timezone
from enum import Enum, IntEnum

from pydantic import BaseModel, Field


class Severity(str, Enum):
    """Ledger record severities."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class RunOutcome(IntEnum):
    """Final run severity, doubling as the process exit code."""

    SUCCESS = 0
    WARNING = 1
    CRITICAL = 2

    @classmethod
    def from_severity(cls, severity: Severity) -> "RunOutcome":
        if severity is Severity.CRITICAL:
            return cls.CRITICAL
        if severity is Severity.WARNING:
            return cls.WARNING
        return cls.SUCCESS


def _utc_now() -> str:
    """Return current UTC timestamp as ISO8601 string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class LedgerEntry(BaseModel):
    """
    A single classified issue.

    Immutable once appended. Advisory entries are reported but never
    raise the run outcome.
    """

    category: str = Field(description="Component or concern that produced the record")
    severity: Severity = Field(description="Record severity")
    message: str = Field(description="Human-readable summary")
    details: str = Field(default="", description="Free-form diagnostic detail")
    advisory: bool = Field(default=False, description="Reported without escalating the outcome")
    timestamp: str = Field(default_factory=_utc_now)
    run_id: str | None = Field(default=None, description="Associated run identifier")

    model_config = {"frozen": True}

    @property
    def escalates_to(self) -> RunOutcome:
        """The outcome this entry contributes to the run."""
        if self.advisory:
            return RunOutcome.SUCCESS
        return RunOutcome.from_severity(self.severity)

    def to_log_line(self) -> str:
        """Convert to JSONL string for file storage."""
        return self.model_dump_json(exclude_none=True)
