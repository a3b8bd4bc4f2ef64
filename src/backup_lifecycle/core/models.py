"""
Core data models for the backup lifecycle manager.

Tier identities, artifact records, transfer outcomes, and the per-run
summary consumed by reporting collaborators.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


class Tier(str, Enum):
    """The three fixed storage tiers, in processing order."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    CLOUD = "cloud"

    @property
    def is_remote(self) -> bool:
        """Return True for tiers reached through the remote tool."""
        return self is Tier.CLOUD


class ArtifactKind(str, Enum):
    """Kinds of artifacts managed per tier."""

    BACKUP = "backup"
    LOG = "log"


class TierState(str, Enum):
    """Per-tier lifecycle states."""

    DISABLED = "disabled"
    COUNTING = "counting"
    ROTATING = "rotating"
    DONE = "done"


class TransferState(str, Enum):
    """States of one artifact's transfer to the cloud tier."""

    UPLOADING = "uploading"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    UNVERIFIED = "unverified"
    FAILED = "failed"


class UploadStatus(str, Enum):
    """Final outcome of an upload."""

    SUCCESS = "success"
    SUCCESS_UNVERIFIED = "success_unverified"
    FAILED = "failed"

    @property
    def counts_as_stored(self) -> bool:
        """Unverified uploads still count toward tier occupancy."""
        return self is not UploadStatus.FAILED


class TierStatus(str, Enum):
    """Tier-scoped status reported to the summary collaborator."""

    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Artifact:
    """A local artifact file on a filesystem tier."""

    path: Path
    mtime: float
    size_bytes: int = 0

    @property
    def name(self) -> str:
        return self.path.name

    @classmethod
    def from_path(cls, path: Path) -> "Artifact":
        """Build an Artifact from a file on disk."""
        stat = path.stat()
        return cls(path=path, mtime=stat.st_mtime, size_bytes=stat.st_size)


@dataclass(frozen=True)
class RemoteObject:
    """An object reported by a remote listing."""

    name: str
    size_bytes: int
    modified: str
    # Sortable "YYYY-MM-DD HH:MM:SS.fffffffff" as reported by the tool


@dataclass
class TransferOutcome:
    """
    Result of uploading one artifact to the cloud tier.

    ``created`` is False when the object was already listed on the tier
    before the upload, so it must not be counted again.
    """

    status: UploadStatus
    state: TransferState
    local_path: Path
    remote_path: str
    attempts: int = 0
    verified_by: str | None = None
    message: str = ""
    duration_seconds: float = 0.0
    created: bool = True
    checksum_verified: bool | None = None
    sidecar_failures: list[str] = field(default_factory=list)


@dataclass
class LocalDeletionResult:
    """Result of deleting the oldest artifacts from a filesystem tier."""

    requested: int
    deleted_count: int = 0
    had_errors: bool = False
    deleted: list[str] = field(default_factory=list)
    sidecars_deleted: list[str] = field(default_factory=list)
    sidecar_failures: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Sidecar failures never change the reported success."""
        return not self.had_errors


@dataclass
class RemoteDeletionResult:
    """Result of a batched remote deletion."""

    requested: int
    success: bool = False
    selected: list[str] = field(default_factory=list)
    deletion_set: list[str] = field(default_factory=list)
    batches_total: int = 0
    batches_failed: int = 0
    deleted_artifacts: int = 0
    message: str = ""


class TierReport(BaseModel):
    """Final per-tier view for one artifact kind."""

    kind: ArtifactKind
    tier: Tier
    state: TierState = TierState.DISABLED
    status: TierStatus = TierStatus.OK
    count: int = 0
    max_allowed: int = 0
    deleted: int = 0
    transfer: UploadStatus | None = None
    message: str = ""

    @property
    def occupancy(self) -> str:
        """Render as occupied/max."""
        if self.state is TierState.DISABLED:
            return "-"
        return f"{self.count}/{self.max_allowed}"


class RunSummary(BaseModel):
    """Per-run summary exposed to reporting and notification collaborators."""

    run_id: str
    started_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    finished_at: str | None = None
    tiers: list[TierReport] = Field(default_factory=list)
    exit_code: int = 0
    ledger: list[dict[str, Any]] = Field(default_factory=list)

    def report_for(self, kind: ArtifactKind, tier: Tier) -> TierReport | None:
        """Return the report for one kind/tier pair, if present."""
        for report in self.tiers:
            if report.kind == kind and report.tier == tier:
                return report
        return None
