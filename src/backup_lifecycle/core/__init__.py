"""
Backup Lifecycle Core Module.

Provides foundational types and exceptions for the tier lifecycle manager.
"""

__all__ = [
    # Models
    "Artifact",
    "ArtifactKind",
    "LocalDeletionResult",
    "RemoteDeletionResult",
    "RemoteObject",
    "RunSummary",
    "Tier",
    "TierReport",
    "TierState",
    "TierStatus",
    "TransferOutcome",
    "TransferState",
    "UploadStatus",
    # Exceptions
    "BackupLifecycleError",
    "ConfigurationError",
    "LockTimeoutError",
    "RemoteTimeoutError",
    "RemoteToolError",
    "TierAccessError",
    "format_exception",
]

from backup_lifecycle.core.exceptions import (
    BackupLifecycleError,
    ConfigurationError,
    LockTimeoutError,
    RemoteTimeoutError,
    RemoteToolError,
    TierAccessError,
    format_exception,
)
from backup_lifecycle.core.models import (
    Artifact,
    ArtifactKind,
    LocalDeletionResult,
    RemoteDeletionResult,
    RemoteObject,
    RunSummary,
    Tier,
    TierReport,
    TierState,
    TierStatus,
    TransferOutcome,
    TransferState,
    UploadStatus,
)
