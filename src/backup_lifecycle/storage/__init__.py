"""
Storage tiers: naming, counting, retention, deletion and transfer.
"""

from backup_lifecycle.storage.count_cache import TierCountCache
from backup_lifecycle.storage.local import (
    CopyResult,
    copy_artifact,
    count_artifacts,
    delete_oldest,
    ensure_directory,
    list_artifacts,
)
from backup_lifecycle.storage.naming import NamingScheme, sidecar_names
from backup_lifecycle.storage.remote import RcloneRemote, RemoteTool
from backup_lifecycle.storage.remote_delete import RemoteDeleter, partition
from backup_lifecycle.storage.retention import RetentionPolicy, excess
from backup_lifecycle.storage.transfer import CloudTransfer

__all__ = [
    "CloudTransfer",
    "CopyResult",
    "NamingScheme",
    "RcloneRemote",
    "RemoteDeleter",
    "RemoteTool",
    "RetentionPolicy",
    "TierCountCache",
    "copy_artifact",
    "count_artifacts",
    "delete_oldest",
    "ensure_directory",
    "excess",
    "list_artifacts",
    "partition",
    "sidecar_names",
]
