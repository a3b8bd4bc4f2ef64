"""
Batched deletion of the oldest remote artifacts.

The deletion set is computed from one listing snapshot, expanded with
sidecars and same-stem companions, then removed in fixed-size batches so
each delete call fits its timeout.
"""

import logging
import time
from collections.abc import Callable
from pathlib import Path

from backup_lifecycle.config.settings import RemoteSettings
from backup_lifecycle.core.exceptions import RemoteToolError
from backup_lifecycle.core.models import RemoteDeletionResult
from backup_lifecycle.ledger import ErrorLedger
from backup_lifecycle.storage.naming import NamingScheme
from backup_lifecycle.storage.remote import RemoteTool

logger = logging.getLogger(__name__)

CATEGORY = "remote_delete"


def partition(items: list[str], size: int) -> list[list[str]]:
    """Split items into consecutive batches of at most size entries."""
    return [items[i : i + size] for i in range(0, len(items), size)]


class RemoteDeleter:
    """Deletes the oldest artifacts from the cloud tier."""

    def __init__(
        self,
        remote: RemoteTool,
        settings: RemoteSettings,
        ledger: ErrorLedger,
        scheme: NamingScheme,
        *,
        work_dir: Path | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.remote = remote
        self.settings = settings
        self.ledger = ledger
        self.scheme = scheme
        self.work_dir = work_dir
        self._sleep = sleep

    def _expand(self, remote_prefix: str, selected: list[str], listed: set[str]) -> list[str]:
        queued: list[str] = []

        def _queue(name: str) -> None:
            if name not in queued:
                queued.append(name)

        for name in selected:
            _queue(name)
            _queue(f"{name}.sha256")
            if f"{name}.metadata" in listed:
                _queue(f"{name}.metadata")
                _queue(f"{name}.metadata.sha256")

            pattern = f"{self.scheme.stem(name)}.*"
            try:
                companions = self.remote.list_names(remote_prefix, pattern, self.settings.short_timeout)
            except RemoteToolError as e:
                logger.debug(f"Companion listing for {name} failed: {e}")
                continue
            for companion in companions:
                # Other artifacts sharing the stem are retention candidates of their own
                if companion != name and self.scheme.matches(companion):
                    continue
                _queue(companion)

        return queued

    def delete_oldest_remote(self, remote_prefix: str, n: int, *, dry_run: bool = False) -> RemoteDeletionResult:
        """
        Delete the n oldest remote artifacts with their related objects.

        Args:
            remote_prefix: Remote directory
            n: Number of artifacts to delete
            dry_run: Compute and log the deletion set without deleting

        Returns:
            RemoteDeletionResult; success is False when the listing
            failed, nothing was identified, or any batch failed
        """
        result = RemoteDeletionResult(requested=n)
        if n <= 0:
            result.success = True
            return result

        try:
            objects = self.remote.list_detailed(remote_prefix, self.settings.short_timeout)
        except RemoteToolError as e:
            result.message = "Remote listing failed"
            self.ledger.warning(CATEGORY, f"Cannot list {remote_prefix}; nothing deleted", str(e))
            return result

        candidates = [obj for obj in objects if self.scheme.matches(obj.name)]
        if not candidates:
            result.message = "No artifacts listed"
            self.ledger.warning(CATEGORY, f"No artifacts found in {remote_prefix} while {n} deletion(s) were requested")
            return result

        candidates.sort(key=lambda obj: (obj.modified, obj.name))
        result.selected = [obj.name for obj in candidates[:n]]
        result.deletion_set = self._expand(remote_prefix, result.selected, {obj.name for obj in objects})

        if not result.deletion_set:
            result.message = "Deletion set is empty"
            self.ledger.warning(CATEGORY, f"Nothing identified for deletion in {remote_prefix}")
            return result

        batches = partition(result.deletion_set, self.settings.delete_batch_size)
        result.batches_total = len(batches)
        logger.info(
            f"Deleting {len(result.selected)} artifact(s) ({len(result.deletion_set)} object(s)) "
            f"from {remote_prefix} in {len(batches)} batch(es)"
        )

        if dry_run:
            for name in result.deletion_set:
                logger.info(f"[dry-run] Would delete {remote_prefix}/{name}")
            result.success = True
            result.deleted_artifacts = len(result.selected)
            return result

        deleted: set[str] = set()
        for index, batch in enumerate(batches, start=1):
            if index > 1:
                self._sleep(self.settings.delete_batch_pause)
            try:
                self.remote.delete_files(
                    remote_prefix, batch, self.settings.medium_timeout, work_dir=self.work_dir
                )
            except RemoteToolError as e:
                result.batches_failed += 1
                self.ledger.warning(
                    CATEGORY, f"Delete batch {index}/{len(batches)} failed", str(e)
                )
                continue
            logger.debug(f"Delete batch {index}/{len(batches)} removed {len(batch)} object(s)")
            deleted.update(batch)

        result.deleted_artifacts = sum(1 for name in result.selected if name in deleted)
        result.success = result.batches_failed == 0
        result.message = (
            f"Deleted {result.deleted_artifacts}/{len(result.selected)} artifact(s), "
            f"{result.batches_failed} failed batch(es)"
        )
        return result
