"""
Cloud transfer with post-upload verification.

Verification is advisory: a transfer that succeeded but cannot be
confirmed by listing is reported as ``success_unverified``, which counts
as stored and never fails the run on its own.
"""

import logging
import time
from collections.abc import Collection
from pathlib import Path

from backup_lifecycle.config.settings import RemoteSettings
from backup_lifecycle.core.exceptions import RemoteToolError
from backup_lifecycle.core.models import TransferOutcome, TransferState, UploadStatus
from backup_lifecycle.ledger import ErrorLedger
from backup_lifecycle.retry import bounded_retry
from backup_lifecycle.storage.naming import sidecar_names
from backup_lifecycle.storage.remote import RemoteTool, join_remote

logger = logging.getLogger(__name__)

CATEGORY = "upload"


class CloudTransfer:
    """Uploads artifacts to the remote tier and verifies their presence."""

    def __init__(self, remote: RemoteTool, settings: RemoteSettings, ledger: ErrorLedger):
        self.remote = remote
        self.settings = settings
        self.ledger = ledger

    def _failed(self, local_path: Path, remote_prefix: str, message: str, details: str = "") -> TransferOutcome:
        self.ledger.warning(CATEGORY, message, details)
        return TransferOutcome(
            status=UploadStatus.FAILED,
            state=TransferState.FAILED,
            local_path=local_path,
            remote_path=join_remote(remote_prefix, local_path.name),
            message=message,
        )

    def _check_preconditions(self, local_path: Path) -> str | None:
        if not local_path.is_file():
            return f"Local file not found: {local_path}"
        if local_path.stat().st_size == 0:
            return f"Local file is empty: {local_path}"
        if not self.remote.is_available():
            return "Remote tool is not available"
        if not self.remote.remote_name:
            return "Remote is not configured"
        return None

    def upload(
        self,
        local_path: Path,
        remote_prefix: str,
        *,
        existing: Collection[str] | None = None,
    ) -> TransferOutcome:
        """
        Upload one artifact, verify it, then upload its sidecars.

        Args:
            local_path: Artifact on the primary tier
            remote_prefix: Remote directory to copy into
            existing: Names listed under the prefix before the upload, if known

        Returns:
            TransferOutcome with status success, success_unverified or failed
        """
        local_path = Path(local_path)
        started = time.monotonic()

        problem = self._check_preconditions(local_path)
        if problem:
            return self._failed(local_path, remote_prefix, f"Upload skipped: {problem}")

        name = local_path.name
        outcome = TransferOutcome(
            status=UploadStatus.SUCCESS,
            state=TransferState.UPLOADING,
            local_path=local_path,
            remote_path=join_remote(remote_prefix, name),
            created=existing is None or name not in existing,
        )
        if not outcome.created:
            logger.debug(f"{name} is already present in {join_remote(remote_prefix, '')}; uploading again")

        logger.info(f"Uploading {name} to {join_remote(remote_prefix, '')}")
        try:
            self.remote.copy(local_path, remote_prefix, self.settings.upload_timeout)
        except RemoteToolError as e:
            return self._failed(local_path, remote_prefix, f"Upload of {name} failed", str(e))

        if self.settings.skip_verification:
            logger.debug(f"Verification skipped for {name}")
            outcome.state = TransferState.VERIFIED
            outcome.verified_by = "skipped"
        else:
            outcome.state = TransferState.VERIFYING
            self._verify(outcome, remote_prefix)

        outcome.sidecar_failures = self._upload_sidecars(local_path, remote_prefix)
        if not self.settings.skip_verification and f"{name}.sha256" not in outcome.sidecar_failures:
            outcome.checksum_verified = self._verify_checksum(local_path, remote_prefix)
        outcome.duration_seconds = time.monotonic() - started
        logger.info(f"Upload of {name} finished: {outcome.status.value} in {outcome.duration_seconds:.1f}s")
        return outcome

    def _verify(self, outcome: TransferOutcome, remote_prefix: str) -> None:
        name = outcome.local_path.name
        timeout = self.settings.short_timeout

        check = bounded_retry(
            lambda: self.remote.stat(remote_prefix, name, timeout),
            self.settings.verify_attempts,
            self.settings.verify_pause,
            description=f"verify {name}",
        )
        outcome.attempts = check.attempts
        if check.success:
            outcome.state = TransferState.VERIFIED
            outcome.verified_by = "stat"
            return

        found_by_listing = False
        try:
            found_by_listing = name in self.remote.list_flat(remote_prefix, timeout)
        except RemoteToolError as e:
            logger.debug(f"Fallback listing for {name} failed: {e}")

        outcome.status = UploadStatus.SUCCESS_UNVERIFIED
        outcome.state = TransferState.UNVERIFIED
        if found_by_listing:
            outcome.verified_by = "listing"
            outcome.message = f"{name} found only by directory listing"
        else:
            outcome.message = f"{name} not confirmed after {check.attempts} attempt(s)"
        self.ledger.warning(
            CATEGORY,
            f"Upload verification inconclusive for {name}",
            outcome.message,
            advisory=True,
        )

    def _upload_sidecars(self, local_path: Path, remote_prefix: str) -> list[str]:
        failures = []
        for sidecar_name in sidecar_names(local_path.name):
            sidecar = local_path.with_name(sidecar_name)
            if not sidecar.is_file():
                continue
            try:
                self.remote.copy(sidecar, remote_prefix, self.settings.medium_timeout)
            except RemoteToolError as e:
                failures.append(sidecar_name)
                self.ledger.warning(CATEGORY, f"Upload of sidecar {sidecar_name} failed", str(e))
                continue
            logger.debug(f"Uploaded sidecar {sidecar_name}")
        return failures

    def _verify_checksum(self, local_path: Path, remote_prefix: str) -> bool | None:
        """Confirm the checksum sidecar once; the result is informational."""
        checksum = f"{local_path.name}.sha256"
        if not local_path.with_name(checksum).is_file():
            return None
        try:
            confirmed = self.remote.stat(remote_prefix, checksum, self.settings.short_timeout)
        except RemoteToolError as e:
            confirmed = False
            logger.debug(f"Checksum check for {checksum} failed: {e}")
        if not confirmed:
            self.ledger.info(CATEGORY, f"Checksum sidecar {checksum} not confirmed on remote")
        return confirmed
