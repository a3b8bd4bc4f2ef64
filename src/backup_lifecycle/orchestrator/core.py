"""
Lifecycle Orchestrator - sequences tiers for each artifact kind.

For every kind the tiers run primary, then secondary, then cloud. Each
tier moves through counting, an optional transfer of the run's artifact,
and rotation. Failures are classified into the run ledger; no tier
failure stops the remaining tiers.
"""

import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from backup_lifecycle.config.settings import LifecycleSettings
from backup_lifecycle.core.exceptions import RemoteToolError, TierAccessError
from backup_lifecycle.core.models import (
    ArtifactKind,
    RunSummary,
    Tier,
    TierReport,
    TierState,
    TierStatus,
    UploadStatus,
)
from backup_lifecycle.monitoring.health import CloudConnectivity, ConnectivityStatus, probe_cloud
from backup_lifecycle.monitoring.metrics import MetricsStore
from backup_lifecycle.orchestrator.context import RunContext
from backup_lifecycle.storage.count_cache import TierCountCache
from backup_lifecycle.storage.local import copy_artifact, count_artifacts, delete_oldest, ensure_directory
from backup_lifecycle.storage.naming import NamingScheme
from backup_lifecycle.storage.remote import RcloneRemote, RemoteTool
from backup_lifecycle.storage.remote_delete import RemoteDeleter
from backup_lifecycle.storage.retention import RetentionPolicy
from backup_lifecycle.storage.transfer import CloudTransfer

logger = logging.getLogger(__name__)


class LifecycleOrchestrator:
    """
    Runs the tier lifecycle for backups and logs.

    Usage:
        with RunContext(work_dir_parent=settings.work_dir_parent) as ctx:
            summary = LifecycleOrchestrator(settings, ctx).run(backup_file, log_file)
    """

    def __init__(
        self,
        settings: LifecycleSettings,
        context: RunContext,
        remote: RemoteTool | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.context = context
        self.ledger = context.ledger
        self.remote = remote if remote is not None else RcloneRemote.from_settings(settings.remote)
        self._sleep = sleep
        self._connectivity: CloudConnectivity | None = None
        self._cloud_warning_recorded = False
        self._cloud_listing: dict[ArtifactKind, set[str]] = {}
        self.reports: list[TierReport] = []

    def scheme(self, kind: ArtifactKind) -> NamingScheme:
        return NamingScheme.for_kind(
            kind, self.settings.naming.system_type, self.settings.naming.compression
        )

    def connectivity(self) -> CloudConnectivity:
        """Probe the cloud tier once per run."""
        if self._connectivity is None:
            self._connectivity = probe_cloud(self.settings, self.remote)
        return self._connectivity

    def connectivity_gauge(self) -> int:
        if self._connectivity is not None:
            return self._connectivity.status.gauge_value
        if not self.settings.cloud.enabled:
            return ConnectivityStatus.DISABLED.gauge_value
        return ConnectivityStatus.UNKNOWN.gauge_value

    def _count_cloud(self, kind: ArtifactKind) -> int:
        connectivity = self.connectivity()
        if not connectivity.ok:
            raise RemoteToolError(f"Cloud tier unavailable: {connectivity.message}")
        scheme = self.scheme(kind)
        path = self.settings.cloud.path_for(kind)
        objects = self.remote.list_detailed(path, self.settings.remote.short_timeout)
        names = {obj.name for obj in objects if scheme.matches(obj.name)}
        self._cloud_listing[kind] = names
        return len(names)

    def cache(self, kind: ArtifactKind) -> TierCountCache:
        """Return the run's count cache for a kind, creating it on first use."""
        if kind not in self.context.count_caches:
            scheme = self.scheme(kind)

            def _local_counter(tier: Tier) -> Callable[[], int]:
                return lambda: count_artifacts(Path(self.settings.tier(tier).path_for(kind)), scheme)

            self.context.count_caches[kind] = TierCountCache(
                kind,
                counters={
                    Tier.PRIMARY: _local_counter(Tier.PRIMARY),
                    Tier.SECONDARY: _local_counter(Tier.SECONDARY),
                    Tier.CLOUD: lambda: self._count_cloud(kind),
                },
                ledger=self.ledger,
                enabled={tier: self.settings.tier_enabled(tier, kind) for tier in Tier},
            )
        return self.context.count_caches[kind]

    def run(self, backup_file: Path | None = None, log_file: Path | None = None) -> RunSummary:
        """
        Process every tier for backups, then for logs.

        Args:
            backup_file: This run's backup archive on the primary tier
            log_file: This run's log file on the primary tier

        Returns:
            RunSummary with final per-tier counts, statuses and the ledger
        """
        started_at = datetime.now(timezone.utc).isoformat()
        logger.info(f"Starting lifecycle run {self.context.run_id}")

        self.process_kind(ArtifactKind.BACKUP, backup_file)
        self.process_kind(ArtifactKind.LOG, log_file)

        self._record_metrics()

        summary = RunSummary(
            run_id=self.context.run_id,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc).isoformat(),
            tiers=list(self.reports),
            exit_code=self.ledger.exit_code(),
            ledger=self.ledger.to_dicts(),
        )

        if self.settings.ledger_dir:
            self.ledger.write_jsonl(Path(self.settings.ledger_dir))

        logger.info(f"Lifecycle run {self.context.run_id} finished with exit code {summary.exit_code}")
        return summary

    def process_kind(self, kind: ArtifactKind, artifact: Path | None = None) -> list[TierReport]:
        reports = []
        for tier in Tier:
            report = self._process_tier(kind, tier, Path(artifact) if artifact else None)
            logger.info(
                f"{kind.value}/{tier.value}: {report.state.value} {report.occupancy} {report.status.value}"
            )
            reports.append(report)
        self.reports.extend(reports)
        return reports

    def _process_tier(self, kind: ArtifactKind, tier: Tier, artifact: Path | None) -> TierReport:
        tier_settings = self.settings.tier(tier)
        report = TierReport(kind=kind, tier=tier, max_allowed=tier_settings.max_for(kind))

        if not self.settings.tier_enabled(tier, kind):
            report.state = TierState.DISABLED
            report.message = "disabled"
            return report

        location = tier_settings.path_for(kind)
        if tier.is_remote:
            connectivity = self.connectivity()
            if not connectivity.ok:
                if not self._cloud_warning_recorded:
                    self.ledger.warning(
                        "cloud",
                        f"Cloud tier unavailable ({connectivity.error_code.value if connectivity.error_code else '?'})",
                        connectivity.message,
                    )
                    self._cloud_warning_recorded = True
                report.state = TierState.DISABLED
                report.status = TierStatus.WARNING
                report.message = connectivity.message
                return report
        else:
            try:
                ensure_directory(Path(location), tier.value)
            except TierAccessError as e:
                self.ledger.critical("tier", f"{tier.value} {kind.value} directory unavailable", str(e))
                report.status = TierStatus.ERROR
                report.message = e.message
                return report

        cache = self.cache(kind)
        report.state = TierState.COUNTING
        cache.count(tier)

        if artifact is not None and tier is not Tier.PRIMARY:
            self._transfer(kind, tier, artifact, location, report)

        report.state = TierState.ROTATING
        self._rotate(kind, tier, location, report)

        report.count = cache.count(tier)
        report.state = TierState.DONE
        return report

    def _transfer(self, kind: ArtifactKind, tier: Tier, artifact: Path, location: str, report: TierReport) -> None:
        cache = self.cache(kind)

        if self.settings.dry_run:
            logger.info(f"[dry-run] Would copy {artifact.name} to {tier.value} tier ({location})")
            return

        if tier is Tier.SECONDARY:
            try:
                result = copy_artifact(
                    artifact,
                    Path(location),
                    self.ledger,
                    verify_attempts=self.settings.remote.verify_attempts,
                    verify_pause=self.settings.remote.verify_pause,
                    tier=tier.value,
                )
            except TierAccessError as e:
                self.ledger.critical("tier", f"{tier.value} {kind.value} directory unavailable", str(e))
                report.status = TierStatus.ERROR
                return
            if not result.success:
                report.status = TierStatus.WARNING
                report.message = result.error or "copy failed"
            elif result.created:
                cache.adjust(tier, 1)
            return

        outcome = CloudTransfer(self.remote, self.settings.remote, self.ledger).upload(
            artifact, location, existing=self._cloud_listing.get(kind)
        )
        report.transfer = outcome.status
        if outcome.status.counts_as_stored and outcome.created:
            cache.adjust(tier, 1)
        if outcome.status is UploadStatus.FAILED:
            report.status = TierStatus.WARNING
            report.message = outcome.message
        elif outcome.status is UploadStatus.SUCCESS_UNVERIFIED:
            report.message = outcome.message

    def _rotate(self, kind: ArtifactKind, tier: Tier, location: str, report: TierReport) -> None:
        cache = self.cache(kind)
        to_delete = RetentionPolicy(report.max_allowed).excess(cache.count(tier))
        if to_delete == 0:
            logger.debug(f"{kind.value}/{tier.value}: within retention ({cache.count(tier)}/{report.max_allowed})")
            return

        logger.info(f"{kind.value}/{tier.value}: deleting {to_delete} oldest artifact(s)")
        dry_run = self.settings.dry_run

        if tier.is_remote:
            deleter = RemoteDeleter(
                self.remote,
                self.settings.remote,
                self.ledger,
                self.scheme(kind),
                work_dir=self.context.work_dir,
                sleep=self._sleep,
            )
            result = deleter.delete_oldest_remote(location, to_delete, dry_run=dry_run)
            deleted, success = result.deleted_artifacts, result.success
        else:
            local = delete_oldest(Path(location), self.scheme(kind), to_delete, self.ledger, dry_run=dry_run)
            deleted, success = local.deleted_count, local.success

        report.deleted = deleted
        if not dry_run:
            cache.adjust(tier, -deleted)
        if not success and report.status is TierStatus.OK:
            report.status = TierStatus.WARNING

    def counts(self) -> dict[str, dict[str, int]]:
        """Final counts keyed by kind then tier, without new listings."""
        return {kind.value: self.cache(kind).snapshot() for kind in ArtifactKind}

    def count_all(self) -> dict[str, dict[str, int]]:
        """Count every enabled tier for both kinds."""
        result = {}
        for kind in ArtifactKind:
            cache = self.cache(kind)
            result[kind.value] = {tier.value: cache.count(tier) for tier in Tier}
            result[kind.value]["total"] = cache.total()
        return result

    def _record_metrics(self) -> None:
        if not self.settings.metrics_file:
            return
        store = MetricsStore(
            Path(self.settings.metrics_file),
            lock_timeout=self.settings.metrics_lock_timeout,
            textfile_dir=Path(self.settings.prometheus_textfile_dir)
            if self.settings.prometheus_textfile_dir
            else None,
        )
        store.record_run(self.ledger, self.counts(), self.connectivity_gauge())
