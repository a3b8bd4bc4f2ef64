"""
Monitoring for the backup lifecycle manager.

Provides the cloud connectivity probe and the cross-run metrics file.
"""

from backup_lifecycle.monitoring.health import (
    CloudConnectivity,
    ConnectivityError,
    ConnectivityStatus,
    probe_cloud,
)
from backup_lifecycle.monitoring.metrics import (
    PROM_FILENAME,
    LifecycleMetrics,
    MetricsStore,
    file_lock,
)

__all__ = [
    "CloudConnectivity",
    "ConnectivityError",
    "ConnectivityStatus",
    "LifecycleMetrics",
    "MetricsStore",
    "PROM_FILENAME",
    "file_lock",
    "probe_cloud",
]
