"""
Cloud tier connectivity probe.

Run once per run before any cloud operation. The probe never raises; its
status and error code feed the orchestrator and the metrics gauge.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from backup_lifecycle.config.settings import LifecycleSettings
from backup_lifecycle.core.exceptions import RemoteTimeoutError, RemoteToolError
from backup_lifecycle.storage.remote import RemoteTool

logger = logging.getLogger(__name__)


class ConnectivityStatus(str, Enum):
    """Cloud connectivity status levels."""

    OK = "ok"
    ERROR = "error"
    DISABLED = "disabled"
    UNKNOWN = "unknown"

    @property
    def gauge_value(self) -> int:
        """Numeric value exported to metrics."""
        return {
            ConnectivityStatus.OK: 1,
            ConnectivityStatus.ERROR: 0,
            ConnectivityStatus.DISABLED: -1,
            ConnectivityStatus.UNKNOWN: -2,
        }[self]


class ConnectivityError(str, Enum):
    """Short codes for probe failures."""

    TOOL_NOT_FOUND = "R"
    NOT_CONFIGURED = "C"
    ACCESS_FAILED = "A"
    PATH_MISSING = "P"
    TIMEOUT = "T"
    DISABLED = "D"


@dataclass
class CloudConnectivity:
    """Result of the cloud connectivity probe."""

    status: ConnectivityStatus
    error_code: ConnectivityError | None = None
    message: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    duration_ms: float | None = None

    @property
    def ok(self) -> bool:
        return self.status is ConnectivityStatus.OK

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "status": self.status.value,
            "error_code": self.error_code.value if self.error_code else None,
            "message": self.message,
            "timestamp": self.timestamp,
            "duration_ms": self.duration_ms,
        }


def probe_cloud(settings: LifecycleSettings, remote: RemoteTool) -> CloudConnectivity:
    """
    Check that the cloud tier can be used.

    Steps: tool installed, remote configured and known to the tool,
    remote answers ``about`` within the connectivity timeout, backup path
    creatable. A log path that cannot be created is only logged.

    Args:
        settings: Run settings
        remote: Remote tool

    Returns:
        CloudConnectivity
    """
    start_time = time.time()

    def _result(
        status: ConnectivityStatus,
        code: ConnectivityError | None = None,
        message: str = "",
    ) -> CloudConnectivity:
        result = CloudConnectivity(
            status=status,
            error_code=code,
            message=message,
            duration_ms=(time.time() - start_time) * 1000,
        )
        logger.debug(f"Cloud connectivity: {status.value} {code.value if code else ''} {message}".rstrip())
        return result

    if not settings.cloud.enabled:
        return _result(ConnectivityStatus.DISABLED, ConnectivityError.DISABLED, "Cloud tier disabled")

    if not remote.is_available():
        return _result(ConnectivityStatus.ERROR, ConnectivityError.TOOL_NOT_FOUND, "Remote tool not found")

    remote_name = settings.remote.remote_name
    if not remote_name:
        return _result(ConnectivityStatus.ERROR, ConnectivityError.NOT_CONFIGURED, "Remote name not set")

    timeout = settings.remote.connectivity_timeout
    try:
        remotes = remote.list_remotes(settings.remote.short_timeout)
    except RemoteToolError as e:
        return _result(ConnectivityStatus.ERROR, ConnectivityError.NOT_CONFIGURED, str(e))
    if remote_name not in remotes:
        return _result(
            ConnectivityStatus.ERROR,
            ConnectivityError.NOT_CONFIGURED,
            f"Remote '{remote_name}' is not configured",
        )

    try:
        remote.about(timeout)
    except RemoteTimeoutError as e:
        return _result(ConnectivityStatus.ERROR, ConnectivityError.TIMEOUT, str(e))
    except RemoteToolError as e:
        return _result(ConnectivityStatus.ERROR, ConnectivityError.ACCESS_FAILED, str(e))

    try:
        remote.mkdir(settings.cloud.backup_path, settings.remote.short_timeout)
    except RemoteTimeoutError as e:
        return _result(ConnectivityStatus.ERROR, ConnectivityError.TIMEOUT, str(e))
    except RemoteToolError as e:
        return _result(ConnectivityStatus.ERROR, ConnectivityError.PATH_MISSING, str(e))

    if settings.log_management_enabled and settings.cloud.log_path:
        try:
            remote.mkdir(settings.cloud.log_path, settings.remote.short_timeout)
        except RemoteToolError as e:
            logger.debug(f"Cloud log path not creatable: {e}")

    return _result(ConnectivityStatus.OK, message="Cloud tier reachable")
