"""
Lifecycle settings.

Settings are read from an optional YAML file and then overridden by
``BL_*`` environment variables. Every value is validated by pydantic
before a run starts.
"""

import logging
import os
import shlex
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from backup_lifecycle.core.exceptions import ConfigurationError
from backup_lifecycle.core.models import ArtifactKind, Tier

logger = logging.getLogger(__name__)

ENV_PREFIX = "BL_"


class TierSettings(BaseModel):
    """Location and retention for one tier."""

    enabled: bool = True
    backup_path: str = Field(description="Directory, or remote path for the cloud tier")
    log_path: str = Field(description="Directory, or remote path for the cloud tier")
    max_backups: int = Field(default=20, ge=1)
    max_logs: int = Field(default=20, ge=1)

    def path_for(self, kind: ArtifactKind) -> str:
        return self.backup_path if kind is ArtifactKind.BACKUP else self.log_path

    def max_for(self, kind: ArtifactKind) -> int:
        return self.max_backups if kind is ArtifactKind.BACKUP else self.max_logs


class RemoteSettings(BaseModel):
    """Remote tool invocation, timeouts, verification and batching."""

    binary: str = "rclone"
    remote_name: str = ""
    flags: list[str] = Field(default_factory=list)
    bandwidth_limit: str = ""

    short_timeout: float = Field(default=30, gt=0, description="Probes and listings")
    medium_timeout: float = Field(default=60, gt=0, description="Deletes and sidecar copies")
    upload_timeout: float = Field(default=3600, gt=0)
    connectivity_timeout: float = Field(default=10, gt=0)

    skip_verification: bool = False
    verify_attempts: int = Field(default=2, ge=1)
    verify_pause: float = Field(default=2.0, ge=0)

    delete_batch_size: int = Field(default=20, ge=1)
    delete_batch_pause: float = Field(default=1.0, ge=0)

    progress_sample_every: int = Field(default=1, ge=1)

    @field_validator("flags", mode="before")
    @classmethod
    def split_flags(cls, v: Any) -> Any:
        if isinstance(v, str):
            return shlex.split(v)
        return v


class NamingSettings(BaseModel):
    """Inputs to the artifact naming patterns."""

    system_type: str | None = None
    compression: str | None = None


def _default_primary() -> TierSettings:
    return TierSettings(backup_path="backup", log_path="log")


def _default_secondary() -> TierSettings:
    return TierSettings(enabled=False, backup_path="", log_path="")


def _default_cloud() -> TierSettings:
    return TierSettings(
        enabled=False,
        backup_path="/backup-lifecycle/backup",
        log_path="/backup-lifecycle/log",
    )


class LifecycleSettings(BaseModel):
    """Complete configuration for one run."""

    primary: TierSettings = Field(default_factory=_default_primary)
    secondary: TierSettings = Field(default_factory=_default_secondary)
    cloud: TierSettings = Field(default_factory=_default_cloud)
    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    naming: NamingSettings = Field(default_factory=NamingSettings)

    log_management_enabled: bool = True
    dry_run: bool = False

    metrics_file: str | None = None
    metrics_lock_timeout: float = Field(default=60, gt=0)
    prometheus_textfile_dir: str | None = None
    ledger_dir: str | None = None
    work_dir_parent: str | None = None
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {v}")
        return level

    def tier(self, tier: Tier) -> TierSettings:
        return getattr(self, tier.value)

    def tier_enabled(self, tier: Tier, kind: ArtifactKind) -> bool:
        """A tier is active for a kind when enabled and, for logs, when log management is on."""
        settings = self.tier(tier)
        if not settings.enabled:
            return False
        if kind is ArtifactKind.LOG and not self.log_management_enabled:
            return False
        if tier is Tier.SECONDARY and not settings.path_for(kind):
            return False
        return True


# env var -> path into the settings dict
ENV_OVERRIDES: dict[str, tuple[str, ...]] = {
    "BL_REMOTE_BINARY": ("remote", "binary"),
    "BL_REMOTE_NAME": ("remote", "remote_name"),
    "BL_REMOTE_FLAGS": ("remote", "flags"),
    "BL_REMOTE_BANDWIDTH_LIMIT": ("remote", "bandwidth_limit"),
    "BL_REMOTE_UPLOAD_TIMEOUT": ("remote", "upload_timeout"),
    "BL_REMOTE_CONNECTIVITY_TIMEOUT": ("remote", "connectivity_timeout"),
    "BL_SKIP_CLOUD_VERIFICATION": ("remote", "skip_verification"),
    "BL_VERIFY_ATTEMPTS": ("remote", "verify_attempts"),
    "BL_DELETE_BATCH_SIZE": ("remote", "delete_batch_size"),
    "BL_SYSTEM_TYPE": ("naming", "system_type"),
    "BL_COMPRESSION": ("naming", "compression"),
    "BL_LOG_MANAGEMENT_ENABLED": ("log_management_enabled",),
    "BL_DRY_RUN": ("dry_run",),
    "BL_METRICS_FILE": ("metrics_file",),
    "BL_METRICS_LOCK_TIMEOUT": ("metrics_lock_timeout",),
    "BL_PROMETHEUS_TEXTFILE_DIR": ("prometheus_textfile_dir",),
    "BL_LEDGER_DIR": ("ledger_dir",),
    "BL_WORK_DIR": ("work_dir_parent",),
    "BL_LOG_LEVEL": ("log_level",),
}

for _tier in Tier:
    _name = _tier.value.upper()
    ENV_OVERRIDES[f"BL_{_name}_ENABLED"] = (_tier.value, "enabled")
    ENV_OVERRIDES[f"BL_{_name}_BACKUP_PATH"] = (_tier.value, "backup_path")
    ENV_OVERRIDES[f"BL_{_name}_LOG_PATH"] = (_tier.value, "log_path")
    ENV_OVERRIDES[f"BL_MAX_{_name}_BACKUPS"] = (_tier.value, "max_backups")
    ENV_OVERRIDES[f"BL_MAX_{_name}_LOGS"] = (_tier.value, "max_logs")


def _read_yaml(config_file: Path) -> dict[str, Any]:
    try:
        content = config_file.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read configuration file: {e}", config_file=str(config_file)
        ) from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML in configuration file: {e}", config_file=str(config_file)
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            "Configuration file must contain a mapping", config_file=str(config_file)
        )
    return data


def _apply_env(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    for env_var, path in ENV_OVERRIDES.items():
        value = environ.get(env_var)
        if value is None or value == "":
            continue
        target = data
        for key in path[:-1]:
            existing = target.get(key)
            if not isinstance(existing, dict):
                existing = {}
                target[key] = existing
            target = existing
        target[path[-1]] = value
        logger.debug(f"Config override from {env_var}")
    return data


def _merge_tier_defaults(data: dict[str, Any]) -> dict[str, Any]:
    # Partial tier mappings keep the defaults of the fields they omit
    defaults = {
        Tier.PRIMARY.value: _default_primary(),
        Tier.SECONDARY.value: _default_secondary(),
        Tier.CLOUD.value: _default_cloud(),
    }
    for name, default in defaults.items():
        section = data.get(name)
        if isinstance(section, dict):
            data[name] = {**default.model_dump(), **section}
    return data


def load_settings(
    config_file: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LifecycleSettings:
    """
    Build validated settings from YAML and the environment.

    Args:
        config_file: Optional YAML file
        environ: Environment mapping (defaults to os.environ)

    Returns:
        LifecycleSettings

    Raises:
        ConfigurationError: If the file is unreadable or a value is invalid
    """
    environ = os.environ if environ is None else environ
    data: dict[str, Any] = {}

    if config_file is not None:
        config_path = Path(config_file)
        data = _read_yaml(config_path)
        logger.debug(f"Loaded configuration from {config_path}")

    data = _merge_tier_defaults(_apply_env(data, environ))

    try:
        return LifecycleSettings.model_validate(data)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        raise ConfigurationError(
            "Invalid configuration",
            config_file=str(config_file) if config_file else None,
            validation_errors=errors,
        ) from e
