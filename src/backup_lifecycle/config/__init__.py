"""
Configuration for the backup lifecycle manager.
"""

from backup_lifecycle.config.settings import (
    ENV_OVERRIDES,
    LifecycleSettings,
    NamingSettings,
    RemoteSettings,
    TierSettings,
    load_settings,
)

__all__ = [
    "ENV_OVERRIDES",
    "LifecycleSettings",
    "NamingSettings",
    "RemoteSettings",
    "TierSettings",
    "load_settings",
]
