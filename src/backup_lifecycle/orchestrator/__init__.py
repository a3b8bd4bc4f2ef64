"""
Orchestrator - per-run sequencing of tiers.
"""

from backup_lifecycle.orchestrator.context import RunContext, new_run_id
from backup_lifecycle.orchestrator.core import LifecycleOrchestrator

__all__ = ["LifecycleOrchestrator", "RunContext", "new_run_id"]
