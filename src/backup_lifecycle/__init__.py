"""
Backup Lifecycle - tiered retention for backup archives and run logs.

Keeps bounded, verified copies of artifacts across a primary disk, an
optional secondary disk, and an optional remote object-storage tier.
"""

__version__ = "0.1.0"

__all__ = []
