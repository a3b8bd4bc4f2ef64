"""
Run ledger.

Append-only classification of every issue seen during a run.
"""

from backup_lifecycle.ledger.ledger import ErrorLedger, LedgerWriteResult
from backup_lifecycle.ledger.models import LedgerEntry, RunOutcome, Severity

__all__ = [
    "ErrorLedger",
    "LedgerEntry",
    "LedgerWriteResult",
    "RunOutcome",
    "Severity",
]
