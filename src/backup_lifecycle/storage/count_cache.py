"""
Per-run tier count cache.

Each tier is listed at most once per run; afterwards the cached value is
corrected logically with ``adjust`` instead of re-listing.
"""

import logging
from collections.abc import Callable, Mapping

from backup_lifecycle.core.exceptions import BackupLifecycleError
from backup_lifecycle.core.models import ArtifactKind, Tier
from backup_lifecycle.ledger import ErrorLedger

logger = logging.getLogger(__name__)

Counter = Callable[[], int]


class TierCountCache:
    """
    Counts of qualifying artifacts per tier for one artifact kind.

    Counting failures never raise: the last known value (or 0) is used
    and a warning is recorded in the ledger.
    """

    def __init__(
        self,
        kind: ArtifactKind,
        counters: Mapping[Tier, Counter],
        ledger: ErrorLedger,
        enabled: Mapping[Tier, bool] | None = None,
    ):
        self.kind = kind
        self._counters = dict(counters)
        self._ledger = ledger
        self._enabled = dict(enabled) if enabled is not None else {t: True for t in Tier}
        self._values: dict[Tier, int] = {}
        self._last_known: dict[Tier, int] = {}
        self.list_calls: dict[Tier, int] = {t: 0 for t in Tier}

    def is_enabled(self, tier: Tier) -> bool:
        return self._enabled.get(tier, False) and tier in self._counters

    def is_cached(self, tier: Tier) -> bool:
        return tier in self._values

    def count(self, tier: Tier) -> int:
        """Return the tier's count, listing only on the first request."""
        if tier in self._values:
            return self._values[tier]

        if not self.is_enabled(tier):
            self._values[tier] = 0
            return 0

        self.list_calls[tier] += 1
        try:
            value = int(self._counters[tier]())
        except (BackupLifecycleError, OSError) as e:
            value = self._last_known.get(tier, 0)
            self._ledger.warning(
                "count",
                f"Failed to count {self.kind.value} artifacts on {tier.value} tier",
                f"{e}; using {value}",
            )

        logger.debug(f"Counted {value} {self.kind.value} artifact(s) on {tier.value} tier")
        self._values[tier] = value
        self._last_known[tier] = value
        return value

    def adjust(self, tier: Tier, delta: int) -> int | None:
        """
        Apply a logical correction to a cached count.

        Args:
            tier: Tier to correct
            delta: Signed change (negative after deletions)

        Returns:
            The new value, or None when the tier has not been counted yet
        """
        if tier not in self._values:
            logger.debug(f"Ignoring adjust({delta}) for uncounted {tier.value} tier")
            return None
        value = max(0, self._values[tier] + delta)
        self._values[tier] = value
        self._last_known[tier] = value
        return value

    def invalidate(self, tier: Tier | None = None) -> None:
        """Forget cached counts so the next request lists again."""
        if tier is None:
            self._values.clear()
        else:
            self._values.pop(tier, None)

    def total(self) -> int:
        return sum(self.count(tier) for tier in Tier)

    def snapshot(self) -> dict[str, int]:
        """Cached counts without triggering new listings."""
        return {tier.value: self._values.get(tier, 0) for tier in Tier}
