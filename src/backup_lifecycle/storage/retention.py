"""
Retention policy arithmetic.
"""

from dataclasses import dataclass


def excess(count: int, max_allowed: int) -> int:
    """Number of oldest artifacts to purge so that count <= max_allowed."""
    return max(0, count - max_allowed)


@dataclass(frozen=True)
class RetentionPolicy:
    """Maximum number of artifacts kept on a tier."""

    max_allowed: int

    def __post_init__(self) -> None:
        if self.max_allowed < 1:
            raise ValueError(f"max_allowed must be positive, got {self.max_allowed}")

    def excess(self, count: int) -> int:
        return excess(count, self.max_allowed)

    def is_satisfied(self, count: int) -> bool:
        return count <= self.max_allowed
