"""
Bounded retry combinator.

Shared by remote upload verification and local copy verification so that
attempt counting and pausing live in one place.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from tenacity import (
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from backup_lifecycle.core.exceptions import BackupLifecycleError

logger = logging.getLogger(__name__)


@dataclass
class RetryResult:
    """Outcome of a bounded retry."""

    success: bool
    attempts: int
    last_error: str | None = None


def _is_false(result: bool) -> bool:
    return not result


def bounded_retry(
    probe: Callable[[], bool],
    attempts: int = 2,
    pause: float = 2.0,
    *,
    description: str = "probe",
) -> RetryResult:
    """
    Call probe until it returns True or attempts run out.

    Package errors raised by the probe count as a failed attempt; any
    other exception propagates.

    Args:
        probe: Zero-argument callable returning True on success
        attempts: Maximum number of calls (at least 1)
        pause: Seconds to wait between calls
        description: Label used in debug logging

    Returns:
        RetryResult with the number of calls made
    """
    attempts = max(1, attempts)
    state = {"calls": 0, "error": None}

    def _attempt() -> bool:
        state["calls"] += 1
        try:
            ok = bool(probe())
        except BackupLifecycleError as e:
            state["error"] = str(e)
            raise
        logger.debug(f"{description}: attempt {state['calls']}/{attempts} -> {ok}")
        return ok

    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(pause),
        retry=retry_if_result(_is_false) | retry_if_exception_type(BackupLifecycleError),
        retry_error_callback=lambda retry_state: False,
    )
    success = retrying(_attempt)
    if not success:
        logger.debug(f"{description}: exhausted after {state['calls']} attempt(s)")
    return RetryResult(success=bool(success), attempts=state["calls"], last_error=state["error"])
