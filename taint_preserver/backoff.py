"""Requeue timing for reconciliations."""

import itertools
from dataclasses import dataclass

from taint_preserver.logging_config import get_logger

logger = get_logger(__name__)

REQUEUE_SECONDS = 2.0
MAX_RETRY_SECONDS = 3600.0

# Past this exponent the doubling factor is treated as saturated
_MAX_EXPONENT = 63


@dataclass(frozen=True)
class Action:
    """What the driver should do with a node after a reconciliation.

    Attributes:
        requeue_after: Seconds until the node is reconciled again, or None
            to wait for the next watch event
    """

    requeue_after: float | None = None

    @classmethod
    def await_change(cls) -> "Action":
        return cls()

    @classmethod
    def requeue(cls, seconds: float) -> "Action":
        return cls(requeue_after=seconds)


def next_delay(
    attempt: int, base: float = REQUEUE_SECONDS, ceiling: float = MAX_RETRY_SECONDS
) -> float:
    """Compute the exponential backoff delay for a failed attempt.

    ``min(base * 2**attempt, ceiling)``. Attempt counts beyond the doubling
    range saturate at the ceiling instead of building huge integers.

    Args:
        attempt: Number of failures observed so far
        base: Delay for attempt 0, in seconds
        ceiling: Upper bound for the delay, in seconds

    Returns:
        Delay in seconds, never above ``ceiling``
    """
    attempt = max(attempt, 0)
    if attempt > _MAX_EXPONENT:
        return ceiling
    return min(base * (1 << attempt), ceiling)


class BackoffPolicy:
    """Error policy shared by every reconciliation in the process.

    The attempt counter is process-wide: a failure for one node raises the
    delay applied to the next failure of any node, and success never resets
    it. ``next()`` on ``itertools.count`` is atomic under the interpreter
    lock, so concurrent workers need no extra locking.
    """

    def __init__(self, base: float = REQUEUE_SECONDS, ceiling: float = MAX_RETRY_SECONDS):
        self.base = base
        self.ceiling = ceiling
        self._attempts = itertools.count(1)

    def error_policy(self, node_name: str | None, error: Exception) -> Action:
        """Record a failed reconciliation and compute its requeue.

        Args:
            node_name: Node whose reconciliation failed
            error: The raised exception

        Returns:
            Action requeueing the node after the backoff delay
        """
        attempt = next(self._attempts)
        delay = next_delay(attempt, self.base, self.ceiling)
        logger.error(
            f"Reconciliation of node '{node_name}' failed (attempt {attempt}), "
            f"retrying in {delay:.0f}s: {error}"
        )
        return Action.requeue(delay)
