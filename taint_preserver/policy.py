"""Classification of taints into platform-managed and user-owned."""

from collections.abc import Iterable, Sequence
from typing import Any, TypeVar

T = TypeVar("T")

# Keys owned by the platform; these come back on their own when a node rejoins
PROTECTED_TAINT_PREFIXES = (
    "node.kubernetes.io/",
    "node.cloudprovider.kubernetes.io/",
    "node-role.kubernetes.io/",
)
PROTECTED_TAINT_KEYS = frozenset({"CriticalAddonsOnly"})


def is_protected(taint: Any, extra_prefixes: Sequence[str] = ()) -> bool:
    """Check whether a taint is managed by the platform.

    Protected taints are never stored in, or restored from, a persisted record.

    Args:
        taint: A NodeTaint or V1Taint (anything with a ``key`` attribute)
        extra_prefixes: Additional protected key prefixes from configuration

    Returns:
        True if the taint must not be captured or replayed
    """
    key = taint.key or ""

    if key in PROTECTED_TAINT_KEYS:
        return True

    if key.startswith(PROTECTED_TAINT_PREFIXES):
        return True

    return any(prefix and key.startswith(prefix) for prefix in extra_prefixes)


def filter_user_taints(taints: Iterable[T], extra_prefixes: Sequence[str] = ()) -> list[T]:
    """Return the user-owned taints, preserving their order."""
    return [t for t in taints if not is_protected(t, extra_prefixes)]
