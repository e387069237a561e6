"""Data models for node taints and their persisted form."""

from taint_preserver.models.record import PersistedTaintRecord
from taint_preserver.models.taint import NodeTaint

__all__ = [
    "NodeTaint",
    "PersistedTaintRecord",
]
