"""Data model for the persisted taint snapshot of a node."""

import json

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from taint_preserver.exceptions import TaintSerializationError
from taint_preserver.models.taint import NodeTaint

_TAINT_LIST = TypeAdapter(list[NodeTaint])


class PersistedTaintRecord(BaseModel):
    """Snapshot of the user taints a node carried when it was last deleted.

    An empty ``taints`` list means the last cleanup observed no custom
    taints. It restores exactly as much as a missing record does.
    """

    node_name: str | None = None
    taints: list[NodeTaint] = Field(default_factory=list)

    def taints_json(self) -> str | None:
        """Encode the taints for ConfigMap storage.

        Returns:
            JSON array string, or None when there is nothing to store
        """
        if not self.taints:
            return None
        return json.dumps([t.to_manifest() for t in self.taints], separators=(",", ":"))

    @classmethod
    def from_taints_json(cls, raw: str | None, node_name: str | None = None) -> "PersistedTaintRecord":
        """Decode a record from the stored JSON array.

        Args:
            raw: Stored JSON string, or None when the key was absent
            node_name: Originating node name, if known

        Returns:
            Decoded record

        Raises:
            TaintSerializationError: If the JSON is malformed or a taint is invalid
        """
        if raw is None:
            return cls(node_name=node_name)

        try:
            taints = _TAINT_LIST.validate_json(raw)
        except ValidationError as e:
            raise TaintSerializationError(
                f"Invalid persisted taints for node '{node_name or 'unknown'}'",
                f"{e.error_count()} validation error(s): {e.errors()[0]['msg']}",
            ) from e

        return cls(node_name=node_name, taints=taints)
