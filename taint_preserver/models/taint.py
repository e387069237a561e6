"""Data model for Kubernetes node taints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

TAINT_EFFECTS = ["NoSchedule", "PreferNoSchedule", "NoExecute"]


class NodeTaint(BaseModel):
    """Kubernetes node taint.

    Only ``key`` takes part in merge decisions. ``time_added`` is carried
    through untouched so that taints set by the node lifecycle controller
    keep their timestamp when the taint list is re-applied.
    """

    model_config = ConfigDict(populate_by_name=True)

    key: str
    value: str | None = None
    effect: str  # NoSchedule, PreferNoSchedule, NoExecute
    time_added: datetime | None = Field(default=None, alias="timeAdded")

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        """Validate taint key is not empty."""
        if not v:
            raise ValueError("key cannot be empty")
        return v

    @field_validator("effect")
    @classmethod
    def validate_effect(cls, v: str) -> str:
        """Validate taint effect is one of the allowed values."""
        if v not in TAINT_EFFECTS:
            raise ValueError(f"effect must be one of {TAINT_EFFECTS}, got {v}")
        return v

    @classmethod
    def from_kubernetes(cls, taint: Any) -> "NodeTaint":
        """Build from a ``kubernetes.client.V1Taint``."""
        return cls(
            key=taint.key,
            value=taint.value,
            effect=taint.effect,
            time_added=taint.time_added,
        )

    def to_manifest(self) -> dict:
        """Convert to the JSON form used in Node specs and persisted records."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def __str__(self) -> str:
        """String representation in ``kubectl taint`` notation."""
        if self.value:
            return f"{self.key}={self.value}:{self.effect}"
        return f"{self.key}:{self.effect}"
