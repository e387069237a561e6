"""Controller configuration loaded once from the environment."""

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from taint_preserver.exceptions import ConfigurationError


class ControllerConfig(BaseModel):
    """Runtime configuration passed into the reconciler and driver."""

    namespace: str = "default"
    extra_protected_prefixes: tuple[str, ...] = ()
    reporting_instance: str = "unknown"
    metrics_port: int = 8080
    resync_seconds: int = 300
    workers: int = 4

    model_config = ConfigDict(frozen=True)

    @field_validator("namespace")
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        """Validate namespace is not empty."""
        if not v.strip():
            raise ValueError("namespace cannot be empty")
        return v.strip()

    @field_validator("metrics_port")
    @classmethod
    def validate_metrics_port(cls, v: int) -> int:
        """Validate metrics port is 0 (disabled) or a valid TCP port."""
        if not 0 <= v <= 65535:
            raise ValueError(f"metrics_port must be between 0 and 65535, got {v}")
        return v

    @field_validator("resync_seconds", "workers")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate value is a positive integer."""
        if v < 1:
            raise ValueError(f"must be >= 1, got {v}")
        return v

    @staticmethod
    def parse_prefixes(raw: str | None) -> tuple[str, ...]:
        """Split a comma-separated prefix list, dropping blanks."""
        if not raw:
            return ()
        return tuple(part.strip() for part in raw.split(",") if part.strip())

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ControllerConfig":
        """Build configuration from environment variables.

        Environment variables (with defaults):
            ``CONFIGMAP_NAMESPACE`` - namespace holding persisted records (``default``)
            ``EXTRA_PROTECTED_TAINT_PREFIXES`` - comma-separated taint key prefixes (empty)
            ``HOSTNAME`` - reporting instance for events (``unknown``)
            ``METRICS_PORT`` - Prometheus exposition port, 0 disables (``8080``)
            ``RESYNC_SECONDS`` - full re-list interval (``300``)
            ``WORKERS`` - reconciliation thread pool size (``4``)

        Raises:
            ConfigurationError: If a value is malformed
        """
        env = os.environ if environ is None else environ

        try:
            return cls(
                namespace=env.get("CONFIGMAP_NAMESPACE", "default"),
                extra_protected_prefixes=cls.parse_prefixes(
                    env.get("EXTRA_PROTECTED_TAINT_PREFIXES")
                ),
                reporting_instance=env.get("HOSTNAME") or "unknown",
                metrics_port=env.get("METRICS_PORT", "8080"),
                resync_seconds=env.get("RESYNC_SECONDS", "300"),
                workers=env.get("WORKERS", "4"),
            )
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(x) for x in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ConfigurationError("Invalid controller configuration", problems) from e
