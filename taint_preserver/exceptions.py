"""Exceptions raised by the taint preserver.

Every error carries a short ``message`` and optional ``details`` with the
underlying cause or an operator hint. The controller routes any
``TaintPreserverError`` except ``MissingNodeNameError`` through the
requeue backoff. The CLI prints ``message`` and ``details`` separately.
"""


class TaintPreserverError(Exception):
    """Base exception for all taint preserver errors."""

    def __init__(self, message: str, details: str | None = None):
        """Initialize the exception.

        Args:
            message: Main error message
            details: Underlying cause or remediation hint
        """
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Join message and details the way they appear in logs."""
        if not self.details:
            return self.message
        return f"{self.message}\n\nDetails: {self.details}"


class MissingNodeNameError(TaintPreserverError):
    """A node snapshot has no ``metadata.name``; it is dropped, never retried."""


class TaintStoreError(TaintPreserverError):
    """The record ConfigMap could not be read or written."""


class TaintSerializationError(TaintPreserverError):
    """A stored record is not a valid JSON array of taints."""


class FinalizerError(TaintPreserverError):
    """The finalizer could not be attached to or released from a node."""


class NodeUpdateError(TaintPreserverError):
    """The Apply patch on a Node was rejected."""


class KubernetesError(TaintPreserverError):
    """No usable in-cluster config or kubeconfig was found."""


class ConfigurationError(TaintPreserverError):
    """An environment variable holds an invalid value."""
