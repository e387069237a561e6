"""Kubernetes Event emission for reconciled nodes."""

from datetime import datetime, timezone

from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from taint_preserver.logging_config import get_logger

logger = get_logger(__name__)

REPORTING_COMPONENT = "node-taint-preserver"


class EventRecorder:
    """Write informational Events about Node objects.

    Failures are logged and dropped. They never fail the reconciliation
    that produced the Event.
    """

    def __init__(
        self,
        core_api: client.CoreV1Api,
        namespace: str = "default",
        reporting_instance: str = "unknown",
    ):
        self.core_api = core_api
        self.namespace = namespace
        self.reporting_instance = reporting_instance

    def node_event(
        self, node_name: str, reason: str, message: str, event_type: str = "Normal"
    ) -> None:
        """Record an Event whose involved object is the given Node.

        Args:
            node_name: Name of the Node
            reason: Short machine-readable reason (e.g. TaintsRestored)
            message: Human-readable message
            event_type: Normal or Warning
        """
        now = datetime.now(timezone.utc)
        event = client.CoreV1Event(
            metadata=client.V1ObjectMeta(
                generate_name=f"{node_name}.",
                namespace=self.namespace,
            ),
            involved_object=client.V1ObjectReference(
                api_version="v1",
                kind="Node",
                name=node_name,
            ),
            reason=reason,
            message=message,
            type=event_type,
            action="Reconcile",
            count=1,
            first_timestamp=now,
            last_timestamp=now,
            source=client.V1EventSource(component=REPORTING_COMPONENT),
            reporting_component=REPORTING_COMPONENT,
            reporting_instance=self.reporting_instance,
        )

        try:
            self.core_api.create_namespaced_event(namespace=self.namespace, body=event)
        except ApiException as e:
            logger.warning(
                f"Failed to create event {reason} for node '{node_name}': {e.status} {e.reason}"
            )
        except HTTPError as e:
            logger.warning(f"Failed to create event {reason} for node '{node_name}': {e}")
