"""Persisted taint records kept in ConfigMaps.

Each node's record lives in its own ConfigMap, named by
:func:`taint_preserver.identity.storage_key`. Writes use server-side apply
under a fixed field manager, so every write replaces the whole record this
controller owns and leaves fields owned by other managers alone.
"""

from collections.abc import Sequence

from kubernetes.client import CoreV1Api
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from taint_preserver.exceptions import TaintSerializationError, TaintStoreError
from taint_preserver.identity import storage_key
from taint_preserver.logging_config import get_logger
from taint_preserver.metrics import ERRORS_TOTAL
from taint_preserver.models import NodeTaint, PersistedTaintRecord

logger = get_logger(__name__)

FIELD_MANAGER = "node-taint-preserver"
JSON_STORAGE_KEY = "preserved_taints_json"
CONFIGMAP_NODE_ANNOTATION = "nodetaintpreserver.example.com/node-name"
APPLY_PATCH_CONTENT_TYPE = "application/apply-patch+yaml"


class TaintStore:
    """Read and write persisted taint records in one namespace."""

    def __init__(self, core_api: CoreV1Api, namespace: str = "default"):
        """Initialize the store.

        Args:
            core_api: Kubernetes core API client
            namespace: Namespace holding the record ConfigMaps
        """
        self.core_api = core_api
        self.namespace = namespace

    def get(self, key: str) -> PersistedTaintRecord | None:
        """Fetch the record stored under a key.

        Args:
            key: ConfigMap name

        Returns:
            The decoded record, or None if no record was ever written

        Raises:
            TaintStoreError: If the ConfigMap cannot be read
            TaintSerializationError: If the stored JSON is malformed
        """
        try:
            cm = self.core_api.read_namespaced_config_map(name=key, namespace=self.namespace)
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"No ConfigMap '{key}' in namespace '{self.namespace}'")
                return None
            ERRORS_TOTAL.labels(kind="configmap", reason="get_error").inc()
            raise TaintStoreError(
                f"Failed to read ConfigMap '{key}' in namespace '{self.namespace}'",
                f"API returned status {e.status}: {e.reason}",
            ) from e
        except HTTPError as e:
            ERRORS_TOTAL.labels(kind="configmap", reason="get_error").inc()
            raise TaintStoreError(
                f"Failed to read ConfigMap '{key}' in namespace '{self.namespace}'",
                f"Could not reach the API server: {e}",
            ) from e

        data = cm.data or {}
        annotations = (cm.metadata.annotations or {}) if cm.metadata else {}
        node_name = annotations.get(CONFIGMAP_NODE_ANNOTATION)

        try:
            return PersistedTaintRecord.from_taints_json(data.get(JSON_STORAGE_KEY), node_name)
        except TaintSerializationError:
            ERRORS_TOTAL.labels(kind="serialization", reason="decode_error").inc()
            raise

    def put(self, key: str, record: PersistedTaintRecord) -> None:
        """Create or replace the record stored under a key.

        The write is unconditional. An empty record still produces a
        ConfigMap, with the data key omitted, so a snapshot from an earlier
        lifecycle can never be restored.

        Args:
            key: ConfigMap name
            record: Record to store

        Raises:
            TaintStoreError: If the apply request fails
        """
        taints_json = record.taints_json()
        data = {JSON_STORAGE_KEY: taints_json} if taints_json is not None else {}

        annotations = {}
        if record.node_name:
            annotations[CONFIGMAP_NODE_ANNOTATION] = record.node_name

        body = {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {
                "name": key,
                "namespace": self.namespace,
                "annotations": annotations,
            },
            "data": data,
        }

        try:
            self.core_api.patch_namespaced_config_map(
                name=key,
                namespace=self.namespace,
                body=body,
                field_manager=FIELD_MANAGER,
                force=True,
                _content_type=APPLY_PATCH_CONTENT_TYPE,
            )
        except ApiException as e:
            ERRORS_TOTAL.labels(kind="configmap", reason="patch_error").inc()
            raise TaintStoreError(
                f"Failed to write ConfigMap '{key}' in namespace '{self.namespace}'",
                f"API returned status {e.status}: {e.reason}. "
                "Check that the controller may patch configmaps in this namespace.",
            ) from e
        except HTTPError as e:
            ERRORS_TOTAL.labels(kind="configmap", reason="patch_error").inc()
            raise TaintStoreError(
                f"Failed to write ConfigMap '{key}' in namespace '{self.namespace}'",
                f"Could not reach the API server: {e}",
            ) from e

        logger.debug(f"Applied ConfigMap '{key}' with {len(record.taints)} taints")

    def for_node(self, node_name: str) -> PersistedTaintRecord | None:
        """Fetch the record for a node by name."""
        return self.get(storage_key(node_name))

    def save_for_node(self, node_name: str, taints: Sequence[NodeTaint]) -> None:
        """Replace the record for a node with the given taints."""
        record = PersistedTaintRecord(node_name=node_name, taints=list(taints))
        self.put(storage_key(node_name), record)
