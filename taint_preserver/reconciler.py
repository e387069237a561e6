"""Finalizer-gated reconciliation of node taints.

A Node carrying our finalizer is in one of two phases:

* Active (no deletion timestamp): the Apply phase merges persisted taints
  back onto the node once per lifecycle, then marks the node with the
  restoration annotation and attaches the finalizer.
* Terminating (deletion timestamp set): the Cleanup phase snapshots the
  node's user taints into its record and releases the finalizer so the
  deletion can complete.

The reconciler keeps no state between invocations. Every decision is made
from the snapshot it is handed, so replays of the same event are safe.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from kubernetes.client import CoreV1Api
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from taint_preserver.backoff import Action
from taint_preserver.config import ControllerConfig
from taint_preserver.events import EventRecorder
from taint_preserver.exceptions import FinalizerError, MissingNodeNameError, NodeUpdateError
from taint_preserver.logging_config import get_logger
from taint_preserver.metrics import ERRORS_TOTAL, NODES_RECONCILED_TOTAL, TAINTS_RESTORED_TOTAL
from taint_preserver.models import NodeTaint
from taint_preserver.policy import filter_user_taints, is_protected
from taint_preserver.store import APPLY_PATCH_CONTENT_TYPE, FIELD_MANAGER, TaintStore

logger = get_logger(__name__)

FINALIZER_NAME = "nodetaintpreserver.example.com/finalizer"
RESTORED_ANNOTATION_KEY = "nodetaintpreserver.example.com/taints-restored"
MAX_CLEANUP_SECONDS = 3600.0
EVENT_KEY_LIMIT = 5


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MergeResult:
    """Outcome of merging persisted taints into the live set.

    Attributes:
        taints: Live taints followed by the restored ones
        restored_keys: Keys that were added, in record order
    """

    taints: list[NodeTaint] = field(default_factory=list)
    restored_keys: list[str] = field(default_factory=list)


def merge_taints(
    live: Sequence[NodeTaint],
    candidates: Sequence[NodeTaint],
    extra_prefixes: Sequence[str] = (),
) -> MergeResult:
    """Add candidate taints whose keys are absent from the live set.

    Live taints are never changed or removed. Among taints sharing a key
    the first one seen wins, live taints first. Protected candidates are
    skipped even if a record somehow contains them.
    """
    merged = list(live)
    seen = {t.key for t in merged}
    restored_keys = []

    for taint in candidates:
        if taint.key in seen or is_protected(taint, extra_prefixes):
            continue
        seen.add(taint.key)
        merged.append(taint)
        restored_keys.append(taint.key)

    return MergeResult(taints=merged, restored_keys=restored_keys)


def restoration_event(restored_keys: Sequence[str]) -> tuple[str, str]:
    """Build the (reason, message) pair describing an Apply outcome."""
    if not restored_keys:
        return "NoTaintsToRestore", "No taints needed to be restored"

    if len(restored_keys) <= EVENT_KEY_LIMIT:
        return "TaintsRestored", f"Restored taints: {', '.join(restored_keys)}"

    shown = ", ".join(restored_keys[:EVENT_KEY_LIMIT])
    return "TaintsRestored", f"Restored {len(restored_keys)} taints: {shown} ... (truncated)"


def node_name_of(node: Any) -> str:
    """Return the node's name.

    Raises:
        MissingNodeNameError: If the snapshot has no name
    """
    metadata = getattr(node, "metadata", None)
    name = getattr(metadata, "name", None) if metadata is not None else None
    if not name:
        ERRORS_TOTAL.labels(kind="node", reason="missing_name").inc()
        raise MissingNodeNameError(
            "Failed to get node name",
            "The node snapshot has no metadata.name and cannot be reconciled.",
        )
    return name


def live_taints(node: Any) -> list[NodeTaint]:
    """Convert the node's ``spec.taints`` into NodeTaint models."""
    spec = getattr(node, "spec", None)
    taints = getattr(spec, "taints", None) if spec is not None else None
    return [NodeTaint.from_kubernetes(t) for t in taints or []]


class Reconciler:
    """Run the Apply or Cleanup phase for one Node snapshot."""

    def __init__(
        self,
        core_api: CoreV1Api,
        config: ControllerConfig,
        store: TaintStore | None = None,
        recorder: EventRecorder | None = None,
        now_fn: Callable[[], datetime] = utc_now,
    ) -> None:
        self.core_api = core_api
        self.config = config
        self.store = store or TaintStore(core_api, config.namespace)
        self.recorder = recorder or EventRecorder(
            core_api, config.namespace, config.reporting_instance
        )
        self.now_fn = now_fn

    def reconcile(self, node: Any) -> Action:
        """Reconcile one Node snapshot.

        Args:
            node: ``kubernetes.client.V1Node`` as delivered by the watch

        Returns:
            Action for the driver

        Raises:
            MissingNodeNameError: If the snapshot has no name
            TaintStoreError: If the record cannot be read or written
            TaintSerializationError: If the stored record is malformed
            NodeUpdateError: If the Apply patch is rejected
            FinalizerError: If the finalizer cannot be attached or released
        """
        node_name = node_name_of(node)
        metadata = node.metadata

        if metadata.deletion_timestamp is not None:
            if FINALIZER_NAME not in (metadata.finalizers or []):
                logger.debug(f"Node '{node_name}' is terminating without our finalizer, skipping")
                return Action.await_change()
            return self.cleanup(node, node_name)

        return self.apply(node, node_name)

    def apply(self, node: Any, node_name: str) -> Action:
        """Restore persisted taints onto a live node, once per lifecycle."""
        annotations = node.metadata.annotations or {}
        has_finalizer = FINALIZER_NAME in (node.metadata.finalizers or [])

        if RESTORED_ANNOTATION_KEY in annotations:
            if not has_finalizer:
                logger.info(f"Re-attaching finalizer to node '{node_name}'")
                self._attach_finalizer(node, node_name)
            return Action.await_change()

        logger.info(f"Reconciling node '{node_name}' (Apply)")
        NODES_RECONCILED_TOTAL.labels(phase="apply").inc()

        record = self.store.for_node(node_name)
        candidates = record.taints if record else []
        if record is None:
            logger.debug(f"No persisted taints found for node '{node_name}'")

        result = merge_taints(live_taints(node), candidates, self.config.extra_protected_prefixes)

        body: dict[str, Any] = {
            "apiVersion": "v1",
            "kind": "Node",
            "metadata": {
                "name": node_name,
                "annotations": {RESTORED_ANNOTATION_KEY: "1"},
                "finalizers": [FINALIZER_NAME],
            },
        }
        if node.metadata.resource_version:
            # Fails with 409 if the node changed since this snapshot was taken
            body["metadata"]["resourceVersion"] = node.metadata.resource_version
        if result.restored_keys:
            body["spec"] = {"taints": [t.to_manifest() for t in result.taints]}

        try:
            self.core_api.patch_node(
                name=node_name,
                body=body,
                field_manager=FIELD_MANAGER,
                force=True,
                _content_type=APPLY_PATCH_CONTENT_TYPE,
            )
        except ApiException as e:
            ERRORS_TOTAL.labels(kind="node", reason="patch_error").inc()
            details = f"API returned status {e.status}: {e.reason}"
            if e.status == 409:
                details += ". The node changed since it was read; it will be re-read and retried."
            raise NodeUpdateError(f"Failed to patch node '{node_name}'", details) from e
        except HTTPError as e:
            ERRORS_TOTAL.labels(kind="node", reason="patch_error").inc()
            raise NodeUpdateError(
                f"Failed to patch node '{node_name}'", f"Could not reach the API server: {e}"
            ) from e

        for key in result.restored_keys:
            TAINTS_RESTORED_TOTAL.labels(node=node_name, key=key).inc()

        reason, message = restoration_event(result.restored_keys)
        self.recorder.node_event(node_name, reason, message)
        if result.restored_keys:
            logger.info(f"Node '{node_name}': {message}")
        else:
            logger.debug(f"Node '{node_name}': {message}")

        return Action.await_change()

    def cleanup(self, node: Any, node_name: str) -> Action:
        """Persist a terminating node's user taints and release the finalizer."""
        logger.info(f"Cleaning up node '{node_name}' (Cleanup)")
        NODES_RECONCILED_TOTAL.labels(phase="cleanup").inc()

        deletion_time = node.metadata.deletion_timestamp
        if deletion_time.tzinfo is None:
            deletion_time = deletion_time.replace(tzinfo=timezone.utc)
        elapsed = (self.now_fn() - deletion_time).total_seconds()

        if elapsed > MAX_CLEANUP_SECONDS:
            logger.warning(
                f"Node '{node_name}' termination cleanup failed for over "
                f"{MAX_CLEANUP_SECONDS:.0f}s. Forcing finalizer removal."
            )
            ERRORS_TOTAL.labels(kind="cleanup", reason="timeout").inc()
            self._release_finalizer(node, node_name)
            return Action.await_change()

        to_preserve = filter_user_taints(live_taints(node), self.config.extra_protected_prefixes)
        logger.debug(f"Taints to preserve for node '{node_name}': {[str(t) for t in to_preserve]}")

        # Written even when empty so a snapshot from an earlier lifecycle is never restored
        self.store.save_for_node(node_name, to_preserve)
        logger.info(f"Stored {len(to_preserve)} custom taints for node '{node_name}'")

        self._release_finalizer(node, node_name)
        return Action.await_change()

    def _attach_finalizer(self, node: Any, node_name: str) -> None:
        finalizers = node.metadata.finalizers or []
        ops = self._resource_version_guard(node)
        if finalizers:
            ops.append({"op": "add", "path": "/metadata/finalizers/-", "value": FINALIZER_NAME})
        else:
            ops.append({"op": "add", "path": "/metadata/finalizers", "value": [FINALIZER_NAME]})
        self._patch_finalizers(node_name, ops, "attach")

    def _release_finalizer(self, node: Any, node_name: str) -> None:
        finalizers = node.metadata.finalizers or []
        if FINALIZER_NAME not in finalizers:
            raise FinalizerError(
                f"Cannot release finalizer on node '{node_name}'",
                f"The node does not carry '{FINALIZER_NAME}'.",
            )

        index = finalizers.index(FINALIZER_NAME)
        ops = [
            {"op": "test", "path": f"/metadata/finalizers/{index}", "value": FINALIZER_NAME},
            {"op": "remove", "path": f"/metadata/finalizers/{index}"},
        ]
        self._patch_finalizers(node_name, ops, "release")
        logger.debug(f"Released finalizer on node '{node_name}'")

    @staticmethod
    def _resource_version_guard(node: Any) -> list[dict]:
        resource_version = node.metadata.resource_version
        if not resource_version:
            return []
        return [{"op": "test", "path": "/metadata/resourceVersion", "value": resource_version}]

    def _patch_finalizers(self, node_name: str, ops: list[dict], verb: str) -> None:
        try:
            self.core_api.patch_node(name=node_name, body=ops)
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"Node '{node_name}' is already gone, nothing to {verb}")
                return
            ERRORS_TOTAL.labels(kind="finalizer", reason="finalizer_error").inc()
            raise FinalizerError(
                f"Failed to {verb} finalizer on node '{node_name}'",
                f"API returned status {e.status}: {e.reason}",
            ) from e
        except HTTPError as e:
            ERRORS_TOTAL.labels(kind="finalizer", reason="finalizer_error").inc()
            raise FinalizerError(
                f"Failed to {verb} finalizer on node '{node_name}'",
                f"Could not reach the API server: {e}",
            ) from e
