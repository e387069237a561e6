"""Watch-driven controller loop for Node objects."""

import random
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from kubernetes import watch
from kubernetes.client import CoreV1Api
from kubernetes.client.rest import ApiException

from taint_preserver.backoff import Action, BackoffPolicy
from taint_preserver.config import ControllerConfig
from taint_preserver.exceptions import MissingNodeNameError, TaintPreserverError
from taint_preserver.logging_config import get_logger
from taint_preserver.metrics import ERRORS_TOTAL
from taint_preserver.reconciler import Reconciler

logger = get_logger(__name__)

WATCH_BACKOFF_CAP_SECONDS = 30


class NodeWorkQueue:
    """Dispatch node snapshots to a thread pool, one at a time per node.

    A snapshot submitted while the same node is being reconciled is parked;
    a newer one replaces it. When the running reconciliation finishes, the
    parked snapshot runs on the same worker. Distinct nodes run in parallel.
    """

    def __init__(self, handler: Callable[[str, Any], None], workers: int = 4):
        self._handler = handler
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="reconcile")
        self._lock = threading.Lock()
        self._active: set[str] = set()
        self._pending: dict[str, Any] = {}

    def submit(self, name: str, node: Any) -> None:
        with self._lock:
            if name in self._active:
                self._pending[name] = node
                return
            self._active.add(name)
        self._executor.submit(self._run, name, node)

    def _run(self, name: str, node: Any) -> None:
        while True:
            try:
                self._handler(name, node)
            except Exception:
                logger.exception(f"Unhandled error while reconciling node '{name}'")

            with self._lock:
                node = self._pending.pop(name, None)
                if node is None:
                    self._active.discard(name)
                    return

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class NodeTaintController:
    """List-then-watch Nodes and reconcile each one through the work queue.

    The watch is reopened every ``resync_seconds``; each reopen re-lists all
    nodes and enqueues them, so a missed event is repaired at the next resync.
    Failed reconciliations are retried after the backoff delay on a fresh
    copy of the node.
    """

    def __init__(
        self,
        core_api: CoreV1Api,
        config: ControllerConfig,
        reconciler: Reconciler | None = None,
        backoff: BackoffPolicy | None = None,
    ) -> None:
        self.core_api = core_api
        self.config = config
        self.reconciler = reconciler or Reconciler(core_api, config)
        self.backoff = backoff or BackoffPolicy()
        self.queue = NodeWorkQueue(self.handle, workers=config.workers)

        self._stop = threading.Event()
        self._timers: dict[str, threading.Timer] = {}
        self._timers_lock = threading.Lock()
        self._active_watcher: watch.Watch | None = None
        self._watcher_lock = threading.Lock()

    def enqueue(self, node: Any) -> None:
        name = getattr(getattr(node, "metadata", None), "name", None)
        if not name:
            logger.error("Dropping node snapshot without metadata.name")
            ERRORS_TOTAL.labels(kind="node", reason="missing_name").inc()
            return
        self.queue.submit(name, node)

    def handle(self, name: str, node: Any) -> None:
        """Reconcile a snapshot and schedule its requeue if one is requested."""
        action = self.reconcile_node(name, node)
        if action is not None and action.requeue_after is not None:
            self.schedule_requeue(name, action.requeue_after)
        else:
            logger.debug(f"Reconciled node '{name}'")

    def reconcile_node(self, name: str, node: Any) -> Action | None:
        """Run the reconciler and turn failures into backoff requeues.

        Returns:
            The reconciler's action, a requeue action on failure, or None
            when the snapshot cannot be reconciled at all
        """
        try:
            return self.reconciler.reconcile(node)
        except MissingNodeNameError as e:
            logger.error(f"Dropping node snapshot: {e.message}")
            return None
        except TaintPreserverError as e:
            return self.backoff.error_policy(name, e)
        except Exception as e:
            logger.exception(f"Unexpected error reconciling node '{name}'")
            ERRORS_TOTAL.labels(kind="reconcile", reason="unexpected").inc()
            return self.backoff.error_policy(name, e)

    def schedule_requeue(self, name: str, delay: float) -> None:
        """Reconcile a node again after ``delay`` seconds, replacing any earlier timer."""
        timer = threading.Timer(delay, self._requeue, args=(name,))
        timer.daemon = True
        with self._timers_lock:
            previous = self._timers.pop(name, None)
            if previous is not None:
                previous.cancel()
            if self._stop.is_set():
                return
            self._timers[name] = timer
        timer.start()
        logger.debug(f"Requeued node '{name}' in {delay:.0f}s")

    def _requeue(self, name: str) -> None:
        with self._timers_lock:
            self._timers.pop(name, None)
        if self._stop.is_set():
            return

        try:
            node = self.core_api.read_node(name=name)
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"Node '{name}' no longer exists, dropping requeue")
                return
            self._retry_read(name, e)
            return
        except Exception as e:
            self._retry_read(name, e)
            return

        with self._timers_lock:
            # _shutdown sets the stop flag before taking this lock
            if self._stop.is_set():
                return
            self.queue.submit(name, node)

    def _retry_read(self, name: str, error: Exception) -> None:
        ERRORS_TOTAL.labels(kind="node", reason="get_error").inc()
        action = self.backoff.error_policy(name, error)
        self.schedule_requeue(name, action.requeue_after)

    def resync(self) -> str | None:
        """List every node and enqueue it.

        Returns:
            The list's resourceVersion to resume watching from
        """
        nodes = self.core_api.list_node()
        for node in nodes.items:
            self.enqueue(node)
        logger.debug(f"Resynced {len(nodes.items)} nodes")
        return getattr(getattr(nodes, "metadata", None), "resource_version", None)

    def request_stop(self) -> None:
        """Stop the loop and interrupt any open watch stream."""
        self._stop.set()
        with self._watcher_lock:
            active_watcher = self._active_watcher
        if active_watcher is not None:
            active_watcher.stop()

    def run_forever(self) -> None:
        """Main control loop: resync, then watch until the next resync or shutdown.

        ``401`` / ``403`` responses end the loop, since retrying cannot fix
        missing RBAC permissions. Other API errors back off with jitter up
        to 30 seconds.
        """
        logger.info(
            f"Starting Node Taint Preserver controller, storing in namespace {self.config.namespace}"
        )
        backoff_seconds = 1

        try:
            while not self._stop.is_set():
                watcher = watch.Watch()
                with self._watcher_lock:
                    self._active_watcher = watcher
                try:
                    resource_version = self.resync()
                    stream = watcher.stream(
                        self.core_api.list_node,
                        resource_version=resource_version,
                        timeout_seconds=self.config.resync_seconds,
                    )
                    for event in stream:
                        if self._stop.is_set():
                            break
                        # DELETED arrives after the finalizer is gone; Cleanup already ran
                        if event.get("type") in {"ADDED", "MODIFIED"}:
                            self.enqueue(event.get("object"))
                    backoff_seconds = 1
                except ApiException as exc:
                    if exc.status == 410:
                        logger.warning("Watch resource version expired, re-listing")
                        continue
                    if exc.status in {401, 403}:
                        logger.error(
                            f"Kubernetes API access denied (status={exc.status}). "
                            "Check controller RBAC and service account permissions."
                        )
                        ERRORS_TOTAL.labels(kind="watch", reason="forbidden").inc()
                        return
                    logger.exception("Kubernetes API watch error")
                    ERRORS_TOTAL.labels(kind="watch", reason="api_error").inc()
                    self._stop.wait(timeout=backoff_seconds * (0.5 + random.random()))  # noqa: S311
                    backoff_seconds = min(backoff_seconds * 2, WATCH_BACKOFF_CAP_SECONDS)
                except Exception:
                    logger.exception("Unexpected watch error")
                    ERRORS_TOTAL.labels(kind="watch", reason="unexpected").inc()
                    self._stop.wait(timeout=backoff_seconds * (0.5 + random.random()))  # noqa: S311
                    backoff_seconds = min(backoff_seconds * 2, WATCH_BACKOFF_CAP_SECONDS)
                finally:
                    watcher.stop()
                    with self._watcher_lock:
                        if self._active_watcher is watcher:
                            self._active_watcher = None
        finally:
            self._shutdown()

    def _shutdown(self) -> None:
        self._stop.set()
        with self._timers_lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        self.queue.shutdown(wait=True)
        logger.info("Controller stopped")
