"""Prometheus metrics for the taint preserver."""

from prometheus_client import CollectorRegistry, Counter, start_http_server

from taint_preserver.logging_config import get_logger

logger = get_logger(__name__)

REGISTRY = CollectorRegistry()

TAINTS_RESTORED_TOTAL = Counter(
    "taints_restored_total",
    "Total number of taints restored",
    ["node", "key"],
    registry=REGISTRY,
)
NODES_RECONCILED_TOTAL = Counter(
    "nodes_reconciled_total",
    "Total number of nodes reconciled",
    ["phase"],
    registry=REGISTRY,
)
ERRORS_TOTAL = Counter(
    "errors_total",
    "Total number of errors",
    ["kind", "reason"],
    registry=REGISTRY,
)


def serve_metrics(port: int) -> None:
    """Expose the registry over HTTP in a background thread.

    Args:
        port: TCP port to listen on; 0 disables the server
    """
    if not port:
        logger.info("Metrics server disabled")
        return

    start_http_server(port, registry=REGISTRY)
    logger.info(f"Metrics server started on port {port}")
