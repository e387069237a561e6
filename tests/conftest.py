"""Pytest configuration and shared fixtures."""

import copy
from datetime import datetime, timezone

import pytest
from hypothesis import Verbosity, settings
from kubernetes.client import V1ConfigMap, V1Node, V1NodeSpec, V1ObjectMeta, V1Taint
from kubernetes.client.rest import ApiException

# Configure Hypothesis for property-based testing
settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=1000, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose)

# Load the default profile
settings.load_profile("default")


class FakeCoreV1Api:
    """In-memory stand-in for the parts of CoreV1Api the controller uses."""

    def __init__(self):
        self.config_maps: dict[tuple[str, str], dict] = {}
        self.config_map_reads: list[tuple[str, str]] = []
        self.config_map_writes: list[dict] = []
        self.node_patches: list[tuple[str, object, dict]] = []
        self.events: list = []
        self.read_error: Exception | None = None
        self.write_error: Exception | None = None
        self.node_patch_error: Exception | None = None
        self.event_error: Exception | None = None

    def read_namespaced_config_map(self, name, namespace):
        self.config_map_reads.append((namespace, name))
        if self.read_error is not None:
            raise self.read_error
        body = self.config_maps.get((namespace, name))
        if body is None:
            raise ApiException(status=404, reason="Not Found")
        return V1ConfigMap(
            metadata=V1ObjectMeta(
                name=name,
                namespace=namespace,
                annotations=dict(body["metadata"].get("annotations") or {}) or None,
            ),
            data=dict(body.get("data") or {}) or None,
        )

    def patch_namespaced_config_map(self, name, namespace, body, **kwargs):
        if self.write_error is not None:
            raise self.write_error
        self.config_map_writes.append({"name": name, "namespace": namespace, "body": body, **kwargs})
        self.config_maps[(namespace, name)] = copy.deepcopy(body)

    def patch_node(self, name, body, **kwargs):
        if self.node_patch_error is not None:
            raise self.node_patch_error
        self.node_patches.append((name, copy.deepcopy(body), kwargs))

    def create_namespaced_event(self, namespace, body):
        if self.event_error is not None:
            raise self.event_error
        self.events.append(body)

    @property
    def apply_patches(self):
        """Server-side apply patches sent for nodes."""
        return [p for p in self.node_patches if isinstance(p[1], dict)]

    @property
    def json_patches(self):
        """JSON patches (finalizer changes) sent for nodes."""
        return [p for p in self.node_patches if isinstance(p[1], list)]


def build_node(
    name="worker-1",
    taints=(),
    annotations=None,
    finalizers=None,
    deletion_timestamp=None,
    resource_version="100",
):
    """Build a V1Node; taints are (key, value, effect) tuples."""
    return V1Node(
        metadata=V1ObjectMeta(
            name=name,
            annotations=annotations,
            finalizers=finalizers,
            deletion_timestamp=deletion_timestamp,
            resource_version=resource_version,
        ),
        spec=V1NodeSpec(
            taints=[V1Taint(key=k, value=v, effect=e) for k, v, e in taints] or None
        ),
    )


@pytest.fixture
def fake_api():
    """Fresh in-memory Kubernetes API."""
    return FakeCoreV1Api()


@pytest.fixture
def fake_api_factory():
    """Factory for fresh fake APIs, for property tests that need one per example."""
    return FakeCoreV1Api


@pytest.fixture
def make_node():
    """Factory building V1Node snapshots."""
    return build_node


@pytest.fixture
def fixed_now():
    """A fixed point in time for cleanup timing."""
    return datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
