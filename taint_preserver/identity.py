"""Mapping from node names to persisted record names."""

from hashlib import sha256

STORAGE_KEY_PREFIX = "node-taints-"


def storage_key(node_name: str) -> str:
    """Return the ConfigMap name holding a node's persisted taints.

    The node name is hashed so the result has a fixed length and always
    fits within the Kubernetes object name limit.
    """
    return STORAGE_KEY_PREFIX + sha256(node_name.encode("utf-8")).hexdigest()
