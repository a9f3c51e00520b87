"""
The cluster module provides the capability interface the reconcile steps use to
read and mutate objects in a kubernetes cluster.

- Objects are addressed by `ObjectIdentity`.
- `KubectlClient` talks to a real cluster through kubectl.
- `InMemoryCluster` is a fake used by tests and local experiments.
"""

from .client import ClusterClient
from .in_memory import InMemoryCluster
from .kubectl import KubectlClient

__all__ = [
    "ClusterClient",
    "InMemoryCluster",
    "KubectlClient",
]
