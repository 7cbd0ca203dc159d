"""
The cluster module provides access to the objects in the cluster that the
engine reads and writes: the ConfigMaps that hold bundle content and the Pods
used to unpack bundle content.

This abstract interface allows for various implementations: one backed by the
kubernetes API, and an in-memory one used for tests and local runs.
"""

from .cluster import Cluster
from .in_memory import InMemoryCluster
from .util import OperationResult, create_or_recreate

__all__ = [
    "Cluster",
    "InMemoryCluster",
    "OperationResult",
    "create_or_recreate",
]
