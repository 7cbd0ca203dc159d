"""Cluster module for reading and writing objects in the cluster."""

from abc import ABC, abstractmethod

from bundle_engine.manifest import ConfigMap, Pod


class Cluster(ABC):
    """Abstract base class for access to the cluster API.

    Implementations raise `ObjectNotFoundError` when an object does not
    exist, `AlreadyExistsError` when creating an object that exists, and
    `ClusterException` for any other failure talking to the cluster.
    """

    @abstractmethod
    async def get_config_map(self, namespace: str, name: str) -> ConfigMap:
        """Retrieve a ConfigMap."""

    @abstractmethod
    async def get_pod(self, namespace: str, name: str) -> Pod:
        """Retrieve a Pod including its current status."""

    @abstractmethod
    async def create_pod(self, pod: Pod) -> Pod:
        """Create a Pod, returning the object as stored by the cluster."""

    @abstractmethod
    async def delete_pod(self, namespace: str, name: str) -> None:
        """Delete a Pod."""

    @abstractmethod
    async def get_pod_logs(
        self, namespace: str, name: str, container: str | None = None
    ) -> bytes:
        """Retrieve the full log output of a container in a Pod."""
