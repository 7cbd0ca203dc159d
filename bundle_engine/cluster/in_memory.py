"""Module for an in memory cluster."""

import asyncio
from collections import Counter
import copy
import datetime
import itertools
import logging

from bundle_engine.exceptions import (
    AlreadyExistsError,
    ClusterException,
    ObjectNotFoundError,
)
from bundle_engine.manifest import (
    ConfigMap,
    NamedResource,
    Pod,
    PodPhase,
    PodStatus,
    CONFIG_MAP_KIND,
    POD_KIND,
)

from .cluster import Cluster

_LOGGER = logging.getLogger(__name__)


class InMemoryCluster(Cluster):
    """In-memory implementation of the Cluster interface.

    Objects are copied on the way in and out so callers never share state
    with the stored objects, as with a real API server. Each call yields to
    the event loop once so that concurrent callers interleave.

    The cluster side of a Pod's lifecycle is driven by the test or tool
    through `set_pod_status`, `set_pod_logs` and `mark_pod_deleting`.
    """

    def __init__(self) -> None:
        """Initialize the InMemoryCluster."""
        self._config_maps: dict[NamedResource, ConfigMap] = {}
        self._pods: dict[NamedResource, Pod] = {}
        self._logs: dict[tuple[NamedResource, str | None], bytes] = {}
        self._errors: dict[str, list[ClusterException]] = {}
        self._uids = itertools.count(1)
        self.calls: Counter[str] = Counter()

    async def _call(self, method: str) -> None:
        self.calls[method] += 1
        await asyncio.sleep(0)
        if pending := self._errors.get(method):
            raise pending.pop(0)

    def inject_error(self, method: str, err: ClusterException) -> None:
        """Fail the next call to `method` with `err`."""
        self._errors.setdefault(method, []).append(err)

    def add_config_map(self, config_map: ConfigMap) -> None:
        """Add or replace a ConfigMap."""
        if not config_map.namespace:
            raise ValueError(f"ConfigMap {config_map.name} must have a namespace")
        rid = NamedResource(CONFIG_MAP_KIND, config_map.namespace, config_map.name)
        _LOGGER.debug("Adding %s", rid)
        self._config_maps[rid] = copy.deepcopy(config_map)

    async def get_config_map(self, namespace: str, name: str) -> ConfigMap:
        """Retrieve a ConfigMap."""
        await self._call("get_config_map")
        rid = NamedResource(CONFIG_MAP_KIND, namespace, name)
        if (config_map := self._config_maps.get(rid)) is None:
            raise ObjectNotFoundError(f"configmaps {name!r} not found")
        return copy.deepcopy(config_map)

    async def get_pod(self, namespace: str, name: str) -> Pod:
        """Retrieve a Pod including its current status."""
        await self._call("get_pod")
        return copy.deepcopy(self._lookup_pod(namespace, name))

    async def create_pod(self, pod: Pod) -> Pod:
        """Create a Pod, returning the object as stored by the cluster."""
        await self._call("create_pod")
        if pod.resource_id in self._pods:
            raise AlreadyExistsError(f"pods {pod.name!r} already exists")
        stored = copy.deepcopy(pod)
        stored.uid = f"uid-{next(self._uids)}"
        stored.status = PodStatus(phase=PodPhase.PENDING)
        stored.deletion_timestamp = None
        self._pods[stored.resource_id] = stored
        _LOGGER.debug("Created %s", stored.resource_id)
        return copy.deepcopy(stored)

    async def delete_pod(self, namespace: str, name: str) -> None:
        """Delete a Pod."""
        await self._call("delete_pod")
        pod = self._lookup_pod(namespace, name)
        del self._pods[pod.resource_id]
        for key in [key for key in self._logs if key[0] == pod.resource_id]:
            del self._logs[key]
        _LOGGER.debug("Deleted %s", pod.resource_id)

    async def get_pod_logs(
        self, namespace: str, name: str, container: str | None = None
    ) -> bytes:
        """Retrieve the full log output of a container in a Pod."""
        await self._call("get_pod_logs")
        pod = self._lookup_pod(namespace, name)
        if (logs := self._logs.get((pod.resource_id, container))) is not None:
            return logs
        return self._logs.get((pod.resource_id, None), b"")

    def _lookup_pod(self, namespace: str, name: str) -> Pod:
        rid = NamedResource(POD_KIND, namespace, name)
        if (pod := self._pods.get(rid)) is None:
            raise ObjectNotFoundError(f"pods {name!r} not found")
        return pod

    def list_pods(self) -> list[Pod]:
        """Return a copy of every Pod in the cluster."""
        return [copy.deepcopy(pod) for pod in self._pods.values()]

    def set_pod_status(self, namespace: str, name: str, status: PodStatus) -> None:
        """Replace the observed status of a Pod."""
        self._lookup_pod(namespace, name).status = copy.deepcopy(status)

    def set_pod_phase(self, namespace: str, name: str, phase: str) -> None:
        """Move a Pod to a new phase, keeping the rest of its status."""
        self._lookup_pod(namespace, name).status.phase = phase

    def set_pod_logs(
        self, namespace: str, name: str, logs: bytes, container: str | None = None
    ) -> None:
        """Set the log output of a container in a Pod."""
        pod = self._lookup_pod(namespace, name)
        self._logs[(pod.resource_id, container)] = logs

    def mark_pod_deleting(self, namespace: str, name: str) -> None:
        """Mark a Pod as being deleted, as when it is held by a finalizer."""
        now = datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)
        self._lookup_pod(namespace, name).deletion_timestamp = now.isoformat()
