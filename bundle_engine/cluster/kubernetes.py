"""Cluster implementation backed by the kubernetes API.

The kubernetes client is synchronous, so every request runs in a worker
thread. API objects are converted to and from the dataclasses in
`bundle_engine.manifest` through their wire representation.
"""

import asyncio
from collections.abc import Callable
import logging
from typing import Any

from kubernetes import client, config as kube_config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from bundle_engine.config import KubernetesConfig
from bundle_engine.exceptions import (
    AlreadyExistsError,
    ClusterException,
    ObjectNotFoundError,
)
from bundle_engine.manifest import ConfigMap, Pod

from .cluster import Cluster

__all__ = [
    "KubernetesCluster",
]

_LOGGER = logging.getLogger(__name__)


class KubernetesCluster(Cluster):
    """Access to the cluster through the kubernetes CoreV1 API."""

    def __init__(
        self, api: client.CoreV1Api, request_timeout: float | None = None
    ) -> None:
        """Initialize KubernetesCluster."""
        self._api = api
        self._request_timeout = request_timeout

    @classmethod
    def from_config(cls, config: KubernetesConfig) -> "KubernetesCluster":
        """Create a cluster client from a kubeconfig or the pod service account."""
        if config.in_cluster:
            kube_config.load_incluster_config()
        else:
            kube_config.load_kube_config(context=config.context)
        return cls(client.CoreV1Api(), request_timeout=config.request_timeout)

    async def _request(
        self, description: str, func: Callable[..., Any], *args: Any, **kwargs: Any
    ) -> Any:
        if self._request_timeout is not None:
            kwargs["_request_timeout"] = self._request_timeout
        _LOGGER.debug("Request: %s", description)
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except ApiException as err:
            if err.status == 404:
                raise ObjectNotFoundError(f"{description}: not found") from err
            if err.status == 409:
                raise AlreadyExistsError(f"{description}: already exists") from err
            raise ClusterException(
                f"{description}: {err.status} {err.reason}"
            ) from err
        except (HTTPError, OSError) as err:
            raise ClusterException(f"{description}: {err}") from err

    def _to_doc(self, obj: Any, kind: str) -> dict[str, Any]:
        doc = self._api.api_client.sanitize_for_serialization(obj)
        doc.setdefault("apiVersion", "v1")
        doc.setdefault("kind", kind)
        return doc

    async def get_config_map(self, namespace: str, name: str) -> ConfigMap:
        """Retrieve a ConfigMap."""
        obj = await self._request(
            f"get configmap {namespace}/{name}",
            self._api.read_namespaced_config_map,
            name,
            namespace,
        )
        return ConfigMap.parse_doc(self._to_doc(obj, ConfigMap.kind))

    async def get_pod(self, namespace: str, name: str) -> Pod:
        """Retrieve a Pod including its current status."""
        obj = await self._request(
            f"get pod {namespace}/{name}",
            self._api.read_namespaced_pod,
            name,
            namespace,
        )
        return Pod.parse_doc(self._to_doc(obj, Pod.kind))

    async def create_pod(self, pod: Pod) -> Pod:
        """Create a Pod, returning the object as stored by the cluster."""
        obj = await self._request(
            f"create pod {pod.namespace}/{pod.name}",
            self._api.create_namespaced_pod,
            pod.namespace,
            pod.to_doc(),
        )
        return Pod.parse_doc(self._to_doc(obj, Pod.kind))

    async def delete_pod(self, namespace: str, name: str) -> None:
        """Delete a Pod."""
        await self._request(
            f"delete pod {namespace}/{name}",
            self._api.delete_namespaced_pod,
            name,
            namespace,
        )

    async def get_pod_logs(
        self, namespace: str, name: str, container: str | None = None
    ) -> bytes:
        """Retrieve the full log output of a container in a Pod."""
        kwargs: dict[str, Any] = {"_preload_content": False}
        if container:
            kwargs["container"] = container
        response = await self._request(
            f"get pod logs {namespace}/{name}",
            self._api.read_namespaced_pod_log,
            name,
            namespace,
            **kwargs,
        )
        return bytes(response.data)
