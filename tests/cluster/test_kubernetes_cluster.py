"""Tests for the kubernetes API backed cluster."""

from typing import Any
from unittest.mock import MagicMock

from kubernetes import client
from kubernetes.client.rest import ApiException
import pytest
from urllib3.exceptions import ProtocolError

from bundle_engine.cluster.kubernetes import KubernetesCluster
from bundle_engine.exceptions import (
    AlreadyExistsError,
    ClusterException,
    ObjectNotFoundError,
)
from bundle_engine.manifest import Container, Pod, PodPhase, PodSpec


@pytest.fixture(name="api")
def api_fixture() -> MagicMock:
    api = MagicMock(spec=client.CoreV1Api)
    api.api_client = client.ApiClient()
    return api


@pytest.fixture(name="cluster")
def cluster_fixture(api: MagicMock) -> KubernetesCluster:
    return KubernetesCluster(api, request_timeout=5)


def _pod_model(phase: str = "Pending") -> client.V1Pod:
    return client.V1Pod(
        api_version="v1",
        kind="Pod",
        metadata=client.V1ObjectMeta(name="p", namespace="ns", uid="abc"),
        spec=client.V1PodSpec(
            containers=[client.V1Container(name="unpack", image="quay.io/a/b:v1")],
            restart_policy="Never",
        ),
        status=client.V1PodStatus(
            phase=phase,
            container_statuses=[
                client.V1ContainerStatus(
                    name="unpack",
                    image="quay.io/a/b:v1",
                    image_id="quay.io/a/b@sha256:1234",
                    ready=False,
                    restart_count=0,
                )
            ],
        ),
    )


async def test_get_config_map(cluster: KubernetesCluster, api: MagicMock) -> None:
    """Test reading a ConfigMap."""
    api.read_namespaced_config_map.return_value = client.V1ConfigMap(
        metadata=client.V1ObjectMeta(name="cm", namespace="ns"),
        immutable=True,
        data={"a.yaml": "kind: A\n"},
    )
    config_map = await cluster.get_config_map("ns", "cm")
    assert config_map.name == "cm"
    assert config_map.immutable
    assert config_map.files() == {"a.yaml": b"kind: A\n"}
    api.read_namespaced_config_map.assert_called_once_with(
        "cm", "ns", _request_timeout=5
    )


async def test_get_pod(cluster: KubernetesCluster, api: MagicMock) -> None:
    """Test reading a Pod with its status."""
    api.read_namespaced_pod.return_value = _pod_model("Succeeded")
    pod = await cluster.get_pod("ns", "p")
    assert pod.uid == "abc"
    assert pod.status.phase == PodPhase.SUCCEEDED
    status = pod.container_status("unpack")
    assert status is not None
    assert status.image_id == "quay.io/a/b@sha256:1234"


async def test_create_pod(cluster: KubernetesCluster, api: MagicMock) -> None:
    """Test the wire form sent when creating a Pod."""
    api.create_namespaced_pod.return_value = _pod_model()
    pod = Pod(
        name="p",
        namespace="ns",
        labels={"a": "b"},
        spec=PodSpec(
            containers=[Container(name="unpack", image="quay.io/a/b:v1")],
            restart_policy="Never",
        ),
    )
    created = await cluster.create_pod(pod)
    assert created.uid == "abc"
    args: Any = api.create_namespaced_pod.call_args
    assert args.args[0] == "ns"
    assert args.args[1]["metadata"] == {
        "name": "p",
        "namespace": "ns",
        "labels": {"a": "b"},
    }
    assert args.args[1]["spec"]["restartPolicy"] == "Never"


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (404, ObjectNotFoundError),
        (409, AlreadyExistsError),
        (500, ClusterException),
        (403, ClusterException),
    ],
)
async def test_api_errors(
    cluster: KubernetesCluster,
    api: MagicMock,
    status: int,
    expected: type[Exception],
) -> None:
    """Test API errors map to cluster exceptions."""
    api.delete_namespaced_pod.side_effect = ApiException(status=status, reason="oops")
    with pytest.raises(expected, match="delete pod ns/p"):
        await cluster.delete_pod("ns", "p")


async def test_connection_error(cluster: KubernetesCluster, api: MagicMock) -> None:
    """Test transport errors map to cluster exceptions."""
    api.read_namespaced_pod.side_effect = ProtocolError("connection reset")
    with pytest.raises(ClusterException, match="connection reset"):
        await cluster.get_pod("ns", "p")


async def test_get_pod_logs(cluster: KubernetesCluster, api: MagicMock) -> None:
    """Test logs are returned as raw bytes."""
    api.read_namespaced_pod_log.return_value = MagicMock(data=b'{"content": ""}')
    logs = await cluster.get_pod_logs("ns", "p", container="unpack")
    assert logs == b'{"content": ""}'
    api.read_namespaced_pod_log.assert_called_once_with(
        "p", "ns", _preload_content=False, container="unpack", _request_timeout=5
    )
