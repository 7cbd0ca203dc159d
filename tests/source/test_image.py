"""Tests for unpacking bundles stored in an image."""

import pytest

from bundle_engine.cluster import InMemoryCluster
from bundle_engine.config import UnpackerConfig
from bundle_engine.exceptions import UnpackException
from bundle_engine.fs import BundleFS
from bundle_engine.manifest import (
    Bundle,
    BundleSource,
    ContainerStatus,
    ImageSource,
    PodPhase,
    PodStatus,
    SourceType,
)
from bundle_engine.source import ImageUnpacker, State
from bundle_engine.source.pod import encode_bundle_payload

POD_NAMESPACE = "rukpak-system"
POD_NAME = "core-combo"
IMAGE_REF = "quay.io/example/combo-bundle:v0.1.0"
DIGEST = "quay.io/example/combo-bundle@sha256:5d9ed1f38cf6a1f4c2d2b7e9d1ad9d9cf0a3c5b2e8f7a6b5c4d3e2f1a0b9c8d7"
CONTENT = BundleFS({"manifests/a.yaml": b"kind: A\n"})


@pytest.fixture(name="unpacker")
def unpacker_fixture(cluster: InMemoryCluster, config: UnpackerConfig) -> ImageUnpacker:
    return ImageUnpacker(cluster, config)


@pytest.fixture(name="bundle")
def bundle_fixture() -> Bundle:
    return Bundle(
        name="combo",
        source=BundleSource(
            type=SourceType.IMAGE,
            image=ImageSource(ref=IMAGE_REF, pull_secret="registry-creds"),
        ),
    )


def _succeed(cluster: InMemoryCluster, image_id: str | None) -> None:
    cluster.set_pod_status(
        POD_NAMESPACE,
        POD_NAME,
        PodStatus(
            phase=PodPhase.SUCCEEDED,
            container_statuses=[
                ContainerStatus(name="unpack", image=IMAGE_REF, image_id=image_id)
            ],
        ),
    )
    cluster.set_pod_logs(
        POD_NAMESPACE, POD_NAME, encode_bundle_payload(CONTENT), container="unpack"
    )


async def test_pod_spec(
    cluster: InMemoryCluster, unpacker: ImageUnpacker, bundle: Bundle
) -> None:
    """Test the bundle image runs the extract command installed by an init container."""
    await unpacker.unpack(bundle)
    (pod,) = cluster.list_pods()
    spec = pod.spec
    assert spec.init_containers is not None
    (init,) = spec.init_containers
    assert init.image == "quay.io/operator-framework/rukpak:test"
    assert init.command == ["cp", "-Rv", "/bin/bundle-engine", "/util"]
    (container,) = spec.containers
    assert container.name == "unpack"
    assert container.image == IMAGE_REF
    assert container.command is not None
    assert container.command[:4] == [
        "/util/bundle-engine",
        "extract",
        "--bundle-dir",
        "/",
    ]
    excluded = container.command[5::2]
    assert container.command[4::2] == ["--exclude"] * len(excluded)
    assert {"util", "proc", "sys", "dev", "etc/hosts"} <= set(excluded)
    assert spec.image_pull_secrets is not None
    assert [s.name for s in spec.image_pull_secrets] == ["registry-creds"]


async def test_resolves_digest(
    cluster: InMemoryCluster, unpacker: ImageUnpacker, bundle: Bundle
) -> None:
    """Test the unpacked source is pinned to the image digest that ran."""
    await unpacker.unpack(bundle)
    _succeed(cluster, f"docker-pullable://{DIGEST}")

    result = await unpacker.unpack(bundle)
    assert result.state == State.UNPACKED
    assert result.content == CONTENT
    assert result.resolved_source is not None
    assert result.resolved_source.type == SourceType.IMAGE
    assert result.resolved_source.image == ImageSource(
        ref=DIGEST, pull_secret="registry-creds"
    )
    # The declared source is unchanged
    assert bundle.source.image is not None
    assert bundle.source.image.ref == IMAGE_REF


async def test_running_has_no_resolved_source(
    cluster: InMemoryCluster, unpacker: ImageUnpacker, bundle: Bundle
) -> None:
    """Test no digest is reported before the pod succeeds."""
    await unpacker.unpack(bundle)
    cluster.set_pod_phase(POD_NAMESPACE, POD_NAME, PodPhase.RUNNING)
    result = await unpacker.unpack(bundle)
    assert result.state == State.UNPACKING
    assert result.resolved_source is None


async def test_missing_digest(
    cluster: InMemoryCluster, unpacker: ImageUnpacker, bundle: Bundle
) -> None:
    """Test a succeeded pod that reports no image digest."""
    await unpacker.unpack(bundle)
    _succeed(cluster, None)
    with pytest.raises(UnpackException, match="bundle image digest not found"):
        await unpacker.unpack(bundle)
