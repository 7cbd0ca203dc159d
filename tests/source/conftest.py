"""Test fixtures for the source unpackers."""

import pytest

from bundle_engine.cluster import InMemoryCluster
from bundle_engine.config import UnpackerConfig

POD_NAMESPACE = "rukpak-system"


@pytest.fixture(name="cluster")
def cluster_fixture() -> InMemoryCluster:
    """Create an in-memory cluster for testing."""
    return InMemoryCluster()


@pytest.fixture(name="config")
def config_fixture() -> UnpackerConfig:
    """Configuration for unpackers running in the system namespace."""
    return UnpackerConfig(
        provisioner_name="core",
        config_map_namespace=POD_NAMESPACE,
        pod_namespace=POD_NAMESPACE,
        unpack_image="quay.io/operator-framework/rukpak:test",
    )
