"""Tests for dispatching bundles to unpackers."""

import logging

import pytest

from bundle_engine.cluster import InMemoryCluster
from bundle_engine.config import UnpackerConfig
from bundle_engine.exceptions import ConfigurationError
from bundle_engine.manifest import (
    Bundle,
    BundleSource,
    ConfigMap,
    ConfigMapSource,
    LocalObjectReference,
    SourceType,
)
from bundle_engine.source import State, default_resolver


def test_source_types(cluster: InMemoryCluster, config: UnpackerConfig) -> None:
    """Test every kind of source is supported."""
    resolver = default_resolver(cluster, config)
    assert resolver.source_types == sorted(SourceType)


async def test_dispatch(
    cluster: InMemoryCluster, config: UnpackerConfig, caplog: pytest.LogCaptureFixture
) -> None:
    """Test a bundle is unpacked by the unpacker for its source."""
    cluster.add_config_map(
        ConfigMap(
            name="combo-manifests",
            namespace=config.config_map_namespace,
            immutable=True,
            data={"a.yaml": "kind: A\n"},
        )
    )
    bundle = Bundle(
        name="combo",
        source=BundleSource(
            type=SourceType.CONFIG_MAPS,
            config_maps=[
                ConfigMapSource(
                    config_map=LocalObjectReference(name="combo-manifests"),
                    path="manifests",
                )
            ],
        ),
    )
    caplog.set_level(logging.DEBUG, logger="bundle_engine.source.unpacker")
    result = await default_resolver(cluster, config).unpack(bundle)
    assert result.state == State.UNPACKED
    assert result.content is not None
    assert list(result.content) == ["manifests/a.yaml"]
    assert "(configmaps) is Unpacked after" in caplog.text


async def test_unknown_source_type(
    cluster: InMemoryCluster, config: UnpackerConfig
) -> None:
    """Test a bundle with a kind of source that isn't supported."""
    bundle = Bundle(name="combo", source=BundleSource(type="http"))
    with pytest.raises(ConfigurationError, match="bundle source type 'http' not supported"):
        await default_resolver(cluster, config).unpack(bundle)
    assert sum(cluster.calls.values()) == 0
