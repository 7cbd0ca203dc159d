"""Tests for manifest library."""

import base64
from typing import Any

import pytest
import yaml

from bundle_engine.exceptions import ConfigurationError, ContentValidationError
from bundle_engine.manifest import (
    Bundle,
    BundleDeployment,
    BundleSource,
    ConfigMap,
    NamedResource,
    Pod,
    PodPhase,
    SourceType,
)

BUNDLE = """\
apiVersion: core.rukpak.io/v1alpha1
kind: Bundle
metadata:
  name: combo-v0.1.0
  uid: 8fa3c1d2-5b7e-4c1a-9f0e-2d6b8a4c3e11
spec:
  provisionerClassName: core-rukpak-io-plain
  source:
    type: configmaps
    configMaps:
    - configMap:
        name: combo-manifests
      path: manifests
    - configMap:
        name: combo-metadata
"""


def test_parse_bundle() -> None:
    """Test parsing a Bundle doc."""
    bundle = Bundle.parse_doc(yaml.safe_load(BUNDLE))
    assert bundle.name == "combo-v0.1.0"
    assert bundle.uid == "8fa3c1d2-5b7e-4c1a-9f0e-2d6b8a4c3e11"
    assert bundle.provisioner_class_name == "core-rukpak-io-plain"
    assert bundle.source.type == SourceType.CONFIG_MAPS
    assert bundle.source.config_maps is not None
    assert [cm.config_map.name for cm in bundle.source.config_maps] == [
        "combo-manifests",
        "combo-metadata",
    ]
    assert [cm.path for cm in bundle.source.config_maps] == ["manifests", ""]
    assert bundle.resource_id == NamedResource("Bundle", None, "combo-v0.1.0")


def test_parse_bundle_unknown_source_type() -> None:
    """Test a source type from a newer API still parses."""
    doc = yaml.safe_load(BUNDLE)
    doc["spec"]["source"] = {"type": "http", "http": {"url": "https://example.com"}}
    bundle = Bundle.parse_doc(doc)
    assert bundle.source.type == "http"


@pytest.mark.parametrize(
    ("doc", "match"),
    [
        ({"kind": "Bundle"}, "missing apiVersion"),
        ({"apiVersion": "v1", "kind": "Bundle"}, "expected 'core.rukpak.io'"),
        ({"apiVersion": "core.rukpak.io/v1alpha1"}, "missing metadata"),
        (
            {"apiVersion": "core.rukpak.io/v1alpha1", "metadata": {"name": "a"}},
            "missing spec",
        ),
    ],
)
def test_parse_bundle_invalid(doc: dict[str, Any], match: str) -> None:
    """Test invalid Bundle docs."""
    with pytest.raises(ConfigurationError, match=match):
        Bundle.parse_doc(doc)


def test_parse_bundle_deployment() -> None:
    """Test parsing a BundleDeployment doc."""
    bd = BundleDeployment.parse_doc(
        {
            "apiVersion": "core.rukpak.io/v1alpha1",
            "kind": "BundleDeployment",
            "metadata": {"name": "podinfo"},
            "spec": {
                "provisionerClassName": "core-rukpak-io-helm",
                "config": {"namespace": "podinfo", "values": "replicaCount: 2\n"},
            },
        }
    )
    assert bd.name == "podinfo"
    assert bd.provisioner_class_name == "core-rukpak-io-helm"
    assert bd.config == {"namespace": "podinfo", "values": "replicaCount: 2\n"}


def test_source_deep_copy() -> None:
    """Test copies of a source share no state."""
    source = BundleSource.from_dict(
        {"type": "git", "git": {"repository": "https://example.com/a.git"}}
    )
    copied = source.deep_copy()
    assert copied == source
    assert copied.git is not None
    copied.git.directory = "./other"
    assert source.git is not None
    assert source.git.directory == "./manifests"


def test_source_serializes_by_alias() -> None:
    """Test the wire form of a source uses camelCase keys."""
    source = BundleSource.from_dict(
        {
            "type": "image",
            "image": {"ref": "quay.io/a/b:v1", "pullSecret": "creds"},
        }
    )
    assert source.to_dict() == {
        "type": "image",
        "image": {"ref": "quay.io/a/b:v1", "pullSecret": "creds"},
    }


def test_config_map_files() -> None:
    """Test text and binary data are merged."""
    config_map = ConfigMap.parse_doc(
        {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": "cm", "namespace": "ns"},
            "immutable": True,
            "data": {"a.yaml": "kind: A\n"},
            "binaryData": {"b.bin": base64.b64encode(b"\x00\x01").decode()},
        }
    )
    assert config_map.immutable
    assert config_map.namespaced_name == "ns/cm"
    assert config_map.files() == {"a.yaml": b"kind: A\n", "b.bin": b"\x00\x01"}


def test_config_map_invalid_binary_data() -> None:
    """Test binary data that isn't base64."""
    config_map = ConfigMap(name="cm", namespace="ns", binary_data={"b": "!!"})
    with pytest.raises(ContentValidationError, match="invalid binary data"):
        config_map.files()


def test_pod_round_trip_through_wire_form() -> None:
    """Test a pod written with to_doc parses back to the same desired state."""
    doc = {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {
            "name": "unpack",
            "namespace": "ns",
            "uid": "abc",
            "labels": {"a": "b"},
            "ownerReferences": [
                {
                    "apiVersion": "core.rukpak.io/v1alpha1",
                    "kind": "Bundle",
                    "name": "b",
                    "uid": "123",
                    "controller": True,
                }
            ],
            "deletionTimestamp": "2024-01-01T00:00:00Z",
        },
        "spec": {
            "restartPolicy": "Never",
            "containers": [
                {
                    "name": "unpack",
                    "image": "quay.io/a/b:v1",
                    "terminationMessagePath": "/dev/termination-log",
                    "volumeMounts": [{"name": "bundle", "mountPath": "/bundle"}],
                }
            ],
            "volumes": [
                {"name": "bundle", "persistentVolumeClaim": {"claimName": "pvc"}}
            ],
        },
        "status": {
            "phase": "Succeeded",
            "containerStatuses": [
                {"name": "unpack", "imageID": "quay.io/a/b@sha256:1234"}
            ],
        },
    }
    pod = Pod.parse_doc(doc)
    assert pod.uid == "abc"
    assert pod.deletion_timestamp == "2024-01-01T00:00:00Z"
    assert pod.status.phase == PodPhase.SUCCEEDED
    status = pod.container_status("unpack")
    assert status is not None
    assert status.image_id == "quay.io/a/b@sha256:1234"
    assert pod.container_status("other") is None

    out = pod.to_doc()
    assert out["metadata"] == {
        "name": "unpack",
        "namespace": "ns",
        "labels": {"a": "b"},
        "ownerReferences": doc["metadata"]["ownerReferences"],
    }
    assert out["spec"] == {
        "restartPolicy": "Never",
        "containers": [
            {
                "name": "unpack",
                "image": "quay.io/a/b:v1",
                "volumeMounts": [{"name": "bundle", "mountPath": "/bundle"}],
            }
        ],
        "volumes": [{"name": "bundle", "persistentVolumeClaim": {"claimName": "pvc"}}],
    }
    assert "status" not in out
