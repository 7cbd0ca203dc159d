"""Representation of the cluster objects read and written by bundle-engine.

These are typed views over the Kubernetes wire representation of the objects
the engine works with: the Bundle and BundleDeployment custom resources that
declare where content comes from and how it is deployed, the ConfigMaps that
may hold that content, and the Pods used to unpack content that the
controller can't fetch itself.

Only the fields that the engine reads or writes are modelled. Every object
can be parsed from a raw kubernetes object with `parse_doc` and the pieces of
a `Pod` serialize back to the camelCase wire form with `to_dict`.
"""

import base64
import binascii
import copy
from dataclasses import dataclass, field
from enum import StrEnum
import logging
from typing import Any, ClassVar

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig

from .exceptions import ConfigurationError, ContentValidationError

__all__ = [
    "NamedResource",
    "SourceType",
    "BundleSource",
    "ConfigMapSource",
    "PersistentVolumeClaimSource",
    "ImageSource",
    "GitSource",
    "GitRef",
    "Bundle",
    "BundleDeployment",
    "ConfigMap",
    "Pod",
    "PodPhase",
]

_LOGGER = logging.getLogger(__name__)


# Match a prefix of apiVersion to ensure we have the right type of object.
# We don't check specific versions for forward compatibility on upgrade.
CORE_DOMAIN = "core.rukpak.io"
CORE_API_VERSION = f"{CORE_DOMAIN}/v1alpha1"
BUNDLE_KIND = "Bundle"
BUNDLE_DEPLOYMENT_KIND = "BundleDeployment"
CONFIG_MAP_KIND = "ConfigMap"
POD_KIND = "Pod"

# Labels set on objects owned by a Bundle
OWNER_KIND_LABEL = f"{CORE_DOMAIN}/owner-kind"
OWNER_NAME_LABEL = f"{CORE_DOMAIN}/owner-name"


def _check_version(doc: dict[str, Any], version: str) -> None:
    """Assert that the resource has the specified version."""
    if not (api_version := doc.get("apiVersion")):
        raise ConfigurationError(f"Invalid object missing apiVersion: {doc}")
    if not api_version.startswith(version):
        raise ConfigurationError(f"Invalid object expected '{version}': {doc}")


def _metadata_name(cls: type, doc: dict[str, Any]) -> tuple[dict[str, Any], str]:
    if not (metadata := doc.get("metadata")):
        raise ConfigurationError(f"Invalid {cls.__name__} missing metadata: {doc}")
    if not (name := metadata.get("name")):
        raise ConfigurationError(
            f"Invalid {cls.__name__} missing metadata.name: {doc}"
        )
    return metadata, name


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a kubernetes resource."""

    kind: str
    namespace: str | None
    name: str

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


class SourceType(StrEnum):
    """The kinds of bundle source, as they appear in `spec.source.type`."""

    CONFIG_MAPS = "configmaps"
    PERSISTENT_VOLUME_CLAIM = "persistentVolumeClaim"
    IMAGE = "image"
    GIT = "git"


@dataclass
class LocalObjectReference(BaseManifest):
    """A reference to an object in the same namespace."""

    name: str
    """The name of the object."""


@dataclass
class ConfigMapSource(BaseManifest):
    """A ConfigMap holding bundle content and where to place it in the bundle."""

    config_map: LocalObjectReference = field(
        metadata=field_options(alias="configMap")
    )
    """The ConfigMap to read."""

    path: str = ""
    """Directory in the bundle where the ConfigMap files are written."""


@dataclass
class PersistentVolumeClaimSource(BaseManifest):
    """A volume claim whose root directory is the bundle content."""

    name: str
    """The name of the PersistentVolumeClaim."""


@dataclass
class ImageSource(BaseManifest):
    """An image whose root filesystem is the bundle content."""

    ref: str
    """The image reference, e.g. quay.io/example/bundle:v0.1.0."""

    pull_secret: str | None = field(
        metadata=field_options(alias="pullSecret"), default=None
    )
    """Name of a Secret used to pull the image."""


@dataclass
class GitRef(BaseManifest):
    """The git reference to check out."""

    branch: str | None = None
    """The branch to check out."""

    tag: str | None = None
    """The tag to check out."""

    commit: str | None = None
    """The commit SHA to check out, takes precedence over tag and branch."""

    @property
    def ref_str(self) -> str | None:
        """Get the reference string used to key the local clone."""
        if self.commit:
            return f"commit:{self.commit}"
        if self.tag:
            return f"tag:{self.tag}"
        if self.branch:
            return f"branch:{self.branch}"
        return None


@dataclass
class GitSource(BaseManifest):
    """A directory within a git repository."""

    repository: str
    """The URL of the repository."""

    directory: str = "./manifests"
    """Directory within the repository that holds the bundle content."""

    ref: GitRef | None = None
    """The reference to check out, defaults to the remote HEAD."""


@dataclass
class BundleSource(BaseManifest):
    """Where the content of a Bundle lives.

    This is a discriminated union: `type` selects which of the other fields
    is meaningful. The type is kept as a plain string so that kinds unknown
    to this version of the engine can still be read and rejected with a
    descriptive error.
    """

    type: str
    """The kind of source, one of `SourceType`."""

    config_maps: list[ConfigMapSource] | None = field(
        metadata=field_options(alias="configMaps"), default=None
    )
    """ConfigMaps holding the bundle content."""

    persistent_volume_claim: PersistentVolumeClaimSource | None = field(
        metadata=field_options(alias="persistentVolumeClaim"), default=None
    )
    """A volume claim holding the bundle content."""

    image: ImageSource | None = None
    """An image holding the bundle content."""

    git: GitSource | None = None
    """A git repository holding the bundle content."""

    def deep_copy(self) -> "BundleSource":
        """Return a copy that shares no state with this source."""
        return copy.deepcopy(self)


@dataclass
class Bundle(BaseManifest):
    """A Bundle declares where a package's content lives."""

    kind: ClassVar[str] = BUNDLE_KIND
    """The kind of the object."""

    api_version: ClassVar[str] = CORE_API_VERSION
    """The apiVersion of the object."""

    name: str
    """The name of the Bundle."""

    source: BundleSource
    """Where the content of the bundle lives."""

    provisioner_class_name: str = ""
    """The provisioner responsible for this bundle."""

    uid: str = ""
    """The uid of the Bundle, used for owner references."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Bundle":
        """Parse a Bundle from a kubernetes resource object."""
        _check_version(doc, CORE_DOMAIN)
        metadata, name = _metadata_name(cls, doc)
        if not (spec := doc.get("spec")):
            raise ConfigurationError(f"Invalid {cls.__name__} missing spec: {doc}")
        if not (source := spec.get("source")):
            raise ConfigurationError(
                f"Invalid {cls.__name__} missing spec.source: {doc}"
            )
        return cls(
            name=name,
            uid=metadata.get("uid", ""),
            provisioner_class_name=spec.get("provisionerClassName", ""),
            source=BundleSource.from_dict(source),
        )

    @property
    def resource_id(self) -> NamedResource:
        """Identifier for the Bundle, which is cluster scoped."""
        return NamedResource(self.kind, None, self.name)


@dataclass
class BundleDeployment(BaseManifest):
    """A BundleDeployment declares that a bundle should be installed."""

    kind: ClassVar[str] = BUNDLE_DEPLOYMENT_KIND
    """The kind of the object."""

    name: str
    """The name of the BundleDeployment."""

    provisioner_class_name: str = ""
    """The provisioner responsible for deploying the bundle."""

    config: dict[str, Any] | None = None
    """Provisioner specific configuration for the deployment."""

    uid: str = ""
    """The uid of the BundleDeployment."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "BundleDeployment":
        """Parse a BundleDeployment from a kubernetes resource object."""
        _check_version(doc, CORE_DOMAIN)
        metadata, name = _metadata_name(cls, doc)
        spec = doc.get("spec") or {}
        return cls(
            name=name,
            uid=metadata.get("uid", ""),
            provisioner_class_name=spec.get("provisionerClassName", ""),
            config=spec.get("config"),
        )


@dataclass
class ConfigMap(BaseManifest):
    """A ConfigMap is an API object used to store data in key-value pairs."""

    kind: ClassVar[str] = CONFIG_MAP_KIND
    """The kind of the ConfigMap."""

    name: str
    """The name of the ConfigMap."""

    namespace: str | None = None
    """The namespace of the ConfigMap."""

    immutable: bool | None = None
    """Whether the data of the ConfigMap can be changed after creation."""

    data: dict[str, str] | None = None
    """The text data in the ConfigMap."""

    binary_data: dict[str, str] | None = field(
        metadata=field_options(alias="binaryData"), default=None
    )
    """The binary data in the ConfigMap, base64 encoded."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ConfigMap":
        """Parse a config map object from a kubernetes resource."""
        _check_version(doc, "v1")
        metadata, name = _metadata_name(cls, doc)
        return cls(
            name=name,
            namespace=metadata.get("namespace"),
            immutable=doc.get("immutable"),
            data=doc.get("data"),
            binary_data=doc.get("binaryData"),
        )

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def files(self) -> dict[str, bytes]:
        """Return the text and binary data merged into filename to contents."""
        files: dict[str, bytes] = {}
        for filename, text in (self.data or {}).items():
            files[filename] = text.encode("utf-8")
        for filename, encoded in (self.binary_data or {}).items():
            try:
                files[filename] = base64.b64decode(encoded, validate=True)
            except (binascii.Error, ValueError) as err:
                raise ContentValidationError(
                    f"configmap {self.namespaced_name} has invalid binary data for {filename!r}: {err}"
                ) from err
        return files


class PodPhase(StrEnum):
    """Lifecycle phase of a Pod."""

    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


@dataclass
class OwnerReference(BaseManifest):
    """Identifies the object that owns another object."""

    api_version: str = field(metadata=field_options(alias="apiVersion"))
    kind: str
    name: str
    uid: str
    controller: bool | None = None
    block_owner_deletion: bool | None = field(
        metadata=field_options(alias="blockOwnerDeletion"), default=None
    )


@dataclass
class VolumeMount(BaseManifest):
    """Mounts a pod volume into a container."""

    name: str
    mount_path: str = field(metadata=field_options(alias="mountPath"))
    read_only: bool | None = field(
        metadata=field_options(alias="readOnly"), default=None
    )


@dataclass
class Container(BaseManifest):
    """A single container in a Pod."""

    name: str
    image: str | None = None
    command: list[str] | None = None
    image_pull_policy: str | None = field(
        metadata=field_options(alias="imagePullPolicy"), default=None
    )
    volume_mounts: list[VolumeMount] | None = field(
        metadata=field_options(alias="volumeMounts"), default=None
    )


@dataclass
class PersistentVolumeClaimVolumeSource(BaseManifest):
    """A volume backed by a PersistentVolumeClaim."""

    claim_name: str = field(metadata=field_options(alias="claimName"))
    read_only: bool | None = field(
        metadata=field_options(alias="readOnly"), default=None
    )


@dataclass
class EmptyDirVolumeSource(BaseManifest):
    """A scratch volume that lives as long as the Pod."""


@dataclass
class Volume(BaseManifest):
    """A named volume that containers in the Pod may mount."""

    name: str
    persistent_volume_claim: PersistentVolumeClaimVolumeSource | None = field(
        metadata=field_options(alias="persistentVolumeClaim"), default=None
    )
    empty_dir: EmptyDirVolumeSource | None = field(
        metadata=field_options(alias="emptyDir"), default=None
    )


@dataclass
class PodSpec(BaseManifest):
    """The desired state of a Pod."""

    containers: list[Container] = field(default_factory=list)
    init_containers: list[Container] | None = field(
        metadata=field_options(alias="initContainers"), default=None
    )
    volumes: list[Volume] | None = None
    restart_policy: str | None = field(
        metadata=field_options(alias="restartPolicy"), default=None
    )
    automount_service_account_token: bool | None = field(
        metadata=field_options(alias="automountServiceAccountToken"), default=None
    )
    image_pull_secrets: list[LocalObjectReference] | None = field(
        metadata=field_options(alias="imagePullSecrets"), default=None
    )


@dataclass
class ContainerStateWaiting(BaseManifest):
    reason: str | None = None
    message: str | None = None


@dataclass
class ContainerStateTerminated(BaseManifest):
    exit_code: int | None = field(metadata=field_options(alias="exitCode"), default=None)
    reason: str | None = None
    message: str | None = None


@dataclass
class ContainerState(BaseManifest):
    """The state of a container, only one member is set."""

    waiting: ContainerStateWaiting | None = None
    running: dict[str, Any] | None = None
    terminated: ContainerStateTerminated | None = None


@dataclass
class ContainerStatus(BaseManifest):
    """Observed status of a container."""

    name: str
    image: str | None = None
    image_id: str | None = field(metadata=field_options(alias="imageID"), default=None)
    state: ContainerState | None = None


@dataclass
class PodStatus(BaseManifest):
    """Observed status of a Pod."""

    phase: str | None = None
    message: str | None = None
    reason: str | None = None
    container_statuses: list[ContainerStatus] | None = field(
        metadata=field_options(alias="containerStatuses"), default=None
    )
    init_container_statuses: list[ContainerStatus] | None = field(
        metadata=field_options(alias="initContainerStatuses"), default=None
    )


@dataclass
class Pod:
    """A Pod as used for unpacking bundle content."""

    kind: ClassVar[str] = POD_KIND

    name: str
    """The name of the Pod."""

    namespace: str
    """The namespace of the Pod."""

    labels: dict[str, str] | None = None
    """Labels on the Pod."""

    owner_references: list[OwnerReference] | None = None
    """Objects that own the Pod."""

    spec: PodSpec = field(default_factory=PodSpec)
    """The desired state of the Pod."""

    status: PodStatus = field(default_factory=PodStatus)
    """The observed state of the Pod, owned by the cluster."""

    uid: str = ""
    """The uid of the Pod, assigned by the cluster."""

    deletion_timestamp: str | None = None
    """Set by the cluster when the Pod is being deleted."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Pod":
        """Parse a Pod from a kubernetes resource object."""
        _check_version(doc, "v1")
        metadata, name = _metadata_name(cls, doc)
        owner_references = None
        if refs := metadata.get("ownerReferences"):
            owner_references = [OwnerReference.from_dict(ref) for ref in refs]
        return cls(
            name=name,
            namespace=metadata.get("namespace", ""),
            uid=metadata.get("uid", ""),
            labels=metadata.get("labels"),
            owner_references=owner_references,
            deletion_timestamp=metadata.get("deletionTimestamp"),
            spec=PodSpec.from_dict(doc.get("spec") or {}),
            status=PodStatus.from_dict(doc.get("status") or {}),
        )

    def to_doc(self) -> dict[str, Any]:
        """Return the kubernetes resource object used to create the Pod."""
        metadata: dict[str, Any] = {"name": self.name, "namespace": self.namespace}
        if self.labels:
            metadata["labels"] = dict(self.labels)
        if self.owner_references:
            metadata["ownerReferences"] = [
                ref.to_dict() for ref in self.owner_references
            ]
        return {
            "apiVersion": "v1",
            "kind": self.kind,
            "metadata": metadata,
            "spec": self.spec.to_dict(),
        }

    @property
    def resource_id(self) -> NamedResource:
        return NamedResource(self.kind, self.namespace, self.name)

    def container_status(self, name: str) -> ContainerStatus | None:
        """Return the status of the named container, if reported."""
        for status in self.status.container_statuses or []:
            if status.name == name:
                return status
        return None
