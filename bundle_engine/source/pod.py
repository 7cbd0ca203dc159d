"""Unpack bundle content using a short lived pod.

Some sources can't be read with the controller's own privileges, e.g. a
volume claim that must be mounted or an image whose filesystem must be
extracted. For these an unpack pod is run per bundle. The pod runs the
`bundle-engine extract` command against the bundle content, which writes a
payload envelope to the pod logs:

    {"content": "<base64 of a gzip compressed tar of the bundle directory>"}

The pod lifecycle is the only coordination between the controller and the
pod. Each call to `unpack` reads the pod's current phase and returns
immediately, without waiting on the pod:

    absent or changed  -> pod is (re)created, Pending
    Pending            -> Pending, with any image pull errors
    Running            -> Unpacking
    Succeeded          -> logs are decoded into the bundle content, Unpacked
    Failed             -> pod is deleted, error with the pod logs
    anything else      -> pod is deleted, error

A deleted pod is created again on the next call.
"""

from abc import abstractmethod
import base64
import binascii
import hashlib
import io
import json
import logging

from slugify import slugify

from bundle_engine.cluster import Cluster, OperationResult, create_or_recreate
from bundle_engine.config import UnpackerConfig
from bundle_engine.exceptions import (
    ClusterException,
    ContentValidationError,
    ObjectNotFoundError,
    PayloadError,
    UnexpectedPodPhaseError,
    UnpackFailedError,
)
from bundle_engine.fs import BundleFS
from bundle_engine.manifest import (
    Bundle,
    BundleSource,
    Container,
    OwnerReference,
    Pod,
    PodPhase,
    PodSpec,
    OWNER_KIND_LABEL,
    OWNER_NAME_LABEL,
)

from .result import Result, State
from .unpacker import Unpacker

__all__ = [
    "PodUnpacker",
    "pod_name",
    "encode_bundle_payload",
    "decode_bundle_payload",
]

_LOGGER = logging.getLogger(__name__)

UNPACK_CONTAINER_NAME = "unpack"
UNPACK_EXECUTABLE = "bundle-engine"
EXTRACT_ARGS = ["extract", "--bundle-dir"]

# Waiting reasons that mean the pod is stuck on pulling an image
IMAGE_PULL_REASONS = {"ErrImagePull", "ImagePullBackOff"}

# Pod names are DNS labels
_MAX_NAME_LENGTH = 63
_HASH_LENGTH = 8


def pod_name(provisioner_name: str, bundle_name: str) -> str:
    """Return the name of the unpack pod for a bundle.

    The name is derived only from its inputs so that every call for the same
    bundle names the same pod.
    """
    name = slugify(f"{provisioner_name}-{bundle_name}", lowercase=True, separator="-")
    if len(name) <= _MAX_NAME_LENGTH:
        return name
    digest = hashlib.sha256(f"{provisioner_name}/{bundle_name}".encode("utf-8"))
    prefix = name[: _MAX_NAME_LENGTH - _HASH_LENGTH - 1].rstrip("-")
    return f"{prefix}-{digest.hexdigest()[:_HASH_LENGTH]}"


def encode_bundle_payload(tree: BundleFS) -> bytes:
    """Return the payload envelope written by the unpack pod."""
    content = base64.b64encode(tree.to_tar_gz()).decode("ascii")
    return json.dumps({"content": content}).encode("utf-8")


def decode_bundle_payload(data: bytes) -> BundleFS:
    """Return the bundle content from the payload envelope written by the unpack pod."""
    try:
        envelope = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as err:
        raise PayloadError(f"parse bundle data: {err}") from err
    if not isinstance(envelope, dict) or not isinstance(
        content := envelope.get("content"), str
    ):
        raise PayloadError("parse bundle data: expected an object with string content")
    try:
        archive = base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as err:
        raise PayloadError(f"decode bundle content: {err}") from err
    try:
        return BundleFS.from_tar(io.BytesIO(archive))
    except ContentValidationError as err:
        raise PayloadError(f"read bundle content: {err}") from err


class PodUnpacker(Unpacker):
    """Base class for sources unpacked by a pod.

    Subclasses describe what the unpack pod runs and mounts; this class owns
    the pod lifecycle and decoding of its output.
    """

    def __init__(self, cluster: Cluster, config: UnpackerConfig) -> None:
        """Initialize PodUnpacker."""
        self._cluster = cluster
        self._config = config

    @abstractmethod
    def check_source(self, bundle: Bundle) -> None:
        """Raise `ConfigurationError` if the bundle source is incomplete."""

    @abstractmethod
    def update_pod_spec(self, bundle: Bundle, spec: PodSpec) -> None:
        """Set the source specific parts of the unpack pod spec.

        The spec has exactly one container, which runs the extract command.
        """

    def resolved_source(self, bundle: Bundle, pod: Pod) -> BundleSource:
        """Return the source that the succeeded pod unpacked."""
        return bundle.source.deep_copy()

    async def unpack(self, bundle: Bundle) -> Result:
        """Unpack the content of the bundle."""
        self.check_source_type(bundle)
        self.check_source(bundle)

        pod, op = await self._ensure_unpack_pod(bundle)
        if op in (OperationResult.CREATED, OperationResult.UPDATED):
            return Result(state=State.PENDING, message=f"unpack pod {op}")
        if pod.deletion_timestamp:
            return Result(state=State.PENDING, message="unpack pod is being deleted")

        phase = pod.status.phase
        if phase == PodPhase.PENDING:
            return _pending_pod_result(pod)
        if phase == PodPhase.RUNNING:
            return Result(state=State.UNPACKING, message="unpack pod is running")
        if phase == PodPhase.FAILED:
            raise await self._failed_pod_error(pod)
        if phase == PodPhase.SUCCEEDED:
            return await self._succeeded_pod_result(bundle, pod)
        await self._delete_pod(pod)
        raise UnexpectedPodPhaseError(phase)

    async def _ensure_unpack_pod(self, bundle: Bundle) -> tuple[Pod, OperationResult]:
        owner = OwnerReference(
            api_version=bundle.api_version,
            kind=bundle.kind,
            name=bundle.name,
            uid=bundle.uid,
            controller=True,
            block_owner_deletion=True,
        )

        def mutate(pod: Pod) -> None:
            pod.labels = {
                OWNER_KIND_LABEL: bundle.kind,
                OWNER_NAME_LABEL: bundle.name,
            }
            pod.owner_references = [owner]
            pod.spec.automount_service_account_token = False
            pod.spec.restart_policy = "Never"
            if len(pod.spec.containers) != 1:
                pod.spec.containers = [Container(name=UNPACK_CONTAINER_NAME)]
            pod.spec.containers[0].name = UNPACK_CONTAINER_NAME
            self.update_pod_spec(bundle, pod.spec)

        pod = Pod(
            name=pod_name(self._config.provisioner_name, bundle.name),
            namespace=self._config.pod_namespace,
        )
        return await create_or_recreate(self._cluster, pod, mutate)

    async def _get_pod_logs(self, pod: Pod) -> bytes:
        return await self._cluster.get_pod_logs(
            pod.namespace, pod.name, container=UNPACK_CONTAINER_NAME
        )

    async def _delete_pod(self, pod: Pod) -> None:
        """Delete the unpack pod so the next call starts over."""
        try:
            await self._cluster.delete_pod(pod.namespace, pod.name)
        except ObjectNotFoundError:
            _LOGGER.debug("Unpack pod %s already deleted", pod.resource_id)
        except ClusterException as err:
            _LOGGER.warning("Failed to delete unpack pod %s: %s", pod.resource_id, err)

    async def _failed_pod_error(self, pod: Pod) -> Exception:
        try:
            logs = await self._get_pod_logs(pod)
        except ClusterException as err:
            return ClusterException(
                f"unpack failed: failed to retrieve failed pod logs: {err}"
            )
        await self._delete_pod(pod)
        return UnpackFailedError(logs.decode("utf-8", errors="replace"))

    async def _succeeded_pod_result(self, bundle: Bundle, pod: Pod) -> Result:
        logs = await self._get_pod_logs(pod)
        try:
            content = decode_bundle_payload(logs)
        except PayloadError:
            await self._delete_pod(pod)
            raise
        resolved = self.resolved_source(bundle, pod)
        _LOGGER.info(
            "Unpacked %d files for bundle %s from %s",
            len(content),
            bundle.name,
            pod.resource_id,
        )
        return Result(
            state=State.UNPACKED,
            content=content,
            resolved_source=resolved,
            message=f"unpacked by {pod.name}",
        )


def _pending_pod_result(pod: Pod) -> Result:
    messages = []
    statuses = [
        *(pod.status.init_container_statuses or []),
        *(pod.status.container_statuses or []),
    ]
    for status in statuses:
        if not status.state or not (waiting := status.state.waiting):
            continue
        if waiting.reason in IMAGE_PULL_REASONS:
            messages.append(waiting.message or f"{status.name}: {waiting.reason}")
    if messages:
        return Result(
            state=State.PENDING,
            message=f"waiting on image pull: {'; '.join(messages)}",
        )
    return Result(state=State.PENDING, message="waiting for unpack pod to start")
