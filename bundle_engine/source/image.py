"""Unpack bundle content stored in an image."""

import logging

from bundle_engine.exceptions import ConfigurationError, UnpackException
from bundle_engine.manifest import (
    Bundle,
    BundleSource,
    Container,
    EmptyDirVolumeSource,
    ImageSource,
    LocalObjectReference,
    Pod,
    PodSpec,
    SourceType,
    Volume,
    VolumeMount,
)

from .pod import PodUnpacker, EXTRACT_ARGS, UNPACK_CONTAINER_NAME, UNPACK_EXECUTABLE

_LOGGER = logging.getLogger(__name__)

UTIL_VOLUME_NAME = "util"
UTIL_MOUNT_PATH = "/util"
INSTALL_CONTAINER_NAME = "install-unpacker"

# Left out when the image root is extracted: kernel and kubelet mounts, and
# the scratch volume holding the unpacker itself.
ROOT_EXCLUDES = [
    "dev",
    "proc",
    "sys",
    UTIL_MOUNT_PATH.lstrip("/"),
    "etc/hostname",
    "etc/hosts",
    "etc/resolv.conf",
]


class ImageUnpacker(PodUnpacker):
    """Unpacks the root filesystem of an image.

    The bundle image has no tooling of its own, so an init container copies
    the `bundle-engine` executable from the unpack image into a shared
    scratch volume, and the bundle image runs it from there.

    The unpacked source is pinned to the digest of the image that actually
    ran, so a moving tag can be detected when the source is compared later.
    """

    source_type = SourceType.IMAGE

    def check_source(self, bundle: Bundle) -> None:
        """Raise if the bundle has no image configured."""
        if bundle.source.image is None:
            raise ConfigurationError("bundle source image configuration is unset")

    def update_pod_spec(self, bundle: Bundle, spec: PodSpec) -> None:
        """Run the bundle image with the extract command installed alongside it."""
        if (image := bundle.source.image) is None:
            raise ConfigurationError("bundle source image configuration is unset")
        util_mount = VolumeMount(name=UTIL_VOLUME_NAME, mount_path=UTIL_MOUNT_PATH)
        spec.init_containers = [
            Container(
                name=INSTALL_CONTAINER_NAME,
                image=self._config.unpack_image,
                image_pull_policy="IfNotPresent",
                command=["cp", "-Rv", f"/bin/{UNPACK_EXECUTABLE}", UTIL_MOUNT_PATH],
                volume_mounts=[util_mount],
            )
        ]
        container = spec.containers[0]
        container.image = image.ref
        container.image_pull_policy = "IfNotPresent"
        command = [f"{UTIL_MOUNT_PATH}/{UNPACK_EXECUTABLE}", *EXTRACT_ARGS, "/"]
        for path in ROOT_EXCLUDES:
            command.extend(["--exclude", path])
        container.command = command
        container.volume_mounts = [util_mount]
        spec.volumes = [Volume(name=UTIL_VOLUME_NAME, empty_dir=EmptyDirVolumeSource())]
        spec.image_pull_secrets = None
        if image.pull_secret:
            spec.image_pull_secrets = [LocalObjectReference(name=image.pull_secret)]

    def resolved_source(self, bundle: Bundle, pod: Pod) -> BundleSource:
        """Return the image source pinned to the digest that was unpacked."""
        status = pod.container_status(UNPACK_CONTAINER_NAME)
        if status is None or not status.image_id:
            raise UnpackException("bundle image digest not found")
        digest = status.image_id.removeprefix("docker-pullable://")
        _LOGGER.debug("Bundle %s resolved to image %s", bundle.name, digest)
        pull_secret = bundle.source.image.pull_secret if bundle.source.image else None
        return BundleSource(
            type=SourceType.IMAGE,
            image=ImageSource(ref=digest, pull_secret=pull_secret),
        )
