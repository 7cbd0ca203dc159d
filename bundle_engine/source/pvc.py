"""Unpack bundle content stored in a PersistentVolumeClaim."""

from bundle_engine.exceptions import ConfigurationError
from bundle_engine.manifest import (
    Bundle,
    PersistentVolumeClaimVolumeSource,
    PodSpec,
    SourceType,
    Volume,
    VolumeMount,
)

from .pod import PodUnpacker, EXTRACT_ARGS, UNPACK_EXECUTABLE

BUNDLE_VOLUME_NAME = "bundle"
BUNDLE_MOUNT_PATH = "/bundle"


class PersistentVolumeClaimUnpacker(PodUnpacker):
    """Unpacks the root directory of a volume claim.

    The unpack pod runs the unpack image with the claim mounted read-only.
    """

    source_type = SourceType.PERSISTENT_VOLUME_CLAIM

    def check_source(self, bundle: Bundle) -> None:
        """Raise if the bundle has no volume claim configured."""
        if bundle.source.persistent_volume_claim is None:
            raise ConfigurationError(
                "bundle source persistentVolumeClaim configuration is unset"
            )

    def update_pod_spec(self, bundle: Bundle, spec: PodSpec) -> None:
        """Run the extract command against the mounted claim."""
        if (claim := bundle.source.persistent_volume_claim) is None:
            raise ConfigurationError(
                "bundle source persistentVolumeClaim configuration is unset"
            )
        container = spec.containers[0]
        container.image = self._config.unpack_image
        container.image_pull_policy = "IfNotPresent"
        container.command = [UNPACK_EXECUTABLE, *EXTRACT_ARGS, BUNDLE_MOUNT_PATH]
        container.volume_mounts = [
            VolumeMount(
                name=BUNDLE_VOLUME_NAME, mount_path=BUNDLE_MOUNT_PATH, read_only=True
            )
        ]
        spec.init_containers = None
        spec.image_pull_secrets = None
        spec.volumes = [
            Volume(
                name=BUNDLE_VOLUME_NAME,
                persistent_volume_claim=PersistentVolumeClaimVolumeSource(
                    claim_name=claim.name,
                    read_only=True,
                ),
            )
        ]
