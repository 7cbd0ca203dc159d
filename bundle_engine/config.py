"""Configuration objects for bundle-engine."""

from dataclasses import dataclass
from pathlib import Path
import tempfile

DEFAULT_SYSTEM_NAMESPACE = "rukpak-system"
DEFAULT_UNPACK_IMAGE = "quay.io/operator-framework/rukpak:main"


@dataclass
class UnpackerConfig:
    """Configuration shared by the source unpackers."""

    provisioner_name: str
    """Name of the provisioner, used to name the unpack pods it owns."""

    config_map_namespace: str = DEFAULT_SYSTEM_NAMESPACE
    """Namespace holding the ConfigMaps referenced by bundles."""

    pod_namespace: str = DEFAULT_SYSTEM_NAMESPACE
    """Namespace where unpack pods run."""

    unpack_image: str = DEFAULT_UNPACK_IMAGE
    """Image containing the `bundle-engine` executable."""

    git_cache_dir: Path = Path(tempfile.gettempdir()) / "bundle-engine-cache"
    """Directory holding local clones of git sources."""


@dataclass
class KubernetesConfig:
    """Configuration for talking to the cluster API."""

    in_cluster: bool = False
    """Load credentials from the pod service account instead of a kubeconfig."""

    context: str | None = None
    """The kubeconfig context to use."""

    request_timeout: float | None = 30.0
    """Timeout in seconds for each API request."""
