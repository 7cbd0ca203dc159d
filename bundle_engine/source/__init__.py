"""The source module.

This module turns the declared source of a Bundle into its content. There is
one unpacker per kind of source and a `Resolver` that dispatches a bundle to
the unpacker for its kind:

```python
from bundle_engine.cluster.kubernetes import KubernetesCluster
from bundle_engine.config import KubernetesConfig, UnpackerConfig
from bundle_engine.source import default_resolver, State

cluster = KubernetesCluster.from_config(KubernetesConfig())
resolver = default_resolver(cluster, UnpackerConfig(provisioner_name="core"))
result = await resolver.unpack(bundle)
if result.state == State.UNPACKED:
    print(list(result.content))
```

Supported Source Types:
    - configmaps: read directly from immutable ConfigMaps
    - persistentVolumeClaim: read by an unpack pod mounting the claim
    - image: read by an unpack pod running the bundle image
    - git: cloned directly from a git repository
"""

from bundle_engine.cluster import Cluster
from bundle_engine.config import UnpackerConfig
from bundle_engine.manifest import SourceType

from .cache import GitCache
from .configmaps import ConfigMapsUnpacker
from .git import GitUnpacker
from .image import ImageUnpacker
from .pvc import PersistentVolumeClaimUnpacker
from .result import Result, State
from .unpacker import Resolver, Unpacker

__all__ = [
    "ConfigMapsUnpacker",
    "GitUnpacker",
    "ImageUnpacker",
    "PersistentVolumeClaimUnpacker",
    "Resolver",
    "Result",
    "State",
    "Unpacker",
    "default_resolver",
]


def default_resolver(cluster: Cluster, config: UnpackerConfig) -> Resolver:
    """Return a resolver for every supported kind of source."""
    return Resolver(
        {
            SourceType.CONFIG_MAPS: ConfigMapsUnpacker(
                cluster, config.config_map_namespace
            ),
            SourceType.PERSISTENT_VOLUME_CLAIM: PersistentVolumeClaimUnpacker(
                cluster, config
            ),
            SourceType.IMAGE: ImageUnpacker(cluster, config),
            SourceType.GIT: GitUnpacker(GitCache(config.git_cache_dir)),
        }
    )
