"""Unpack bundle content stored in ConfigMaps."""

import logging
import posixpath

from bundle_engine.cluster import Cluster
from bundle_engine.exceptions import (
    ConfigurationError,
    ContentValidationError,
    ObjectNotFoundError,
)
from bundle_engine.fs import BundleFS, clean_path
from bundle_engine.manifest import Bundle, BundleSource, SourceType

from .result import Result, State
from .unpacker import Unpacker

_LOGGER = logging.getLogger(__name__)


def _parent_dirs(path: str) -> list[str]:
    parents = []
    while parent := posixpath.dirname(path):
        parents.append(parent)
        path = parent
    return parents


class ConfigMapsUnpacker(Unpacker):
    """Reads bundle content directly from ConfigMaps in a single pass.

    Each ConfigMap's files are placed in the directory named by its entry
    in the source. ConfigMaps must be immutable so that content already
    unpacked can't silently change underneath a deployment.
    """

    source_type = SourceType.CONFIG_MAPS

    def __init__(self, cluster: Cluster, config_map_namespace: str) -> None:
        """Initialize ConfigMapsUnpacker."""
        self._cluster = cluster
        self._namespace = config_map_namespace

    async def unpack(self, bundle: Bundle) -> Result:
        """Unpack the content of the bundle."""
        self.check_source_type(bundle)
        if bundle.source.config_maps is None:
            raise ConfigurationError("bundle source configmaps configuration is unset")

        files: dict[str, bytes] = {}
        files_seen: dict[str, str] = {}
        dirs_seen: dict[str, str] = {}
        for cm_source in bundle.source.config_maps:
            cm_name = cm_source.config_map.name
            directory = clean_path(cm_source.path)
            try:
                config_map = await self._cluster.get_config_map(self._namespace, cm_name)
            except ObjectNotFoundError as err:
                raise ObjectNotFoundError(
                    f"get configmap {self._namespace}/{cm_name}: {err}"
                ) from err

            # TODO: Forbid deletion of referenced configmaps, since an immutable
            # configmap can still be deleted and recreated with new content.
            if not config_map.immutable:
                raise ConfigurationError(
                    f"configmap {self._namespace}/{cm_name} is not immutable: all bundle configmaps must be immutable"
                )

            for filename, data in sorted(config_map.files().items()):
                path = clean_path(posixpath.join(directory, filename))
                parents = _parent_dirs(path)
                # A path collides with a file or directory from another entry,
                # and its parent directories collide with files.
                for conflict, owners in (
                    (path, files_seen),
                    (path, dirs_seen),
                    *((parent, files_seen) for parent in parents),
                ):
                    if (existing := owners.get(conflict)) is not None:
                        raise ContentValidationError(
                            f"configmap {self._namespace}/{cm_name} contains path {conflict!r} which is already referenced by configmap {self._namespace}/{existing}"
                        )
                files_seen[path] = cm_name
                for parent in parents:
                    dirs_seen.setdefault(parent, cm_name)
                files[path] = data

        _LOGGER.debug(
            "Read %d files from %d configmaps for bundle %s",
            len(files),
            len(bundle.source.config_maps),
            bundle.name,
        )
        resolved = bundle.source.deep_copy()
        return Result(
            state=State.UNPACKED,
            content=BundleFS(files),
            resolved_source=BundleSource(
                type=SourceType.CONFIG_MAPS, config_maps=resolved.config_maps
            ),
        )
