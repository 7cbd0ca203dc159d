"""Provisioner for bundles containing a chart."""

from dataclasses import dataclass, field
import logging
from typing import IO, Any

from bundle_engine import archive
from bundle_engine.exceptions import ConfigurationError
from bundle_engine.fs import BundleFS
from bundle_engine.manifest import Bundle, BundleDeployment

from ..provisioner import Provisioner
from .chart import Chart, load_archive, read_values

__all__ = [
    "CHART_BASE_DIR",
    "Config",
    "HelmProvisioner",
    "PROVISIONER_ID",
    "RenderedDeployment",
    "deploy_namespace",
    "get_chart",
    "parse_config",
]

_LOGGER = logging.getLogger(__name__)

# The unique helm provisioner ID
PROVISIONER_ID = "core-rukpak-io-helm"

# Loose chart content is placed in this directory before loading
CHART_BASE_DIR = "chart"


@dataclass
class Config:
    """Deployment configuration for a chart."""

    namespace: str
    """The namespace the chart is installed into."""

    values: dict[str, Any] = field(default_factory=dict)
    """Values that override the chart defaults."""


@dataclass
class RenderedDeployment:
    """A chart loaded with the configuration of a deployment."""

    chart: Chart
    namespace: str
    values: dict[str, Any]


def parse_config(bundle_deployment: BundleDeployment) -> Config:
    """Parse the configuration blob of a deployment."""
    raw = bundle_deployment.config or {}
    if not isinstance(raw, dict):
        raise ConfigurationError("bundle deployment config must be an object")
    namespace = raw.get("namespace")
    if namespace is not None and not isinstance(namespace, str):
        raise ConfigurationError("bundle deployment config namespace must be a string")
    if not namespace:
        raise ConfigurationError(
            "install namespace not defined: set .spec.config.namespace"
        )
    values: dict[str, Any] = {}
    if (raw_values := raw.get("values")) is not None:
        if not isinstance(raw_values, str):
            raise ConfigurationError("bundle deployment config values must be a string")
        try:
            values = read_values(raw_values)
        except ValueError as err:
            raise ConfigurationError(f"read chart values: {err}") from err
    return Config(namespace=namespace, values=values)


def deploy_namespace(bundle_deployment: BundleDeployment) -> str:
    """Return the namespace a deployment installs into."""
    return parse_config(bundle_deployment).namespace


def _load_chart(fileobj: IO[bytes]) -> Chart:
    chart = load_archive(fileobj)
    chart.validate()
    return chart


async def get_chart(tree: BundleFS) -> Chart:
    """Load and validate the chart in a tree with a single base directory."""
    return await archive.load_archive(tree, _load_chart)


class HelmProvisioner(Provisioner):
    """Chart bundles are validated when unpacked and loaded for each deployment."""

    provisioner_id = PROVISIONER_ID
    supports_deployment = True

    async def handle_bundle(self, tree: BundleFS, bundle: Bundle) -> BundleFS:
        wrapped = tree.with_base_dir(CHART_BASE_DIR)
        chart = await get_chart(wrapped)
        _LOGGER.debug(
            "Bundle %s contains chart %s %s",
            bundle.name,
            chart.name,
            chart.metadata.version,
        )
        return wrapped

    async def handle_bundle_deployment(
        self, tree: BundleFS, bundle_deployment: BundleDeployment
    ) -> RenderedDeployment:
        config = parse_config(bundle_deployment)
        chart = await get_chart(tree.with_base_dir(CHART_BASE_DIR))
        return RenderedDeployment(
            chart=chart, namespace=config.namespace, values=config.values
        )
