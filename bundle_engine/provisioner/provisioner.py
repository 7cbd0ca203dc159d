"""The interface implemented by each content family."""

from abc import ABC, abstractmethod
from typing import Any

from bundle_engine.exceptions import ConfigurationError
from bundle_engine.fs import BundleFS
from bundle_engine.manifest import Bundle, BundleDeployment


class Provisioner(ABC):
    """Validates and renders the content of bundles of one content family.

    Handlers are called after the bundle content is unpacked. They never
    modify the tree they are given; a handler that reshapes content returns
    a new tree.
    """

    provisioner_id: str
    """Stable identifier used in `provisionerClassName` and on owned objects."""

    supports_deployment: bool = False
    """Whether `handle_bundle_deployment` is implemented."""

    @abstractmethod
    async def handle_bundle(self, tree: BundleFS, bundle: Bundle) -> BundleFS:
        """Validate the unpacked content of a bundle.

        Returns the content to store for the bundle, which is either `tree`
        itself or a normalized copy of it.
        """

    async def handle_bundle_deployment(
        self, tree: BundleFS, bundle_deployment: BundleDeployment
    ) -> Any:
        """Load the bundle content for deployment with the deployment's config."""
        raise ConfigurationError(
            f"provisioner {self.provisioner_id!r} does not handle bundle deployments"
        )
