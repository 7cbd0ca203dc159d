"""Provisioner for bundles of plain kubernetes manifests."""

from bundle_engine.fs import BundleFS
from bundle_engine.manifest import Bundle

from .provisioner import Provisioner

# The unique plain provisioner ID
PROVISIONER_ID = "core-rukpak-io-plain"


class PlainProvisioner(Provisioner):
    """Plain bundles are a directory of manifests applied as is."""

    provisioner_id = PROVISIONER_ID

    async def handle_bundle(self, tree: BundleFS, bundle: Bundle) -> BundleFS:
        return tree
