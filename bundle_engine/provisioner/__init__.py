"""The provisioner module.

A provisioner validates and renders the unpacked content of the bundles
that name it in `provisionerClassName`. Provisioners are looked up by their
stable identifier:

```python
from bundle_engine.provisioner import get_provisioner

provisioner = get_provisioner("core-rukpak-io-helm")
content = await provisioner.handle_bundle(result.content, bundle)
```
"""

import logging

from bundle_engine.exceptions import ConfigurationError

from . import catalog, plain
from .catalog import CatalogProvisioner
from .helm import HelmProvisioner, RenderedDeployment
from .helm import helm
from .plain import PlainProvisioner
from .provisioner import Provisioner

__all__ = [
    "CatalogProvisioner",
    "HelmProvisioner",
    "PROVISIONERS",
    "PlainProvisioner",
    "Provisioner",
    "RenderedDeployment",
    "get_provisioner",
]

_LOGGER = logging.getLogger(__name__)

PROVISIONERS: dict[str, type[Provisioner]] = {
    plain.PROVISIONER_ID: PlainProvisioner,
    helm.PROVISIONER_ID: HelmProvisioner,
    catalog.PROVISIONER_ID: CatalogProvisioner,
}


def get_provisioner(provisioner_id: str) -> Provisioner:
    """Return the provisioner with the given identifier."""
    if (cls := PROVISIONERS.get(provisioner_id)) is None:
        raise ConfigurationError(
            f"unknown provisioner {provisioner_id!r}, expected one of {sorted(PROVISIONERS)}"
        )
    _LOGGER.debug("Using provisioner %s", provisioner_id)
    return cls()
