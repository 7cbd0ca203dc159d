"""The interface implemented by each source strategy and the resolver that dispatches to them."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
import logging
from time import perf_counter

from bundle_engine.exceptions import BundleException, ConfigurationError
from bundle_engine.manifest import Bundle, SourceType

from .result import Result

_LOGGER = logging.getLogger(__name__)


class Unpacker(ABC):
    """Turns the declared source of a Bundle into bundle content."""

    source_type: SourceType
    """The kind of source handled by this unpacker."""

    @abstractmethod
    async def unpack(self, bundle: Bundle) -> Result:
        """Unpack the content of the bundle.

        Implementations are called repeatedly for the same bundle and must
        derive all state from the cluster on each call. A strategy that can
        make progress only in the background returns a pending or unpacking
        result and expects to be called again later.
        """

    def check_source_type(self, bundle: Bundle) -> None:
        """Raise if the bundle does not declare the kind of source this unpacker handles."""
        if bundle.source.type != self.source_type:
            raise ConfigurationError(
                f"bundle source type {bundle.source.type!r} not supported"
            )


class Resolver(Unpacker):
    """Dispatches each bundle to the unpacker for its kind of source."""

    def __init__(self, unpackers: Mapping[str, Unpacker]) -> None:
        """Initialize Resolver with unpackers keyed by source type."""
        self._unpackers = dict(unpackers)

    @property
    def source_types(self) -> list[str]:
        """The kinds of source that can be resolved."""
        return sorted(self._unpackers)

    async def unpack(self, bundle: Bundle) -> Result:
        """Unpack the content of the bundle with the unpacker for its source."""
        source_type = bundle.source.type
        if (unpacker := self._unpackers.get(source_type)) is None:
            raise ConfigurationError(f"bundle source type {source_type!r} not supported")
        start = perf_counter()
        try:
            result = await unpacker.unpack(bundle)
        except BundleException as err:
            _LOGGER.debug(
                "Unpack %s (%s) failed after %0.2fs: %s",
                bundle.resource_id,
                source_type,
                perf_counter() - start,
                err,
            )
            raise
        _LOGGER.debug(
            "Unpack %s (%s) is %s after %0.2fs: %s",
            bundle.resource_id,
            source_type,
            result.state,
            perf_counter() - start,
            result.message,
        )
        return result
