"""The outcome of a single attempt to unpack a bundle."""

from dataclasses import dataclass
from enum import StrEnum

from bundle_engine.fs import BundleFS
from bundle_engine.manifest import BundleSource


class State(StrEnum):
    """How far unpacking has progressed."""

    PENDING = "Pending"
    """Unpacking has not started, e.g. the unpack pod is being created."""

    UNPACKING = "Unpacking"
    """Unpacking is in progress."""

    UNPACKED = "Unpacked"
    """The bundle content is available."""


@dataclass(frozen=True, kw_only=True)
class Result:
    """The outcome of an attempt to unpack a bundle.

    A result is produced fresh by every call and is never persisted here;
    callers record whatever they need in the Bundle status.
    """

    state: State
    """The state of unpacking."""

    content: BundleFS | None = None
    """The bundle content, set only when unpacked."""

    resolved_source: BundleSource | None = None
    """A copy of the source that was unpacked, set only when unpacked.

    This is compared with the declared source to detect that the source
    changed since the content was unpacked.
    """

    message: str = ""
    """A human readable description of the state."""

    def __post_init__(self) -> None:
        if self.state == State.UNPACKED and (
            self.content is None or self.resolved_source is None
        ):
            raise ValueError("An unpacked result requires content and a resolved source")
        if self.state != State.UNPACKED and self.content is not None:
            raise ValueError(f"A {self.state} result can't have content")
