"""Exceptions related to bundle-engine."""

__all__ = [
    "BundleException",
    "ConfigurationError",
    "ClusterException",
    "ObjectNotFoundError",
    "AlreadyExistsError",
    "UnpackException",
    "UnpackFailedError",
    "UnexpectedPodPhaseError",
    "PayloadError",
    "ContentValidationError",
    "ChartException",
    "CatalogException",
]


class BundleException(Exception):
    """Generic base exception used for this library."""


class ConfigurationError(BundleException):
    """Raised when a Bundle or BundleDeployment is misconfigured.

    These are not retried; the object must be corrected by the user.
    """


class ClusterException(BundleException):
    """Raised when a call to the cluster API fails."""


class ObjectNotFoundError(ClusterException):
    """Raised when an object does not exist in the cluster."""


class AlreadyExistsError(ClusterException):
    """Raised when creating an object that already exists."""


class UnpackException(BundleException):
    """Raised when bundle content could not be unpacked."""


class UnpackFailedError(UnpackException):
    """Raised when the unpack pod terminated with a failure."""

    def __init__(self, logs: str) -> None:
        super().__init__(f"unpack failed: {logs}")
        self.logs = logs


class UnexpectedPodPhaseError(UnpackException):
    """Raised when the unpack pod reports a phase the protocol does not know."""

    def __init__(self, phase: str | None) -> None:
        super().__init__(f"unexpected pod phase: {phase}")
        self.phase = phase


class PayloadError(UnpackException):
    """Raised when the unpack pod output is not a valid bundle payload."""


class ContentValidationError(BundleException):
    """Raised when bundle content is not structurally valid."""


class ChartException(ContentValidationError):
    """Raised when bundle content is not a valid chart."""


class CatalogException(ContentValidationError):
    """Raised when bundle content is not a valid file-based catalog."""
