"""Error taxonomy for depot transfers and installs."""

from __future__ import annotations


class DepotError(Exception):
    """Base class for all depotkit errors."""


class RequestFailed(DepotError):
    """Raised when a content server answers with a non-success status.

    Attributes:
        status_code: HTTP status code of the response
        reason: Reason phrase of the response
        url: Requested URL
    """

    def __init__(self, message: str, *, status_code: int, reason: str = "", url: str = ""):
        self.status_code = status_code
        self.reason = reason
        self.url = url
        super().__init__(message)


class ProtocolViolation(DepotError):
    """Raised when a response lacks required metadata or has the wrong shape."""


class IntegrityViolation(DepotError):
    """Raised when received data does not match an advertised length.

    Attributes:
        expected: Expected byte count
        actual: Actual byte count
    """

    def __init__(
        self,
        message: str,
        *,
        expected: int | None = None,
        actual: int | None = None,
    ):
        self.expected = expected
        self.actual = actual
        super().__init__(message)


class InvalidArgument(DepotError, ValueError):
    """Raised when a caller passes a chunk or node without identifying data."""


class FetchTimeout(DepotError):
    """Raised when a response body is not read within its deadline."""


class ResourceUnavailable(DepotError):
    """Raised when no content server or resource could be obtained."""


class ManifestUnavailable(ResourceUnavailable):
    """Raised when the manifest for a target version cannot be obtained."""


class DiffUnavailable(DepotError):
    """Raised when the changed-file list between two versions is unavailable."""


class NotEntitled(DepotError):
    """Raised when the ownership check for a depot fails."""


class StaleCatalog(DepotError):
    """Raised when the installed version is newer than the catalog's version.

    Attributes:
        installed: Locally installed version
        latest: Version reported by the catalog
    """

    def __init__(self, message: str, *, installed: int, latest: int):
        self.installed = installed
        self.latest = latest
        super().__init__(message)


class MaterializeError(DepotError):
    """Raised when writing planned files fails part-way through a depot."""
