"""Registry error taxonomy.

Every failure the store client can raise derives from ``StoreError`` so
callers can catch the whole family, while each kind stays distinct for
mapping to an absent-resource response, a skipped restore entry, or a
failed request.  Nothing in this package retries on these errors.
"""

from __future__ import annotations


class StoreError(RuntimeError):
    """Base class for artifact store failures."""


class StoreUnavailable(StoreError):
    """Raised when the registry cannot be reached (refused, reset, timeout)."""


class DeadlineExceeded(StoreUnavailable):
    """Raised when the caller's deadline expired before a registry call."""


class NotFound(StoreError):
    """Raised when a repository, manifest, blob or indexed resource is absent."""


class MalformedArtifact(StoreError):
    """Raised when pulled content cannot be interpreted as a resource artifact."""


class InvalidReference(StoreError):
    """Raised for malformed repository paths, tags or digests."""


class RegistryError(StoreError):
    """Raised for an unexpected registry response status."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code
