"""Resource Versioner — turns current desired state into immutable versions.

Each publish stores the manifest under a fresh ``v<unix-seconds>`` tag and
moves ``latest``; each retract does the same with a tombstone.  Readers
resolve resources only through ``latest``; the version tags form the
audit trail.
"""

from __future__ import annotations

import logging
import re

from gitops_squared.core.deadline import Deadline
from gitops_squared.core.errors import InvalidReference
from gitops_squared.core.media_types import (
    ANNOTATION_RESOURCE_NAME,
    ANNOTATION_RESOURCE_NAMESPACE,
    ANNOTATION_RESOURCE_VERSION,
    ANNOTATION_TITLE,
    LATEST_TAG,
    MEDIA_TYPE_RESOURCE_YAML,
    RESOURCE_LAYER_TITLE,
    tombstone_content,
)
from gitops_squared.core.store_client import ArtifactStoreClient
from gitops_squared.core.version_clock import VersionClock, parse_version_tag
from gitops_squared.models.artifacts import PulledArtifact, PushResult
from gitops_squared.models.resources import NAME_PATTERN

logger = logging.getLogger(__name__)

_LABEL_RE = re.compile(NAME_PATTERN)


def validate_coordinates(namespace: str, name: str) -> None:
    """Require namespace and name to each be a single DNS label.

    Restore reads coordinates back from exactly two path segments, so a
    resource stored under any other shape could never be restored.
    """
    for what, value in (("namespace", namespace), ("name", name)):
        if not isinstance(value, str) or not _LABEL_RE.fullmatch(value):
            raise InvalidReference(f"invalid resource {what}: {value!r}")


class ResourceVersioner:
    """Creates, retracts and reads back resource artifact versions.

    Parameters
    ----------
    client:
        Store client for the registry.
    resource_prefix:
        Repository prefix, e.g. ``gitops-squared/resources``.
    clock:
        Version tag source; defaults to the client's clock.
    """

    def __init__(
        self,
        client: ArtifactStoreClient,
        resource_prefix: str,
        clock: VersionClock | None = None,
    ) -> None:
        self._client = client
        self._prefix = resource_prefix.rstrip("/")
        self._clock = clock or client.version_clock

    @property
    def resource_prefix(self) -> str:
        return self._prefix

    def repo_path(self, namespace: str, name: str) -> str:
        validate_coordinates(namespace, name)
        return f"{self._prefix}/{namespace}/{name}"

    def next_version(self) -> str:
        """Allocate the tag the next publish will use."""
        return self._clock.next_tag()

    def publish(
        self,
        namespace: str,
        name: str,
        manifest: bytes,
        *,
        version: str | None = None,
        deadline: Deadline | None = None,
    ) -> PushResult:
        """Store ``manifest`` as a new immutable version and move ``latest``."""
        version = version or self.next_version()
        result = self._client.push(
            self.repo_path(namespace, name),
            MEDIA_TYPE_RESOURCE_YAML,
            manifest,
            {
                ANNOTATION_TITLE: RESOURCE_LAYER_TITLE,
                ANNOTATION_RESOURCE_NAME: name,
                ANNOTATION_RESOURCE_NAMESPACE: namespace,
                ANNOTATION_RESOURCE_VERSION: version,
            },
            tag=version,
            manifest_annotations={
                ANNOTATION_RESOURCE_NAME: name,
                ANNOTATION_RESOURCE_NAMESPACE: namespace,
            },
            deadline=deadline,
        )
        logger.info(
            "Published %s/%s version=%s digest=%s",
            namespace, name, result.version, result.digest[:19],
        )
        return result

    def retract(
        self, namespace: str, name: str, *, deadline: Deadline | None = None
    ) -> PushResult:
        """Push a tombstone version; ``latest`` then resolves to it."""
        version = self.next_version()
        result = self._client.push_tombstone(
            self.repo_path(namespace, name),
            tombstone_content(namespace, name),
            MEDIA_TYPE_RESOURCE_YAML,
            {
                ANNOTATION_RESOURCE_NAME: name,
                ANNOTATION_RESOURCE_NAMESPACE: namespace,
                ANNOTATION_RESOURCE_VERSION: version,
            },
            tag=version,
            deadline=deadline,
        )
        logger.info("Retracted %s/%s tombstone version=%s", namespace, name, result.version)
        return result

    def fetch_latest(
        self, namespace: str, name: str, *, deadline: Deadline | None = None
    ) -> PulledArtifact:
        """Pull whatever ``latest`` points at, tombstone or not."""
        return self._client.pull(self.repo_path(namespace, name), LATEST_TAG, deadline=deadline)

    def fetch_version(
        self, namespace: str, name: str, version: str, *, deadline: Deadline | None = None
    ) -> PulledArtifact:
        """Pull one historical version by tag or digest."""
        return self._client.pull(self.repo_path(namespace, name), version, deadline=deadline)

    def history(
        self, namespace: str, name: str, *, deadline: Deadline | None = None
    ) -> list[str]:
        """Version tags of a resource, oldest first (``latest`` excluded)."""
        tags = self._client.list_tags(self.repo_path(namespace, name), deadline=deadline)
        versions = [t for t in tags if parse_version_tag(t) is not None]
        return sorted(versions, key=lambda t: parse_version_tag(t) or 0)
