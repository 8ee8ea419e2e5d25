"""Catalog Service — the call contracts the request layer maps onto.

Every mutation is two-phase:

1. record: push a new immutable version (or tombstone) and update the index
2. republish: assemble the index snapshot and push ``catalog:latest``

With ``serialize_mutations`` both phases of a mutation run under one lock,
so the last catalog pushed always reflects every completed mutation.
Without it the phases of concurrent mutations may interleave and a stale
snapshot can be pushed last; the index itself stays consistent either way.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager, nullcontext
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict

from gitops_squared.core.assembler import assemble, colliding_key, entry_filename
from gitops_squared.core.catalog_index import CatalogIndex, resource_key, split_key
from gitops_squared.core.deadline import Deadline
from gitops_squared.core.errors import InvalidReference, NotFound, StoreError, StoreUnavailable
from gitops_squared.core.media_types import (
    ARTIFACT_TYPE_CATALOG,
    LATEST_TAG,
    MEDIA_TYPE_FLUX_CONFIG,
    MEDIA_TYPE_FLUX_CONTENT,
)
from gitops_squared.core.restore import RestoreProcedure
from gitops_squared.core.store_client import ArtifactStoreClient
from gitops_squared.core.versioner import ResourceVersioner, validate_coordinates
from gitops_squared.models.artifacts import PushResult
from gitops_squared.models.resources import (
    ResourceRequest,
    build_platform_resource,
    render_manifest,
)

logger = logging.getLogger(__name__)


class MutationResult(BaseModel):
    """Outcome of a publish or retract."""

    model_config = ConfigDict(frozen=True)

    namespace: str
    name: str
    digest: str
    version: str
    repository: str
    deleted: bool = False
    catalog_published: bool = True


class CatalogService:
    """Owns the index and wires versioner, assembler and restore together.

    Parameters
    ----------
    client:
        Store client for the registry.
    resource_prefix:
        Repository prefix for per-resource repos.
    catalog_repo:
        Repository of the aggregate catalog.
    serialize_mutations:
        Run record + republish of each mutation under one lock.
    default_namespace:
        Namespace used by ``apply`` when none is given.
    """

    def __init__(
        self,
        client: ArtifactStoreClient,
        resource_prefix: str = "gitops-squared/resources",
        catalog_repo: str = "gitops-squared/catalog",
        *,
        serialize_mutations: bool = True,
        default_namespace: str = "default",
        index: CatalogIndex | None = None,
        versioner: ResourceVersioner | None = None,
    ) -> None:
        self._client = client
        self._catalog_repo = catalog_repo
        self._default_namespace = default_namespace
        self.index = index or CatalogIndex()
        self.versioner = versioner or ResourceVersioner(client, resource_prefix)
        self._mutation_lock: threading.Lock | None = (
            threading.Lock() if serialize_mutations else None
        )
        self._restore = RestoreProcedure(client, self.versioner, self.index, self.push_catalog)

    @classmethod
    def from_settings(
        cls, settings: Any, transport: httpx.BaseTransport | None = None
    ) -> CatalogService:
        """Build a service and its client from a ``Settings`` instance."""
        return cls(
            ArtifactStoreClient.from_settings(settings, transport=transport),
            settings.resource_prefix,
            settings.catalog_repo,
            serialize_mutations=settings.serialize_mutations,
            default_namespace=settings.default_namespace,
        )

    @property
    def client(self) -> ArtifactStoreClient:
        return self._client

    @property
    def catalog_repo(self) -> str:
        return self._catalog_repo

    @contextmanager
    def _mutation(self) -> Iterator[None]:
        with self._mutation_lock or nullcontext():
            yield

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def push_catalog(self, *, deadline: Deadline | None = None) -> PushResult:
        """Assemble the current index snapshot and push ``catalog:latest``."""
        snapshot = self.index.snapshot()
        archive = assemble(snapshot)
        result = self._client.push(
            self._catalog_repo,
            MEDIA_TYPE_FLUX_CONTENT,
            archive,
            {},
            tag=LATEST_TAG,
            artifact_type=ARTIFACT_TYPE_CATALOG,
            config_media_type=MEDIA_TYPE_FLUX_CONFIG,
            deadline=deadline,
        )
        logger.info("Pushed catalog with %d resources", len(snapshot))
        return result

    def _republish(self, deadline: Deadline | None) -> bool:
        try:
            self.push_catalog(deadline=deadline)
        except StoreError as exc:
            logger.warning("Failed to push catalog: %s", exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _check_entry_filename(self, namespace: str, name: str) -> None:
        key = resource_key(namespace, name)
        other = colliding_key(self.index.keys(), key)
        if other is not None:
            raise InvalidReference(
                f"resource {key} would share catalog file {entry_filename(key)} with {other}"
            )

    def publish(
        self,
        namespace: str,
        name: str,
        manifest: bytes,
        *,
        version: str | None = None,
        deadline: Deadline | None = None,
    ) -> MutationResult:
        """Version ``manifest``, index it and republish the catalog.

        Registry failures on the versioned push propagate and leave the
        index untouched.  A failed republish is logged and reported in
        ``catalog_published``; the next mutation or restore repairs it.
        Coordinates that are not single DNS labels, or whose catalog file
        name is already taken by another resource, raise
        ``InvalidReference`` before anything is pushed.
        """
        validate_coordinates(namespace, name)
        with self._mutation():
            self._check_entry_filename(namespace, name)
            pushed = self.versioner.publish(
                namespace, name, manifest, version=version, deadline=deadline
            )
            self.index.set(namespace, name, manifest)
            published = self._republish(deadline)
        return MutationResult(
            namespace=namespace,
            name=name,
            digest=pushed.digest,
            version=pushed.version,
            repository=pushed.repository,
            catalog_published=published,
        )

    def apply(
        self,
        request: ResourceRequest,
        namespace: str | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> MutationResult:
        """Render a validated request stamped with its version, then publish."""
        namespace = namespace or self._default_namespace
        validate_coordinates(namespace, request.name)
        version = self.versioner.next_version()
        manifest = render_manifest(build_platform_resource(request, namespace, version))
        return self.publish(namespace, request.name, manifest, version=version, deadline=deadline)

    def retract(
        self, namespace: str, name: str, *, deadline: Deadline | None = None
    ) -> MutationResult:
        """Tombstone a live resource, drop it from the index and republish.

        Raises ``NotFound`` without touching the registry when the resource
        is not in the index.
        """
        with self._mutation():
            if self.index.get(namespace, name) is None:
                raise NotFound(f"resource {namespace}/{name} not found")
            pushed = self.versioner.retract(namespace, name, deadline=deadline)
            self.index.delete(namespace, name)
            published = self._republish(deadline)
        return MutationResult(
            namespace=namespace,
            name=name,
            digest=pushed.digest,
            version=pushed.version,
            repository=pushed.repository,
            deleted=True,
            catalog_published=published,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, namespace: str, name: str) -> bytes | None:
        """Latest manifest of a live resource, or None."""
        return self.index.get(namespace, name)

    def list(self) -> dict[str, bytes]:
        """All live resources, sorted by key."""
        snapshot = self.index.snapshot()
        return {key: snapshot[key] for key in sorted(snapshot)}

    def list_names(self, namespace: str | None = None) -> list[tuple[str, str]]:
        """``(namespace, name)`` pairs of live resources, sorted."""
        pairs = [split_key(key) for key in self.index.keys()]
        if namespace is not None:
            pairs = [p for p in pairs if p[0] == namespace]
        return pairs

    def registry_state(self, *, deadline: Deadline | None = None) -> dict[str, bytes]:
        """Live resources as the registry's ``latest`` tags describe them.

        Read-only: neither the index nor the catalog is touched.
        """
        entries = self._restore.collect(deadline=deadline)
        return {key: entries[key] for key in sorted(entries)}

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def restore(self, *, deadline: Deadline | None = None) -> int:
        """Rebuild the index from the registry and republish the catalog."""
        with self._mutation():
            return self._restore.run(deadline=deadline)

    def startup(self, *, deadline: Deadline | None = None) -> int:
        """Restore, continuing with an empty index if the registry is down."""
        try:
            return self.restore(deadline=deadline)
        except StoreUnavailable as exc:
            logger.warning("Failed to restore catalog from registry: %s", exc)
            logger.warning("Starting with empty catalog (registry may not be available yet)")
            return 0

    def close(self) -> None:
        self._client.close()
