"""Restore Procedure — rebuild the Catalog Index from the registry.

1. list repositories under the resource prefix
2. parse ``namespace/name`` from each path (exactly two segments)
3. pull ``latest``
4. drop tombstones, and any resource whose catalog file name is taken
   by a resource earlier in key order
5. replace the index with the survivors
6. rebuild and republish the catalog, even when nothing was restored

A broken resource is logged and skipped; only a failure to enumerate the
registry or to publish the catalog reaches the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from gitops_squared.core.assembler import entry_filename
from gitops_squared.core.catalog_index import CatalogIndex, resource_key
from gitops_squared.core.deadline import Deadline
from gitops_squared.core.errors import StoreError
from gitops_squared.core.store_client import ArtifactStoreClient
from gitops_squared.core.versioner import ResourceVersioner
from gitops_squared.models.artifacts import ResourceRef

logger = logging.getLogger(__name__)


def parse_resource_repo(repository: str, resource_prefix: str) -> ResourceRef | None:
    """Map ``<prefix>/<namespace>/<name>`` to a ResourceRef, or None if malformed."""
    wanted = resource_prefix.rstrip("/") + "/"
    if not repository.startswith(wanted):
        return None
    parts = repository[len(wanted):].split("/")
    if len(parts) != 2 or not all(parts):
        return None
    return ResourceRef(repository=repository, namespace=parts[0], name=parts[1])


def _without_file_collisions(entries: dict[str, bytes]) -> dict[str, bytes]:
    """Keep the first key, in sorted order, for each catalog file name."""
    kept: dict[str, bytes] = {}
    owners: dict[str, str] = {}
    for key in sorted(entries):
        filename = entry_filename(key)
        if filename in owners:
            logger.warning(
                "Skipping %s: catalog file %s already belongs to %s",
                key, filename, owners[filename],
            )
            continue
        owners[filename] = key
        kept[key] = entries[key]
    return kept


class RestoreProcedure:
    """Repopulates a CatalogIndex from ``latest`` tags and republishes.

    Parameters
    ----------
    client:
        Store client used to enumerate repositories.
    versioner:
        Used to pull each resource's ``latest``.
    index:
        The index to repopulate.
    publish_catalog:
        Callable that assembles and pushes the catalog from ``index``.
    """

    def __init__(
        self,
        client: ArtifactStoreClient,
        versioner: ResourceVersioner,
        index: CatalogIndex,
        publish_catalog: Callable[..., object],
    ) -> None:
        self._client = client
        self._versioner = versioner
        self._index = index
        self._publish_catalog = publish_catalog

    def discover(self, *, deadline: Deadline | None = None) -> list[ResourceRef]:
        """Resource repositories currently in the registry."""
        prefix = self._versioner.resource_prefix
        refs: list[ResourceRef] = []
        for repository in self._client.list_repositories(prefix, deadline=deadline):
            ref = parse_resource_repo(repository, prefix)
            if ref is None:
                logger.debug("Skipping malformed resource repository %s", repository)
                continue
            refs.append(ref)
        return refs

    def collect(self, *, deadline: Deadline | None = None) -> dict[str, bytes]:
        """Pull every live resource's latest manifest, skipping failures."""
        entries: dict[str, bytes] = {}
        for ref in self.discover(deadline=deadline):
            try:
                artifact = self._versioner.fetch_latest(ref.namespace, ref.name, deadline=deadline)
            except StoreError as exc:
                logger.warning("Failed to pull %s: %s", ref.key, exc)
                continue
            if artifact.deleted:
                logger.debug("Skipping tombstoned resource %s", ref.key)
                continue
            entries[resource_key(ref.namespace, ref.name)] = artifact.data
        return _without_file_collisions(entries)

    def run(self, *, deadline: Deadline | None = None) -> int:
        """Restore the index and republish the catalog; returns the restored count."""
        entries = self.collect(deadline=deadline)
        self._index.replace_all(entries)
        logger.info("Restored %d resources from registry", len(entries))
        self._publish_catalog(deadline=deadline)
        return len(entries)
