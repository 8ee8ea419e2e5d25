"""OCI media types and annotation keys shared with the downstream reconciler."""

from __future__ import annotations

# OCI standard types
OCI_IMAGE_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_EMPTY_CONFIG = "application/vnd.oci.empty.v1+json"
OCI_EMPTY_CONFIG_BYTES = b"{}"

# Resource artifacts
ARTIFACT_TYPE_RESOURCE = "application/vnd.gitops-squared.resource.v1"
ARTIFACT_TYPE_CATALOG = "application/vnd.gitops-squared.catalog.v1"
MEDIA_TYPE_RESOURCE_YAML = "application/vnd.gitops-squared.manifest.v1+yaml"

# Flux OCIRepository expects these for the catalog
MEDIA_TYPE_FLUX_CONTENT = "application/vnd.cncf.flux.content.v1.tar+gzip"
MEDIA_TYPE_FLUX_CONFIG = "application/vnd.cncf.flux.config.v1+json"

# Annotation keys
ANNOTATION_CREATED = "org.opencontainers.image.created"
ANNOTATION_TITLE = "org.opencontainers.image.title"
ANNOTATION_RESOURCE_NAME = "io.gitops-squared.resource.name"
ANNOTATION_RESOURCE_NAMESPACE = "io.gitops-squared.resource.namespace"
ANNOTATION_RESOURCE_VERSION = "io.gitops-squared.resource.version"
ANNOTATION_RESOURCE_DELETED = "io.gitops-squared.resource.deleted"

RESOURCE_LAYER_TITLE = "platformresource.yaml"
LATEST_TAG = "latest"


def tombstone_content(namespace: str, name: str) -> bytes:
    """Deletion marker payload stored in a tombstone layer."""
    return f"# deleted: {namespace}/{name}\n".encode("utf-8")


def is_tombstone(annotations: dict[str, str]) -> bool:
    return annotations.get(ANNOTATION_RESOURCE_DELETED) == "true"
