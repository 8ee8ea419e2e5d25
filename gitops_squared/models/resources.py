"""Platform resource models and their Kubernetes manifest form.

A ``ResourceRequest`` is what a client declares.  It is validated here,
at the request boundary, and rendered into a ``PlatformResource`` YAML
manifest; the core only ever handles the rendered bytes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field

API_VERSION = "gitops-squared.io/v1alpha1"
KIND = "PlatformResource"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
VERSION_ANNOTATION = "gitops-squared.io/version"
PUSHED_AT_ANNOTATION = "gitops-squared.io/pushed-at"

# DNS-1123 label: also a valid OCI repository path component
NAME_PATTERN = r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$"


class ResourceSpec(BaseModel):
    """User-facing spec for a platform resource."""

    model_config = ConfigDict(frozen=True)

    type: Literal["vm", "database", "bucket"]
    size: Literal["small", "medium", "large"]
    region: str | None = None
    replicas: int = Field(default=1, ge=1, le=10)


class ResourceRequest(BaseModel):
    """A client's declaration of desired state for one resource."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(pattern=NAME_PATTERN)
    spec: ResourceSpec


class ResourceMetadata(BaseModel):
    """Kubernetes object metadata for a PlatformResource."""

    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)


class PlatformResource(BaseModel):
    """The CRD representation the reconciler applies."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    api_version: str = Field(default=API_VERSION, alias="apiVersion")
    kind: str = KIND
    metadata: ResourceMetadata
    spec: ResourceSpec

    @property
    def version(self) -> str:
        return self.metadata.annotations.get(VERSION_ANNOTATION, "")


def build_platform_resource(
    request: ResourceRequest,
    namespace: str,
    version: str,
    pushed_at: datetime | None = None,
) -> PlatformResource:
    """Wrap a request in CRD metadata stamped with its artifact version."""
    pushed_at = pushed_at or datetime.now(timezone.utc)
    return PlatformResource(
        metadata=ResourceMetadata(
            name=request.name,
            namespace=namespace,
            labels={MANAGED_BY_LABEL: "gitops-squared"},
            annotations={
                VERSION_ANNOTATION: version,
                PUSHED_AT_ANNOTATION: pushed_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
            },
        ),
        spec=request.spec,
    )


def render_manifest(resource: PlatformResource) -> bytes:
    """Serialize a PlatformResource to YAML bytes."""
    doc = resource.model_dump(mode="json", by_alias=True, exclude_none=True)
    return yaml.safe_dump(doc, sort_keys=False).encode("utf-8")


def parse_manifest(data: bytes) -> PlatformResource:
    """Parse YAML manifest bytes back into a PlatformResource.

    Raises ``pydantic.ValidationError`` or ``yaml.YAMLError`` on content
    that is not a PlatformResource document.
    """
    doc = yaml.safe_load(data.decode("utf-8"))
    return PlatformResource.model_validate(doc)
