"""gitops-squared data models — all Pydantic v2, all frozen (immutable)."""

from gitops_squared.models.artifacts import PulledArtifact, PushResult, ResourceRef
from gitops_squared.models.resources import (
    PlatformResource,
    ResourceMetadata,
    ResourceRequest,
    ResourceSpec,
    build_platform_resource,
    parse_manifest,
    render_manifest,
)

__all__ = [
    # artifacts
    "PushResult",
    "PulledArtifact",
    "ResourceRef",
    # resources
    "ResourceSpec",
    "ResourceRequest",
    "ResourceMetadata",
    "PlatformResource",
    "build_platform_resource",
    "render_manifest",
    "parse_manifest",
]
