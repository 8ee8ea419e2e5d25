"""Registry artifact models (immutable once created)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from gitops_squared.core.media_types import ANNOTATION_RESOURCE_VERSION, is_tombstone


class PushResult(BaseModel):
    """Outcome of pushing one artifact version.

    ``version`` is the immutable tag the content was stored under; for
    versionless artifacts such as the catalog it is ``"latest"``.
    """

    model_config = ConfigDict(frozen=True)

    repository: str
    digest: str  # "sha256:<hex>"
    version: str


class PulledArtifact(BaseModel):
    """Payload and merged annotations of one pulled artifact version."""

    model_config = ConfigDict(frozen=True)

    repository: str
    reference: str
    digest: str  # manifest digest
    data: bytes
    annotations: dict[str, str] = Field(default_factory=dict)

    @property
    def deleted(self) -> bool:
        return is_tombstone(self.annotations)

    @property
    def version(self) -> str:
        return self.annotations.get(ANNOTATION_RESOURCE_VERSION, "")


class ResourceRef(BaseModel):
    """A resource repository discovered in the registry."""

    model_config = ConfigDict(frozen=True)

    repository: str
    namespace: str
    name: str

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"
