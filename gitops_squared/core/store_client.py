"""Artifact Store Client — OCI distribution API over plain HTTP.

Pushes and pulls single-layer OCI artifacts (a payload blob plus
annotations) and enumerates repositories.  Every push stores the content
under an immutable version tag and then reassigns ``latest``; no other
existing tag is ever rewritten.

Registry layout::

    <prefix>/resources/<namespace>/<name>:latest
    <prefix>/resources/<namespace>/<name>:v<unix-timestamp>
    <prefix>/catalog:latest

Failures map onto the ``StoreError`` hierarchy and are never retried
here.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import ValidationError

from gitops_squared.core.deadline import Deadline
from gitops_squared.core.errors import (
    InvalidReference,
    MalformedArtifact,
    NotFound,
    RegistryError,
    StoreUnavailable,
)
from gitops_squared.core.hasher import (
    canonical_json_bytes,
    content_digest,
    is_digest,
    verify_digest,
)
from gitops_squared.core.media_types import (
    ANNOTATION_CREATED,
    ANNOTATION_RESOURCE_DELETED,
    ARTIFACT_TYPE_RESOURCE,
    LATEST_TAG,
    OCI_EMPTY_CONFIG,
    OCI_EMPTY_CONFIG_BYTES,
    OCI_IMAGE_MANIFEST,
)
from gitops_squared.core.version_clock import VersionClock
from gitops_squared.models.artifacts import PulledArtifact, PushResult

logger = logging.getLogger(__name__)

_REPO_COMPONENT = r"[a-z0-9]+(?:(?:\.|_|__|-+)[a-z0-9]+)*"
_REPO_RE = re.compile(rf"^{_REPO_COMPONENT}(?:/{_REPO_COMPONENT})*$")
_TAG_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._-]{0,127}$")


def validate_repository(repo_path: str) -> str:
    """Return ``repo_path`` if it is a valid OCI repository name."""
    if not _REPO_RE.match(repo_path or ""):
        raise InvalidReference(f"invalid repository path: {repo_path!r}")
    return repo_path


def validate_reference(reference: str) -> str:
    """Return ``reference`` if it is a valid tag or sha256 digest."""
    if is_digest(reference) or _TAG_RE.match(reference or ""):
        return reference
    raise InvalidReference(f"invalid reference: {reference!r}")


def _error_detail(response: httpx.Response) -> str:
    """Extract the first OCI error code/message from a response body."""
    try:
        errors = response.json().get("errors") or []
    except (ValueError, AttributeError):
        return response.text[:200]
    if not errors:
        return response.text[:200]
    first = errors[0]
    return f"{first.get('code', 'UNKNOWN')}: {first.get('message', '')}"


def _annotation_map(value: Any, what: str) -> dict[str, str]:
    """Return ``value`` if it is a ``str -> str`` mapping (absent means empty)."""
    if value is None:
        return {}
    if not isinstance(value, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        raise MalformedArtifact(f"{what} has invalid annotations")
    return value


class ArtifactStoreClient:
    """Client for a single OCI registry endpoint.

    Parameters
    ----------
    registry_host:
        ``host:port`` of the registry.
    plain_http:
        Use ``http://`` (the only supported mode for in-cluster registries).
    timeout:
        Default per-request timeout in seconds when no deadline is given.
    page_size:
        Page size for ``_catalog`` and tag listing.
    version_clock:
        Source of version tags for pushes without an explicit tag.
    transport:
        Optional ``httpx`` transport, e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        registry_host: str,
        *,
        plain_http: bool = True,
        timeout: float = 30.0,
        page_size: int = 100,
        version_clock: VersionClock | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        scheme = "http" if plain_http else "https"
        self._registry_host = registry_host
        self._page_size = page_size
        self.version_clock = version_clock or VersionClock()
        self._http = httpx.Client(
            base_url=f"{scheme}://{registry_host}",
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls, settings: Any, transport: httpx.BaseTransport | None = None
    ) -> ArtifactStoreClient:
        """Build a client from a ``Settings`` instance."""
        return cls(
            settings.registry_host,
            plain_http=settings.plain_http,
            timeout=settings.request_timeout_seconds,
            page_size=settings.page_size,
            transport=transport,
        )

    @property
    def registry_host(self) -> str:
        return self._registry_host

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> ArtifactStoreClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        url: str,
        *,
        deadline: Deadline | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request, mapping transport failures to StoreUnavailable."""
        timeout = deadline.remaining() if deadline is not None else httpx.USE_CLIENT_DEFAULT
        try:
            return self._http.request(method, url, timeout=timeout, **kwargs)
        except httpx.TimeoutException as exc:
            raise StoreUnavailable(
                f"registry {self._registry_host} timed out on {method} {url}"
            ) from exc
        except httpx.TransportError as exc:
            raise StoreUnavailable(
                f"registry {self._registry_host} unreachable: {exc}"
            ) from exc

    @staticmethod
    def _check(response: httpx.Response, what: str, *expected: int) -> httpx.Response:
        if response.status_code in expected:
            return response
        detail = _error_detail(response)
        if response.status_code == 404:
            raise NotFound(f"{what}: not found ({detail})")
        raise RegistryError(
            f"{what}: unexpected status {response.status_code} ({detail})",
            response.status_code,
        )

    # ------------------------------------------------------------------
    # Blobs and manifests
    # ------------------------------------------------------------------

    def _blob_exists(self, repo: str, digest: str, deadline: Deadline | None) -> bool:
        resp = self._request("HEAD", f"/v2/{repo}/blobs/{digest}", deadline=deadline)
        if resp.status_code == 404:
            return False
        self._check(resp, f"checking blob {digest}", 200)
        return True

    def _push_blob(
        self, repo: str, media_type: str, data: bytes, deadline: Deadline | None
    ) -> dict[str, Any]:
        """Upload a blob (monolithic) unless present; return its descriptor."""
        digest = content_digest(data)
        descriptor: dict[str, Any] = {
            "mediaType": media_type,
            "digest": digest,
            "size": len(data),
        }
        if self._blob_exists(repo, digest, deadline):
            return descriptor

        resp = self._check(
            self._request("POST", f"/v2/{repo}/blobs/uploads/", deadline=deadline),
            f"starting upload to {repo}",
            202,
        )
        location = resp.headers.get("Location")
        if not location:
            raise RegistryError(f"upload to {repo} returned no Location", resp.status_code)
        self._check(
            self._request(
                "PUT",
                location,
                deadline=deadline,
                params={"digest": digest},
                content=data,
                headers={"Content-Type": "application/octet-stream"},
            ),
            f"uploading blob {digest} to {repo}",
            201,
        )
        return descriptor

    def _put_manifest(
        self, repo: str, reference: str, body: bytes, deadline: Deadline | None
    ) -> None:
        self._check(
            self._request(
                "PUT",
                f"/v2/{repo}/manifests/{reference}",
                deadline=deadline,
                content=body,
                headers={"Content-Type": OCI_IMAGE_MANIFEST},
            ),
            f"putting manifest {repo}:{reference}",
            201,
        )

    def _fetch_manifest(
        self, repo: str, reference: str, deadline: Deadline | None
    ) -> tuple[str, dict[str, Any]]:
        resp = self._check(
            self._request(
                "GET",
                f"/v2/{repo}/manifests/{reference}",
                deadline=deadline,
                headers={"Accept": OCI_IMAGE_MANIFEST},
            ),
            f"fetching manifest {repo}:{reference}",
            200,
        )
        digest = resp.headers.get("Docker-Content-Digest") or content_digest(resp.content)
        try:
            manifest = json.loads(resp.content)
        except ValueError as exc:
            raise MalformedArtifact(f"manifest {repo}:{reference} is not JSON") from exc
        if not isinstance(manifest, dict):
            raise MalformedArtifact(f"manifest {repo}:{reference} is not an object")
        return digest, manifest

    def _fetch_blob(self, repo: str, descriptor: dict[str, Any], deadline: Deadline | None) -> bytes:
        digest = descriptor.get("digest")
        if not isinstance(digest, str) or not is_digest(digest):
            raise MalformedArtifact(f"layer in {repo} has invalid digest {digest!r}")
        resp = self._check(
            self._request("GET", f"/v2/{repo}/blobs/{digest}", deadline=deadline),
            f"fetching blob {digest} from {repo}",
            200,
        )
        if not verify_digest(resp.content, digest):
            raise MalformedArtifact(f"blob {digest} in {repo} failed digest check")
        return resp.content

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def push(
        self,
        repo_path: str,
        media_type: str,
        data: bytes,
        annotations: dict[str, str],
        *,
        tag: str | None = None,
        manifest_annotations: dict[str, str] | None = None,
        artifact_type: str | None = ARTIFACT_TYPE_RESOURCE,
        config_media_type: str = OCI_EMPTY_CONFIG,
        deadline: Deadline | None = None,
    ) -> PushResult:
        """Push ``data`` as a single-layer artifact and move ``latest`` to it.

        ``annotations`` go on the layer descriptor; ``manifest_annotations``
        (plus a creation timestamp) go on the manifest.  When ``tag`` is
        ``None`` a version tag is generated.  When ``tag`` is ``"latest"``
        the artifact is versionless and only ``latest`` is written.
        """
        repo = validate_repository(repo_path)
        version = validate_reference(tag) if tag is not None else self.version_clock.next_tag()
        if is_digest(version):
            raise InvalidReference(f"cannot push to digest reference {version!r}")

        layer = self._push_blob(repo, media_type, data, deadline)
        if annotations:
            layer["annotations"] = dict(annotations)
        config = self._push_blob(repo, config_media_type, OCI_EMPTY_CONFIG_BYTES, deadline)

        manifest: dict[str, Any] = {
            "schemaVersion": 2,
            "mediaType": OCI_IMAGE_MANIFEST,
            "config": config,
            "layers": [layer],
            "annotations": {
                ANNOTATION_CREATED: datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
                **(manifest_annotations or {}),
            },
        }
        if artifact_type:
            manifest["artifactType"] = artifact_type
        body = canonical_json_bytes(manifest)
        digest = content_digest(body)

        self._put_manifest(repo, version, body, deadline)
        if version != LATEST_TAG:
            # latest is reassigned last so readers never see it ahead of the version tag
            self._put_manifest(repo, LATEST_TAG, body, deadline)

        logger.debug("Pushed %s:%s (%s, %d bytes)", repo, version, digest, len(data))
        return PushResult(repository=repo, digest=digest, version=version)

    def push_tombstone(
        self,
        repo_path: str,
        marker: bytes,
        media_type: str,
        annotations: dict[str, str],
        *,
        tag: str | None = None,
        deadline: Deadline | None = None,
    ) -> PushResult:
        """Push a deletion marker; both layer and manifest carry ``deleted=true``."""
        deleted = {ANNOTATION_RESOURCE_DELETED: "true"}
        return self.push(
            repo_path,
            media_type,
            marker,
            {**annotations, **deleted},
            tag=tag,
            manifest_annotations=deleted,
            deadline=deadline,
        )

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def pull(
        self, repo_path: str, reference: str, *, deadline: Deadline | None = None
    ) -> PulledArtifact:
        """Pull the first layer and merged annotations of ``repo_path:reference``.

        Layer annotations take precedence over manifest annotations.
        """
        repo = validate_repository(repo_path)
        ref = validate_reference(reference)

        digest, manifest = self._fetch_manifest(repo, ref, deadline)
        layers = manifest.get("layers")
        if not isinstance(layers, list) or not layers:
            raise MalformedArtifact(f"manifest {digest} in {repo} has no layers")
        layer = layers[0]
        if not isinstance(layer, dict):
            raise MalformedArtifact(f"manifest {digest} in {repo} has an invalid layer")
        merged = {
            **_annotation_map(manifest.get("annotations"), f"manifest {digest} in {repo}"),
            **_annotation_map(layer.get("annotations"), f"layer of {digest} in {repo}"),
        }
        data = self._fetch_blob(repo, layer, deadline)

        try:
            return PulledArtifact(
                repository=repo,
                reference=ref,
                digest=digest,
                data=data,
                annotations=merged,
            )
        except ValidationError as exc:
            raise MalformedArtifact(f"manifest {digest} in {repo} is invalid: {exc}") from exc

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def _paginate(self, url: str, key: str, what: str, deadline: Deadline | None) -> list[str]:
        items: list[str] = []
        next_url: str | None = url
        params: dict[str, Any] | None = {"n": self._page_size}
        while next_url:
            resp = self._check(
                self._request("GET", next_url, deadline=deadline, params=params),
                what,
                200,
            )
            try:
                items.extend(resp.json().get(key) or [])
            except (ValueError, AttributeError) as exc:
                raise RegistryError(f"{what}: unparsable response", resp.status_code) from exc
            next_url = resp.links.get("next", {}).get("url")
            params = None  # the Link URL carries its own query
        return items

    def list_repositories(self, prefix: str, *, deadline: Deadline | None = None) -> list[str]:
        """List repositories strictly below ``prefix`` (``prefix/...``)."""
        repos = self._paginate("/v2/_catalog", "repositories", "listing repositories", deadline)
        wanted = prefix.rstrip("/") + "/"
        return [r for r in repos if r.startswith(wanted)]

    def list_tags(self, repo_path: str, *, deadline: Deadline | None = None) -> list[str]:
        """List every tag in a repository, ``latest`` included."""
        repo = validate_repository(repo_path)
        return self._paginate(f"/v2/{repo}/tags/list", "tags", f"listing tags of {repo}", deadline)

    def ping(self, *, deadline: Deadline | None = None) -> bool:
        """Check the registry's ``/v2/`` endpoint answers."""
        resp = self._request("GET", "/v2/", deadline=deadline)
        self._check(resp, "pinging registry", 200, 401)
        return True
