"""Shared test fixtures for gitops-squared.

The registry is an in-memory implementation of the OCI distribution API
served through ``httpx.MockTransport``, so every test exercises the real
HTTP client code without a network.
"""

from __future__ import annotations

import hashlib
import json
import re
import threading
import uuid
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from gitops_squared.core.catalog_service import CatalogService
from gitops_squared.core.store_client import ArtifactStoreClient
from gitops_squared.core.version_clock import VersionClock
from gitops_squared.core.versioner import ResourceVersioner

RESOURCE_PREFIX = "gitops-squared/resources"
CATALOG_REPO = "gitops-squared/catalog"

_UPLOAD_START = re.compile(r"^/v2/(?P<name>.+)/blobs/uploads/$")
_UPLOAD = re.compile(r"^/v2/(?P<name>.+)/blobs/uploads/(?P<upload>[^/]+)$")
_BLOB = re.compile(r"^/v2/(?P<name>.+)/blobs/(?P<digest>sha256:[a-f0-9]{64})$")
_MANIFEST = re.compile(r"^/v2/(?P<name>.+)/manifests/(?P<ref>[^/]+)$")
_TAGS = re.compile(r"^/v2/(?P<name>.+)/tags/list$")


def _digest(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()


def _error(status: int, code: str, message: str = "") -> httpx.Response:
    return httpx.Response(status, json={"errors": [{"code": code, "message": message}]})


class FakeRegistry:
    """In-memory OCI distribution registry.

    ``down`` makes every request fail with a connection error; repositories
    in ``failing`` answer 500; ``hooks`` run before each request is handled
    (outside the registry lock) and may block to force interleavings.
    """

    def __init__(self, page_size_cap: int = 1000) -> None:
        self.blobs: dict[str, dict[str, bytes]] = {}
        self.manifests: dict[str, dict[str, bytes]] = {}
        self.tags: dict[str, dict[str, str]] = {}
        self.uploads: dict[str, str] = {}
        self.down = False
        self.failing: set[str] = set()
        self.hooks: list[Callable[[httpx.Request], None]] = []
        self.requests: list[tuple[str, str]] = []
        self.page_size_cap = page_size_cap
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Inspection / seeding helpers
    # ------------------------------------------------------------------

    def repositories(self) -> list[str]:
        with self._lock:
            return sorted(self.manifests)

    def tag_digest(self, repo: str, tag: str) -> str | None:
        with self._lock:
            return self.tags.get(repo, {}).get(tag)

    def tag_names(self, repo: str) -> list[str]:
        with self._lock:
            return sorted(self.tags.get(repo, {}))

    def manifest(self, repo: str, ref: str) -> dict[str, Any]:
        with self._lock:
            digest = ref if ref.startswith("sha256:") else self.tags[repo][ref]
            return json.loads(self.manifests[repo][digest])

    def put_blob(self, repo: str, data: bytes) -> str:
        digest = _digest(data)
        with self._lock:
            self.blobs.setdefault(repo, {})[digest] = data
        return digest

    def put_manifest(self, repo: str, tag: str, body: bytes) -> str:
        digest = _digest(body)
        with self._lock:
            self.manifests.setdefault(repo, {})[digest] = body
            self.tags.setdefault(repo, {})[tag] = digest
        return digest

    def replace_blob(self, repo: str, digest: str, data: bytes) -> None:
        with self._lock:
            self.blobs[repo][digest] = data

    # ------------------------------------------------------------------
    # HTTP handling
    # ------------------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        if self.down:
            raise httpx.ConnectError("connection refused", request=request)
        for hook in list(self.hooks):
            hook(request)
        path = request.url.path
        self.requests.append((request.method, path))

        if path == "/v2/":
            return httpx.Response(200, json={})
        if path == "/v2/_catalog":
            with self._lock:
                repos = sorted(self.manifests)
            return self._page(request, repos, "repositories", "/v2/_catalog")

        for pattern in (_UPLOAD_START, _UPLOAD, _BLOB, _MANIFEST, _TAGS):
            match = pattern.match(path)
            if match is None:
                continue
            if match.group("name") in self.failing:
                return _error(500, "UNKNOWN", "injected failure")
            with self._lock:
                if pattern is _UPLOAD_START:
                    return self._start_upload(request, **match.groupdict())
                if pattern is _UPLOAD:
                    return self._finish_upload(request, **match.groupdict())
                if pattern is _BLOB:
                    return self._blob(request, **match.groupdict())
                if pattern is _MANIFEST:
                    return self._manifest(request, **match.groupdict())
            return self._tag_list(request, **match.groupdict())
        return _error(404, "NOT_FOUND", path)

    def _page(self, request: httpx.Request, items: list[str], key: str, path: str) -> httpx.Response:
        n = min(int(request.url.params.get("n", self.page_size_cap)), self.page_size_cap)
        last = request.url.params.get("last")
        if last is not None:
            items = [i for i in items if i > last]
        page, rest = items[:n], items[n:]
        headers = {}
        if rest:
            headers["Link"] = f'<{path}?last={page[-1]}&n={n}>; rel="next"'
        return httpx.Response(200, json={key: page}, headers=headers)

    def _start_upload(self, request: httpx.Request, name: str) -> httpx.Response:
        upload = uuid.uuid4().hex
        self.uploads[upload] = name
        return httpx.Response(202, headers={"Location": f"/v2/{name}/blobs/uploads/{upload}"})

    def _finish_upload(self, request: httpx.Request, name: str, upload: str) -> httpx.Response:
        if self.uploads.pop(upload, None) != name:
            return _error(404, "BLOB_UPLOAD_UNKNOWN")
        data = request.content
        expected = request.url.params.get("digest")
        if expected != _digest(data):
            return _error(400, "DIGEST_INVALID")
        self.blobs.setdefault(name, {})[expected] = data
        return httpx.Response(201, headers={"Docker-Content-Digest": expected})

    def _blob(self, request: httpx.Request, name: str, digest: str) -> httpx.Response:
        data = self.blobs.get(name, {}).get(digest)
        if data is None:
            return _error(404, "BLOB_UNKNOWN", digest)
        if request.method == "HEAD":
            return httpx.Response(200)
        return httpx.Response(200, content=data)

    def _manifest(self, request: httpx.Request, name: str, ref: str) -> httpx.Response:
        if request.method == "PUT":
            body = request.content
            digest = _digest(body)
            self.manifests.setdefault(name, {})[digest] = body
            if not ref.startswith("sha256:"):
                self.tags.setdefault(name, {})[ref] = digest
            return httpx.Response(201, headers={"Docker-Content-Digest": digest})
        digest = ref if ref.startswith("sha256:") else self.tags.get(name, {}).get(ref)
        body = self.manifests.get(name, {}).get(digest or "")
        if body is None:
            return _error(404, "MANIFEST_UNKNOWN", f"{name}:{ref}")
        headers = {
            "Docker-Content-Digest": digest,
            "Content-Type": "application/vnd.oci.image.manifest.v1+json",
        }
        return httpx.Response(200, content=body, headers=headers)

    def _tag_list(self, request: httpx.Request, name: str) -> httpx.Response:
        with self._lock:
            if name not in self.tags:
                return _error(404, "NAME_UNKNOWN", name)
            tags = sorted(self.tags[name])
        return self._page(request, tags, "tags", f"/v2/{name}/tags/list")


class FakeClock:
    """Settable wall clock for version tags."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float = 1.0) -> None:
        self.now += seconds


@pytest.fixture
def registry() -> FakeRegistry:
    """Provide an empty in-memory registry."""
    return FakeRegistry()


@pytest.fixture
def clock() -> FakeClock:
    """Provide a deterministic wall clock."""
    return FakeClock()


@pytest.fixture
def make_client(registry: FakeRegistry, clock: FakeClock) -> Callable[..., ArtifactStoreClient]:
    """Factory fixture: a store client wired to the fake registry."""

    def _factory(**overrides: Any) -> ArtifactStoreClient:
        kwargs: dict[str, Any] = {
            "transport": httpx.MockTransport(registry.handle),
            "version_clock": VersionClock(clock),
        }
        kwargs.update(overrides)
        return ArtifactStoreClient("registry.test:5000", **kwargs)

    return _factory


@pytest.fixture
def store_client(make_client: Callable[..., ArtifactStoreClient]) -> ArtifactStoreClient:
    return make_client()


@pytest.fixture
def versioner(store_client: ArtifactStoreClient) -> ResourceVersioner:
    return ResourceVersioner(store_client, RESOURCE_PREFIX)


@pytest.fixture
def make_service(
    make_client: Callable[..., ArtifactStoreClient],
) -> Callable[..., CatalogService]:
    """Factory fixture: a fresh service (empty index) on the shared registry.

    Creating a second service simulates a process restart.
    """

    def _factory(**overrides: Any) -> CatalogService:
        kwargs: dict[str, Any] = {"serialize_mutations": True}
        kwargs.update(overrides)
        return CatalogService(make_client(), RESOURCE_PREFIX, CATALOG_REPO, **kwargs)

    return _factory


@pytest.fixture
def service(make_service: Callable[..., CatalogService]) -> CatalogService:
    return make_service()
