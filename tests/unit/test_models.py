"""Tests for resource and artifact models."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
import yaml
from pydantic import ValidationError

from gitops_squared.models.artifacts import PulledArtifact, PushResult
from gitops_squared.models.resources import (
    MANAGED_BY_LABEL,
    PUSHED_AT_ANNOTATION,
    PlatformResource,
    ResourceRequest,
    ResourceSpec,
    build_platform_resource,
    parse_manifest,
    render_manifest,
)


class TestResourceRequest:
    def test_defaults(self):
        spec = ResourceSpec(type="bucket", size="medium")
        assert spec.replicas == 1
        assert spec.region is None

    @pytest.mark.parametrize(
        "payload",
        [
            {"name": "", "spec": {"type": "vm", "size": "small"}},
            {"name": "Bad_Name", "spec": {"type": "vm", "size": "small"}},
            {"name": "web", "spec": {"type": "mainframe", "size": "small"}},
            {"name": "web", "spec": {"type": "vm", "size": "huge"}},
            {"name": "web", "spec": {"type": "vm", "size": "small", "replicas": 11}},
            {"name": "web", "spec": {"type": "vm", "size": "small", "replicas": 0}},
            {"name": "web"},
        ],
    )
    def test_invalid_requests(self, payload):
        with pytest.raises(ValidationError):
            ResourceRequest.model_validate(payload)

    def test_frozen(self):
        request = ResourceRequest(name="web", spec=ResourceSpec(type="vm", size="small"))
        with pytest.raises(ValidationError):
            request.name = "other"  # type: ignore[misc]


class TestManifest:
    def _resource(self) -> PlatformResource:
        request = ResourceRequest(
            name="web", spec=ResourceSpec(type="vm", size="small", region="eu-west", replicas=3)
        )
        return build_platform_resource(
            request, "default", "v1700000000",
            pushed_at=datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        )

    def test_render_is_a_platform_resource_document(self):
        doc = yaml.safe_load(render_manifest(self._resource()))
        assert doc["apiVersion"] == "gitops-squared.io/v1alpha1"
        assert doc["kind"] == "PlatformResource"
        assert doc["metadata"]["labels"] == {MANAGED_BY_LABEL: "gitops-squared"}
        assert doc["metadata"]["annotations"][PUSHED_AT_ANNOTATION] == "2026-01-02T03:04:05Z"
        assert doc["spec"] == {"type": "vm", "size": "small", "region": "eu-west", "replicas": 3}

    def test_parse_reads_back_render(self):
        resource = self._resource()
        assert parse_manifest(render_manifest(resource)) == resource
        assert parse_manifest(render_manifest(resource)).version == "v1700000000"

    def test_region_omitted_when_unset(self):
        request = ResourceRequest(name="web", spec=ResourceSpec(type="vm", size="small"))
        doc = yaml.safe_load(render_manifest(build_platform_resource(request, "default", "v1")))
        assert "region" not in doc["spec"]

    def test_parse_rejects_tombstone_marker(self):
        with pytest.raises(ValidationError):
            parse_manifest(b"# deleted: default/web\n")


class TestArtifactModels:
    def test_pulled_artifact_flags(self):
        live = PulledArtifact(
            repository="r", reference="latest", digest="sha256:x", data=b"",
            annotations={"io.gitops-squared.resource.version": "v1"},
        )
        assert live.deleted is False
        assert live.version == "v1"
        tomb = live.model_copy(update={"annotations": {"io.gitops-squared.resource.deleted": "true"}})
        assert tomb.deleted is True

    def test_push_result_frozen(self):
        result = PushResult(repository="r", digest="sha256:x", version="v1")
        with pytest.raises(ValidationError):
            result.version = "v2"  # type: ignore[misc]

    def test_push_result_fields(self):
        assert set(PushResult.model_fields) == {"repository", "digest", "version"}
