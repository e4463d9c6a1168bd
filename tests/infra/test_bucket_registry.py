from __future__ import annotations

import logging

import pytest

from cms.common.config import BucketSettings
from cms.infra.storage import (
    BucketNotConfiguredError,
    BucketRegistry,
    StorageConnectivityError,
    StorageError,
)
from tests.services.memory_storage import InMemoryStorageClient

BUCKETS = {
    "default": BucketSettings(alias="default", name="main", region=""),
    "media": BucketSettings(alias="media", name="media-bucket", region="us-west-2"),
    "archive": BucketSettings(alias="archive", name="archive-bucket", region="us-west-2"),
}


class _CountingFactory:
    def __init__(self) -> None:
        self.regions: list[str] = []

    def __call__(self, region: str) -> InMemoryStorageClient:
        self.regions.append(region)
        return InMemoryStorageClient()


def _registry(buckets=BUCKETS, factory=None) -> BucketRegistry:
    return BucketRegistry(
        buckets,
        default_region="eu-west-1",
        prefixes={"content": "content"},
        client_factory=factory or _CountingFactory(),
    )


def test_resolve_is_stable():
    registry = _registry()
    first = registry.resolve("media")
    second = registry.resolve("MEDIA")
    assert (first.bucket, first.region) == ("media-bucket", "us-west-2")
    assert (second.bucket, second.region) == (first.bucket, first.region)
    assert first.client is second.client


def test_default_alias_uses_global_region():
    resolved = _registry().resolve(None)
    assert resolved.bucket == "main"
    assert resolved.region == "eu-west-1"


def test_aliases_in_same_region_share_one_client():
    factory = _CountingFactory()
    registry = _registry(factory=factory)

    media = registry.resolve("media")
    archive = registry.resolve("archive")
    default = registry.resolve("default")

    assert media.client is archive.client
    assert default.client is not media.client
    assert sorted(factory.regions) == ["eu-west-1", "us-west-2"]


def test_unknown_alias_falls_back_to_default_bucket():
    assert _registry().resolve("unknown").bucket == "main"


def test_unknown_alias_without_default_fails():
    registry = _registry({"media": BUCKETS["media"]})
    with pytest.raises(BucketNotConfiguredError):
        registry.resolve("unknown")


def test_verify_connectivity_logs_failures(caplog):
    class _Failing(InMemoryStorageClient):
        def head_bucket(self, *, bucket: str) -> None:
            if bucket == "media-bucket":
                raise StorageError("Failed to reach bucket media-bucket: 403")

    registry = _registry(factory=lambda region: _Failing())
    with caplog.at_level(logging.INFO, logger="storage"):
        results = registry.verify_connectivity()

    outcome = {result.alias: result.ok for result in results}
    assert outcome == {"default": True, "media": False, "archive": True}
    assert any("storage check FAILED" in rec.getMessage() for rec in caplog.records)


def test_verify_connectivity_fail_fast():
    class _Failing(InMemoryStorageClient):
        def head_bucket(self, *, bucket: str) -> None:
            raise StorageError("unreachable")

    registry = _registry(factory=lambda region: _Failing())
    with pytest.raises(StorageConnectivityError):
        registry.verify_connectivity(fail_fast=True)


def test_verify_connectivity_without_buckets(caplog):
    registry = _registry({})
    with caplog.at_level(logging.WARNING, logger="storage"):
        assert registry.verify_connectivity() == []
    assert any("check skipped" in rec.getMessage() for rec in caplog.records)
