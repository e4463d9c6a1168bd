from __future__ import annotations

import base64

import pytest
from fastapi.testclient import TestClient

from cms.common.config import get_settings
from cms.infra.storage import BucketRegistry, StorageError
from cms.main import create_app

URL = "/api/dev/storage"
TEST_BUCKET = "test-bucket"


@pytest.fixture
def client(bucket_registry, memory_storage) -> TestClient:
    memory_storage.add(TEST_BUCKET, "content/index.md", b"# home", metadata={"status": "live"})
    memory_storage.add(TEST_BUCKET, "content/draft.md", b"# draft", metadata={"status": "draft"})
    memory_storage.add(TEST_BUCKET, "content/blog/post.md", b"# post")
    memory_storage.add(TEST_BUCKET, "media/pixel.gif", b"GIF89a", content_type="image/gif")
    return TestClient(create_app(bucket_registry=bucket_registry))


def test_op_buckets_and_prefixes(client):
    assert client.get(URL, params={"op": "buckets"}).json() == {"aliases": ["default"]}

    prefixes = client.get(URL, params={"op": "prefixes"}).json()["prefixes"]
    assert prefixes == {
        "content": "content",
        "media": "media",
        "public": "public",
        "meta": "meta",
    }


def test_listing_shape(client):
    resp = client.get(URL, params={"prefix": "content", "maxKeys": "5000"})
    assert resp.status_code == 200
    body = resp.json()

    assert body["bucket"] == TEST_BUCKET
    assert body["prefix"] == "content"
    assert body["folders"] == [{"prefix": "content/blog/"}]
    assert [o["key"] for o in body["objects"]] == ["content/draft.md", "content/index.md"]
    first = body["objects"][0]
    assert set(first) == {"key", "size", "lastModified", "eTag"}
    assert body["isTruncated"] is False
    assert body["nextContinuationToken"] is None
    assert body["metaFilterApplied"] is False
    assert body["headRequests"] == 0


def test_listing_with_metadata_filter(client, memory_storage):
    memory_storage.failing_heads.add("content/draft.md")
    resp = client.get(
        URL,
        params={"path": "content", "metaKey": "status", "metaMatch": "exists", "headLimit": "abc"},
    )
    body = resp.json()

    assert [o["key"] for o in body["objects"]] == ["content/index.md"]
    assert body["metaFilterApplied"] is True
    assert body["headRequests"] == 2
    assert body["metaFilter"] == {"attempted": 2, "succeeded": 1, "failed": 1, "matched": 1}


def test_read_text_and_binary(client):
    text = client.get(URL, params={"key": "/content/index.md"}).json()
    assert text == {
        "key": "content/index.md",
        "contentType": "text/plain",
        "size": 6,
        "mode": "text",
        "text": "# home",
    }

    binary = client.get(URL, params={"key": "media/pixel.gif"}).json()
    assert binary["mode"] == "base64"
    assert base64.b64decode(binary["base64"]) == b"GIF89a"
    assert "text" not in binary


def test_read_missing_object_is_plain_text_500(client):
    resp = client.get(URL, params={"key": "content/missing.md"})
    assert resp.status_code == 500
    assert resp.headers["content-type"].startswith("text/plain")
    assert resp.text.startswith("Error: ")


def test_unknown_prefix_is_400(client):
    resp = client.get(URL, params={"prefix": "secret"})
    assert resp.status_code == 400
    assert "Unknown prefix" in resp.text


def test_write_then_read(client):
    resp = client.put(
        URL, json={"alias": "default", "key": "/content/new.md", "content": "hi there"}
    )
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "bucket": TEST_BUCKET, "key": "content/new.md"}

    read = client.get(URL, params={"key": "content/new.md"}).json()
    assert read["mode"] == "text"
    assert read["text"] == "hi there"
    assert read["contentType"] == "text/plain; charset=utf-8"


def test_write_missing_key(client):
    resp = client.put(URL, json={"content": "x"})
    assert resp.status_code == 400
    assert resp.text == "Missing key"


def test_write_rejects_malformed_json_as_plain_text(client):
    resp = client.put(
        URL, content="{not json", headers={"content-type": "application/json"}
    )
    assert resp.status_code == 400
    assert resp.headers["content-type"].startswith("text/plain")
    assert resp.text == "Invalid JSON body"


def test_write_rejects_wrongly_typed_fields(client):
    resp = client.put(URL, json={"key": 5, "content": ["x"]})
    assert resp.status_code == 400
    assert resp.headers["content-type"].startswith("text/plain")
    assert resp.text == "Invalid write payload"


def test_client_construction_failure_is_plain_text_500():
    def _factory(region: str):
        raise StorageError(f"Failed to create S3 client for region {region}: bad endpoint")

    settings = get_settings()
    registry = BucketRegistry(
        settings.S3_BUCKETS,
        default_region="us-east-1",
        prefixes=settings.STORAGE_PREFIXES,
        client_factory=_factory,
    )
    client = TestClient(create_app(bucket_registry=registry))

    resp = client.get(URL, params={"prefix": "content"})
    assert resp.status_code == 500
    assert resp.headers["content-type"].startswith("text/plain")
    assert resp.text.startswith("Error: Failed to create S3 client for region ")
    assert resp.text.endswith(": bad endpoint")


def test_upload_multipart(client, memory_storage):
    resp = client.post(
        URL,
        data={"alias": "default", "prefix": "media", "path": "/2026/"},
        files=[
            ("files", ("a.txt", b"alpha", "text/plain")),
            ("files", ("b.png", b"\x89PNG", "image/png")),
        ],
    )
    assert resp.status_code == 200
    assert resp.json() == {
        "ok": True,
        "uploaded": ["a.txt", "b.png"],
        "bucket": TEST_BUCKET,
        "baseKey": "media/2026",
    }
    record = memory_storage.objects[f"{TEST_BUCKET}/media/2026/b.png"]
    assert record["content_type"] == "image/png"


def test_upload_without_files(client):
    resp = client.post(URL, data={"alias": "default"})
    assert resp.status_code == 400
    assert resp.text == "No files provided"


def test_rename(client, memory_storage):
    memory_storage.add(TEST_BUCKET, "a/b.txt", b"x")
    resp = client.post(
        URL, json={"action": "rename", "alias": "default", "fromKey": "a/b.txt", "toKey": "a/c.txt"}
    )
    assert resp.status_code == 200
    assert resp.json() == {
        "ok": True,
        "bucket": TEST_BUCKET,
        "fromKey": "a/b.txt",
        "toKey": "a/c.txt",
    }
    assert "a/b.txt" not in memory_storage.keys(TEST_BUCKET)
    assert "a/c.txt" in memory_storage.keys(TEST_BUCKET)


def test_rename_partial_failure_reports_both_keys(client, memory_storage):
    memory_storage.add(TEST_BUCKET, "a/b.txt", b"x")
    memory_storage.fail_deletes = True
    resp = client.post(
        URL, json={"action": "rename", "fromKey": "a/b.txt", "toKey": "a/c.txt"}
    )
    assert resp.status_code == 500
    assert "a/b.txt" in resp.text and "a/c.txt" in resp.text


def test_rename_validation(client):
    missing = client.post(URL, json={"action": "rename", "fromKey": "a/b.txt"})
    assert missing.status_code == 400
    assert missing.text == "Missing fromKey/toKey"

    unknown = client.post(URL, json={"action": "archive"})
    assert unknown.status_code == 400
    assert unknown.text == "Unknown JSON action"


def test_delete(client, memory_storage):
    resp = client.delete(URL, params={"alias": "default", "key": "content/index.md"})
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "bucket": TEST_BUCKET, "key": "content/index.md"}
    assert "content/index.md" not in memory_storage.keys(TEST_BUCKET)

    again = client.delete(URL, params={"key": "content/index.md"})
    assert again.status_code == 200


def test_production_hides_browser(client, monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    get_settings.cache_clear()  # type: ignore[attr-defined]

    resp = client.get(URL, params={"op": "buckets"})
    assert resp.status_code == 403
    assert resp.text == "Forbidden: dev-only endpoint"
