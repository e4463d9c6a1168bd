"""In-memory storage client for exercising the storage browser without S3."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from cms.infra.storage.client import (
    ObjectHead,
    ObjectListing,
    ObjectSummary,
    StorageError,
    StoredObject,
)


@dataclass
class InMemoryStorageClient:
    """Dict-backed stand-in for ``StorageClient``.

    ``objects`` maps ``"bucket/key"`` to a record with ``body``,
    ``content_type`` and ``metadata``. Failures can be injected per key for
    head calls and globally for deletes.
    """

    objects: dict[str, dict[str, Any]] = field(default_factory=dict)
    failing_heads: set[str] = field(default_factory=set)
    fail_deletes: bool = False
    head_delay: float = 0.0
    head_calls: int = 0
    max_concurrent_heads: int = 0
    _in_flight: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def add(
        self,
        bucket: str,
        key: str,
        body: bytes = b"",
        *,
        content_type: str | None = "text/plain",
        metadata: dict[str, str] | None = None,
    ) -> None:
        self.objects[f"{bucket}/{key}"] = {
            "body": body,
            "content_type": content_type,
            "metadata": dict(metadata or {}),
        }

    def keys(self, bucket: str) -> list[str]:
        prefix = f"{bucket}/"
        return sorted(k[len(prefix) :] for k in self.objects if k.startswith(prefix))

    def list_objects(
        self,
        *,
        bucket: str,
        prefix: str | None = None,
        delimiter: str | None = "/",
        continuation_token: str | None = None,
        max_keys: int = 1000,
    ) -> ObjectListing:
        base = prefix or ""
        folders: list[str] = []
        objects: list[ObjectSummary] = []
        for key in self.keys(bucket):
            if not key.startswith(base):
                continue
            rest = key[len(base) :]
            if delimiter and delimiter in rest:
                folder = base + rest.split(delimiter, 1)[0] + delimiter
                if folder not in folders:
                    folders.append(folder)
                continue
            record = self.objects[f"{bucket}/{key}"]
            objects.append(
                ObjectSummary(
                    key=key,
                    size=len(record["body"]),
                    last_modified=datetime(2026, 1, 1, tzinfo=timezone.utc),
                    etag=f'"etag-{key}"',
                )
            )
        truncated = len(objects) > max_keys
        return ObjectListing(
            folders=folders,
            objects=objects[:max_keys],
            is_truncated=truncated,
            next_continuation_token="next-page" if truncated else None,
        )

    def head_object(self, *, bucket: str, object_key: str) -> ObjectHead:
        with self._lock:
            self.head_calls += 1
            self._in_flight += 1
            self.max_concurrent_heads = max(self.max_concurrent_heads, self._in_flight)
        try:
            if self.head_delay:
                time.sleep(self.head_delay)
            if object_key in self.failing_heads:
                raise StorageError(f"Failed to get object metadata: {object_key}")
            record = self.objects.get(f"{bucket}/{object_key}")
            if record is None:
                raise StorageError(f"Failed to get object metadata: {object_key}")
            return ObjectHead(
                size_bytes=len(record["body"]),
                etag=None,
                content_type=record["content_type"],
                metadata=record["metadata"],
            )
        finally:
            with self._lock:
                self._in_flight -= 1

    def get_object(self, *, bucket: str, object_key: str) -> StoredObject:
        record = self.objects.get(f"{bucket}/{object_key}")
        if record is None:
            raise StorageError(f"Failed to read object: NoSuchKey {object_key}")
        return StoredObject(
            body=record["body"],
            content_type=record["content_type"],
            content_length=len(record["body"]),
        )

    def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        body: bytes,
        content_type: str | None = None,
    ) -> None:
        self.add(bucket, object_key, body, content_type=content_type)

    def copy_object(self, *, bucket: str, source_key: str, object_key: str) -> None:
        record = self.objects.get(f"{bucket}/{source_key}")
        if record is None:
            raise StorageError(f"Failed to copy object: NoSuchKey {source_key}")
        self.objects[f"{bucket}/{object_key}"] = dict(record)

    def delete_object(self, *, bucket: str, object_key: str) -> None:
        if self.fail_deletes:
            raise StorageError("Failed to delete object: AccessDenied")
        self.objects.pop(f"{bucket}/{object_key}", None)

    def head_bucket(self, *, bucket: str) -> None:
        return None
