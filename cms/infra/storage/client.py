"""Storage client protocol and data types.

This module defines the interface the storage browser needs from an object
store: delimited listing, per-object detail lookups, whole-object reads and
writes, server-side copy and delete.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Protocol


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


@dataclass(frozen=True, slots=True)
class ObjectSummary:
    """An object as reported by a listing call."""

    key: str
    size: int
    last_modified: datetime | None
    etag: str | None


@dataclass(frozen=True, slots=True)
class ObjectListing:
    """One page of a delimited listing."""

    folders: list[str] = field(default_factory=list)
    objects: list[ObjectSummary] = field(default_factory=list)
    is_truncated: bool = False
    next_continuation_token: str | None = None


@dataclass(frozen=True, slots=True)
class ObjectHead:
    """Metadata from a HEAD object request."""

    size_bytes: int
    etag: str | None
    content_type: str | None
    metadata: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class StoredObject:
    """Fully buffered object body plus the headers the browser needs."""

    body: bytes
    content_type: str | None
    content_length: int | None


class StorageClient(Protocol):
    """Protocol defining the interface for object storage backends.

    All methods raise ``StorageError`` when the backend call fails.
    """

    def list_objects(
        self,
        *,
        bucket: str,
        prefix: str | None = None,
        delimiter: str | None = "/",
        continuation_token: str | None = None,
        max_keys: int = 1000,
    ) -> ObjectListing:
        """List immediate children of ``prefix``.

        Args:
            bucket: Bucket name.
            prefix: Key prefix to list under; ``None`` lists from the root.
            delimiter: Grouping delimiter for common prefixes.
            continuation_token: Cursor from a previous truncated page.
            max_keys: Upper bound on returned entries.

        Returns:
            ObjectListing with folders (common prefixes) and objects.
        """
        ...

    def head_object(self, *, bucket: str, object_key: str) -> ObjectHead:
        """Get object metadata, including user metadata, without the body."""
        ...

    def get_object(self, *, bucket: str, object_key: str) -> StoredObject:
        """Download the whole object into memory."""
        ...

    def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        body: bytes,
        content_type: str | None = None,
    ) -> None:
        """Create or replace an object."""
        ...

    def copy_object(self, *, bucket: str, source_key: str, object_key: str) -> None:
        """Server-side copy within one bucket."""
        ...

    def delete_object(self, *, bucket: str, object_key: str) -> None:
        """Delete an object. Deleting a missing key is not an error."""
        ...

    def head_bucket(self, *, bucket: str) -> None:
        """Check that the bucket exists and is reachable."""
        ...
