"""Object storage access layer.

This module provides a protocol-based abstraction for object storage backends
(S3, MinIO and other S3-compatible services) plus the bucket alias registry
the storage browser resolves requests through.
"""

from .client import (
    ObjectHead,
    ObjectListing,
    ObjectSummary,
    StorageClient,
    StorageError,
    StoredObject,
)
from .keys import UnknownPrefixError, build_key, join_key
from .registry import (
    BucketNotConfiguredError,
    BucketRegistry,
    ResolvedBucket,
    StorageConnectivityError,
)

__all__ = [
    "BucketNotConfiguredError",
    "BucketRegistry",
    "ObjectHead",
    "ObjectListing",
    "ObjectSummary",
    "ResolvedBucket",
    "StorageClient",
    "StorageConnectivityError",
    "StorageError",
    "StoredObject",
    "UnknownPrefixError",
    "build_key",
    "join_key",
]
