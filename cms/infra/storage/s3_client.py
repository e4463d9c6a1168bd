"""S3-compatible storage client implementation.

This module provides an S3-compatible storage client that works with
AWS S3, MinIO, and other S3-compatible object storage services.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from cms.infra.storage.client import (
    ObjectHead,
    ObjectListing,
    ObjectSummary,
    StorageError,
    StoredObject,
)

if TYPE_CHECKING:
    from cms.common.config import Settings


class S3StorageClient:
    """S3-compatible object storage client bound to one region.

    Uses boto3 for all storage operations. boto3 clients are thread-safe, so a
    single instance is shared by every request (and every head worker) that
    targets the same region.
    """

    def __init__(self, *, settings: "Settings", region: str = "") -> None:
        """Initialize the S3 client.

        Args:
            settings: Application settings containing endpoint and credentials.
            region: Region the client signs requests for; empty uses the
                boto3 default resolution chain.

        Raises:
            StorageError: If boto3 is not installed or rejects the client
                configuration.
        """
        self._region = region
        self._client = self._build_client(settings, region)

    @property
    def region(self) -> str:
        return self._region

    @staticmethod
    def _build_client(settings: "Settings", region: str) -> Any:
        """Create a boto3 S3 client from settings."""
        try:
            import boto3
            from botocore.config import Config
        except ImportError as exc:
            raise StorageError(
                "boto3 and botocore are required for S3 storage backend. "
                "Install with: pip install boto3"
            ) from exc

        addressing_style = (settings.S3_ADDRESSING_STYLE or "auto").strip().lower()
        try:
            config = Config(s3={"addressing_style": addressing_style})
            return boto3.client(
                "s3",
                endpoint_url=settings.S3_ENDPOINT_URL,
                region_name=region or None,
                aws_access_key_id=settings.S3_ACCESS_KEY_ID,
                aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
                use_ssl=bool(settings.S3_USE_SSL),
                config=config,
            )
        except Exception as exc:
            raise StorageError(
                f"Failed to create S3 client for region {region or '<default>'}: {exc}"
            ) from exc

    def list_objects(
        self,
        *,
        bucket: str,
        prefix: str | None = None,
        delimiter: str | None = "/",
        continuation_token: str | None = None,
        max_keys: int = 1000,
    ) -> ObjectListing:
        """List one page of objects and common prefixes."""
        params: dict[str, Any] = {"Bucket": bucket, "MaxKeys": int(max_keys)}
        if prefix:
            params["Prefix"] = prefix
        if delimiter:
            params["Delimiter"] = delimiter
        if continuation_token:
            params["ContinuationToken"] = continuation_token

        try:
            response = self._client.list_objects_v2(**params)
        except Exception as exc:
            raise StorageError(f"Failed to list objects: {exc}") from exc

        folders = [
            str(entry["Prefix"])
            for entry in response.get("CommonPrefixes") or []
            if entry.get("Prefix")
        ]
        objects = [
            ObjectSummary(
                key=str(entry["Key"]),
                size=int(entry.get("Size") or 0),
                last_modified=entry.get("LastModified"),
                etag=entry.get("ETag"),
            )
            for entry in response.get("Contents") or []
            if entry.get("Key")
        ]
        return ObjectListing(
            folders=folders,
            objects=objects,
            is_truncated=bool(response.get("IsTruncated")),
            next_continuation_token=response.get("NextContinuationToken") or None,
        )

    def head_object(self, *, bucket: str, object_key: str) -> ObjectHead:
        """Get object metadata without downloading the content."""
        try:
            response = self._client.head_object(Bucket=bucket, Key=object_key)
        except Exception as exc:
            raise StorageError(f"Failed to get object metadata: {exc}") from exc

        size = response.get("ContentLength")
        return ObjectHead(
            size_bytes=int(size) if size is not None else 0,
            etag=response.get("ETag"),
            content_type=response.get("ContentType"),
            metadata=dict(response.get("Metadata") or {}),
        )

    def get_object(self, *, bucket: str, object_key: str) -> StoredObject:
        """Download the whole object into memory."""
        try:
            response = self._client.get_object(Bucket=bucket, Key=object_key)
            body = response["Body"].read()
        except Exception as exc:
            raise StorageError(f"Failed to read object: {exc}") from exc

        length = response.get("ContentLength")
        return StoredObject(
            body=body,
            content_type=response.get("ContentType"),
            content_length=int(length) if length is not None else None,
        )

    def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        body: bytes,
        content_type: str | None = None,
    ) -> None:
        """Create or replace an object."""
        params: dict[str, Any] = {"Bucket": bucket, "Key": object_key, "Body": body}
        if content_type:
            params["ContentType"] = content_type

        try:
            self._client.put_object(**params)
        except Exception as exc:
            raise StorageError(f"Failed to write object: {exc}") from exc

    def copy_object(self, *, bucket: str, source_key: str, object_key: str) -> None:
        """Copy an object to a new key in the same bucket."""
        try:
            self._client.copy_object(
                Bucket=bucket,
                Key=object_key,
                CopySource={"Bucket": bucket, "Key": source_key},
            )
        except Exception as exc:
            raise StorageError(f"Failed to copy object: {exc}") from exc

    def delete_object(self, *, bucket: str, object_key: str) -> None:
        """Delete an object from storage."""
        try:
            self._client.delete_object(Bucket=bucket, Key=object_key)
        except Exception as exc:
            raise StorageError(f"Failed to delete object: {exc}") from exc

    def head_bucket(self, *, bucket: str) -> None:
        """Verify the bucket is reachable with the configured credentials."""
        try:
            self._client.head_bucket(Bucket=bucket)
        except Exception as exc:
            raise StorageError(f"Failed to reach bucket {bucket}: {exc}") from exc
