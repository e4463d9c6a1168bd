"""Storage browser service.

Lists, filters, reads and edits objects in the buckets known to the
``BucketRegistry``. Listing is a single delimited call; optional metadata
filtering adds one detail (HEAD) call per listed object, issued in bounded
concurrent batches. Detail-call failures are tolerated and reported instead
of failing the request.
"""

from __future__ import annotations

import base64
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Sequence

from cms.infra.observability.metrics import STORAGE_HEAD_REQUESTS, STORAGE_OPERATIONS
from cms.infra.storage.client import ObjectSummary, StorageError
from cms.infra.storage.keys import build_key, join_key, strip_slashes
from cms.infra.storage.registry import BucketRegistry, ResolvedBucket

from .base import ServiceError

logger = logging.getLogger("storage")

DEFAULT_MAX_KEYS = 500
MAX_KEYS_LIMIT = 1000
DEFAULT_HEAD_LIMIT = 10
HEAD_LIMIT_MAX = 50
DEFAULT_CONTENT_TYPE = "text/plain; charset=utf-8"
BINARY_CONTENT_TYPE = "application/octet-stream"

META_MATCH_EQUALS = "equals"
META_MATCH_INCLUDES = "includes"
META_MATCH_PREFIX = "prefix"
META_MATCH_EXISTS = "exists"
META_MATCH_MODES: tuple[str, ...] = (
    META_MATCH_EQUALS,
    META_MATCH_INCLUDES,
    META_MATCH_PREFIX,
    META_MATCH_EXISTS,
)

_TEXT_LIKE = re.compile(
    r"^(text/|application/(json|xml|yaml|x-yaml|toml|javascript|typescript))"
)


class InvalidStorageRequestError(ServiceError):
    """Raised when a storage request is missing required input."""


class PartialRenameError(ServiceError):
    """Raised when a rename copied the object but could not delete the source.

    Both keys exist afterwards and have to be reconciled by the caller.
    """

    def __init__(self, *, bucket: str, from_key: str, to_key: str, cause: Exception):
        super().__init__(
            f'Rename partially applied in bucket "{bucket}": copied "{from_key}" '
            f'to "{to_key}" but failed to delete the source ({cause})'
        )
        self.bucket = bucket
        self.from_key = from_key
        self.to_key = to_key


def clamp(value: Any, *, default: int, lower: int, upper: int) -> int:
    """Parse ``value`` as an integer and clamp it to ``[lower, upper]``.

    Missing or unparsable values fall back to ``default``.
    """
    if value is None or value == "":
        number = default
    else:
        try:
            number = int(float(value))
        except (TypeError, ValueError, OverflowError):
            number = default
    return max(lower, min(upper, number))


def is_text_like(content_type: str) -> bool:
    return bool(_TEXT_LIKE.match(content_type))


def metadata_matches(actual: str | None, expected: str, mode: str) -> bool:
    """Match a user-metadata value against ``expected``.

    An empty ``expected`` only requires a non-empty value, whatever the mode.
    Unknown modes compare for equality.
    """
    lhs = actual or ""
    if not expected or mode == META_MATCH_EXISTS:
        return bool(lhs)
    if mode == META_MATCH_INCLUDES:
        return expected.lower() in lhs.lower()
    if mode == META_MATCH_PREFIX:
        return lhs.startswith(expected)
    return lhs == expected


def _batched(items: Sequence[ObjectSummary], size: int) -> Iterator[Sequence[ObjectSummary]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


@dataclass(frozen=True, slots=True)
class ListingQuery:
    """Normalized listing request. Use ``ListingQuery.build`` to clamp raw input."""

    alias: str = "default"
    prefix_name: str = ""
    path: str = ""
    search: str = ""
    continuation_token: str | None = None
    max_keys: int = DEFAULT_MAX_KEYS
    meta_key: str = ""
    meta_value: str = ""
    meta_match: str = META_MATCH_EQUALS
    head_limit: int = DEFAULT_HEAD_LIMIT

    @classmethod
    def build(
        cls,
        *,
        alias: str | None = None,
        prefix_name: str | None = None,
        path: str | None = None,
        search: str | None = None,
        continuation_token: str | None = None,
        max_keys: Any = None,
        meta_key: str | None = None,
        meta_value: str | None = None,
        meta_match: str | None = None,
        head_limit: Any = None,
    ) -> "ListingQuery":
        return cls(
            alias=(alias or "default").strip().lower() or "default",
            prefix_name=(prefix_name or "").strip(),
            path=strip_slashes(path),
            search=(search or "").strip(),
            continuation_token=continuation_token or None,
            max_keys=clamp(
                max_keys, default=DEFAULT_MAX_KEYS, lower=1, upper=MAX_KEYS_LIMIT
            ),
            meta_key=(meta_key or "").strip(),
            meta_value=(meta_value or "").strip(),
            meta_match=(meta_match or META_MATCH_EQUALS).strip().lower()
            or META_MATCH_EQUALS,
            head_limit=clamp(
                head_limit, default=DEFAULT_HEAD_LIMIT, lower=1, upper=HEAD_LIMIT_MAX
            ),
        )


@dataclass(frozen=True, slots=True)
class MetadataFilterReport:
    """Outcome of the per-object detail calls made by metadata filtering."""

    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    matched: int = 0


@dataclass(frozen=True, slots=True)
class ListingPage:
    bucket: str
    prefix: str
    folders: list[str]
    objects: list[ObjectSummary]
    is_truncated: bool
    next_continuation_token: str | None
    meta_filter_applied: bool = False
    meta_filter: MetadataFilterReport = field(default_factory=MetadataFilterReport)

    @property
    def head_requests(self) -> int:
        return self.meta_filter.attempted


@dataclass(frozen=True, slots=True)
class ObjectContent:
    key: str
    content_type: str
    size: int
    mode: str
    text: str | None = None
    base64: str | None = None


@dataclass(frozen=True, slots=True)
class UploadFile:
    filename: str
    body: bytes
    content_type: str | None = None


@dataclass(frozen=True, slots=True)
class UploadResult:
    bucket: str
    base_key: str
    uploaded: list[str]


class StorageBrowserService:
    """Application service behind the development storage browser."""

    def __init__(self, registry: BucketRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> BucketRegistry:
        return self._registry

    def list_aliases(self) -> list[str]:
        return self._registry.aliases

    def list_prefixes(self) -> dict[str, str]:
        return self._registry.prefixes

    def effective_prefix(self, query: ListingQuery) -> str:
        if query.prefix_name:
            return build_key(self._registry.prefixes, query.prefix_name, query.path)
        return query.path

    @contextmanager
    def _track(self, operation: str, alias: str) -> Iterator[None]:
        try:
            yield
        except Exception:
            STORAGE_OPERATIONS.labels(operation, alias, "error").inc()
            raise
        STORAGE_OPERATIONS.labels(operation, alias, "ok").inc()

    def list_objects(self, query: ListingQuery) -> ListingPage:
        """List one page of folders and objects, optionally filtered.

        Args:
            query: Normalized listing parameters.

        Returns:
            ListingPage with the surviving objects and filter diagnostics.

        Raises:
            BucketNotConfiguredError: If the alias cannot be resolved.
            UnknownPrefixError: If the named prefix is not configured.
            StorageError: If the listing call fails.
        """
        prefix = self.effective_prefix(query)
        with self._track("list", query.alias):
            resolved = self._registry.resolve(query.alias)
            # a trailing delimiter lists the children of the folder, not the folder itself
            listing = resolved.client.list_objects(
                bucket=resolved.bucket,
                prefix=f"{prefix}/" if prefix else None,
                delimiter="/",
                continuation_token=query.continuation_token,
                max_keys=query.max_keys,
            )

        objects = list(listing.objects)
        if query.search:
            needle = query.search.lower()
            objects = [o for o in objects if needle in o.key.lower()]

        report = MetadataFilterReport()
        if query.meta_key:
            objects, report = self._filter_by_metadata(resolved, objects, query)

        logger.info(
            "storage_list alias=%s bucket=%s prefix=%s objects=%d folders=%d head_requests=%d",
            query.alias,
            resolved.bucket,
            prefix or "-",
            len(objects),
            len(listing.folders),
            report.attempted,
            extra={
                "extra": {
                    "alias": query.alias,
                    "bucket": resolved.bucket,
                    "prefix": prefix,
                    "objects": len(objects),
                    "folders": len(listing.folders),
                    "head_failed": report.failed,
                }
            },
        )
        return ListingPage(
            bucket=resolved.bucket,
            prefix=prefix,
            folders=list(listing.folders),
            objects=objects,
            is_truncated=listing.is_truncated,
            next_continuation_token=listing.next_continuation_token,
            meta_filter_applied=bool(query.meta_key),
            meta_filter=report,
        )

    def _filter_by_metadata(
        self,
        resolved: ResolvedBucket,
        objects: Sequence[ObjectSummary],
        query: ListingQuery,
    ) -> tuple[list[ObjectSummary], MetadataFilterReport]:
        meta_key = query.meta_key

        def lookup(obj: ObjectSummary) -> tuple[ObjectSummary, bool, str | None]:
            try:
                head = resolved.client.head_object(
                    bucket=resolved.bucket, object_key=obj.key
                )
            except StorageError as exc:
                logger.debug("storage_head_failed key=%s error=%s", obj.key, exc)
                return obj, False, None
            metadata = head.metadata or {}
            value = metadata.get(meta_key.lower())
            if value is None:
                value = metadata.get(meta_key)
            return obj, True, value

        matched: list[ObjectSummary] = []
        succeeded = failed = 0
        for batch in _batched(objects, query.head_limit):
            with ThreadPoolExecutor(max_workers=len(batch)) as pool:
                outcomes = list(pool.map(lookup, batch))
            for obj, ok, value in outcomes:
                if not ok:
                    failed += 1
                    continue
                succeeded += 1
                if metadata_matches(value, query.meta_value, query.meta_match):
                    matched.append(obj)

        if succeeded:
            STORAGE_HEAD_REQUESTS.labels("ok").inc(succeeded)
        if failed:
            STORAGE_HEAD_REQUESTS.labels("error").inc(failed)
        report = MetadataFilterReport(
            attempted=succeeded + failed,
            succeeded=succeeded,
            failed=failed,
            matched=len(matched),
        )
        return matched, report

    def read_object(self, alias: str, key: str) -> ObjectContent:
        """Fetch a whole object and decode it as text when the type allows."""
        object_key = (key or "").lstrip("/")
        if not object_key:
            raise InvalidStorageRequestError("Missing key")

        with self._track("read", alias):
            resolved = self._registry.resolve(alias)
            stored = resolved.client.get_object(
                bucket=resolved.bucket, object_key=object_key
            )

        content_type = stored.content_type or BINARY_CONTENT_TYPE
        size = (
            stored.content_length
            if stored.content_length is not None
            else len(stored.body)
        )
        if is_text_like(content_type):
            return ObjectContent(
                key=object_key,
                content_type=content_type,
                size=size,
                mode="text",
                text=stored.body.decode("utf-8", errors="replace"),
            )
        return ObjectContent(
            key=object_key,
            content_type=content_type,
            size=size,
            mode="base64",
            base64=base64.b64encode(stored.body).decode("ascii"),
        )

    def write_object(
        self,
        alias: str,
        key: str,
        content: str | None,
        content_type: str | None = None,
    ) -> tuple[str, str]:
        """Create or replace a text object. Returns ``(bucket, key)``."""
        object_key = strip_slashes(key)
        if not object_key:
            raise InvalidStorageRequestError("Missing key")
        body = content.encode("utf-8") if isinstance(content, str) else b""

        with self._track("write", alias):
            resolved = self._registry.resolve(alias)
            resolved.client.put_object(
                bucket=resolved.bucket,
                object_key=object_key,
                body=body,
                content_type=content_type or DEFAULT_CONTENT_TYPE,
            )
        logger.info(
            "storage_write alias=%s bucket=%s key=%s bytes=%d",
            alias,
            resolved.bucket,
            object_key,
            len(body),
        )
        return resolved.bucket, object_key

    def upload_files(
        self,
        alias: str,
        files: Sequence[UploadFile],
        *,
        prefix_name: str | None = None,
        path: str | None = None,
    ) -> UploadResult:
        """Write each file under ``prefix/path/filename``."""
        if not files:
            raise InvalidStorageRequestError("No files provided")

        clean_path = strip_slashes(path)
        if prefix_name:
            base_key = build_key(self._registry.prefixes, prefix_name, clean_path)
        else:
            base_key = clean_path

        uploaded: list[str] = []
        with self._track("upload", alias):
            resolved = self._registry.resolve(alias)
            for item in files:
                object_key = join_key(base_key, item.filename.lstrip("/"))
                resolved.client.put_object(
                    bucket=resolved.bucket,
                    object_key=object_key,
                    body=item.body,
                    content_type=item.content_type or None,
                )
                uploaded.append(item.filename)
        logger.info(
            "storage_upload alias=%s bucket=%s base_key=%s files=%d",
            alias,
            resolved.bucket,
            base_key or "-",
            len(uploaded),
        )
        return UploadResult(bucket=resolved.bucket, base_key=base_key, uploaded=uploaded)

    def rename_object(self, alias: str, from_key: str, to_key: str) -> str:
        """Copy ``from_key`` to ``to_key`` then delete ``from_key``.

        The two steps are not atomic. If the delete fails, ``PartialRenameError``
        is raised and both keys remain. Returns the bucket name.
        """
        source = (from_key or "").lstrip("/")
        target = (to_key or "").lstrip("/")
        if not source or not target:
            raise InvalidStorageRequestError("Missing fromKey/toKey")

        with self._track("rename", alias):
            resolved = self._registry.resolve(alias)
            resolved.client.copy_object(
                bucket=resolved.bucket, source_key=source, object_key=target
            )
            try:
                resolved.client.delete_object(bucket=resolved.bucket, object_key=source)
            except StorageError as exc:
                logger.error(
                    "storage_rename_partial alias=%s bucket=%s from=%s to=%s",
                    alias,
                    resolved.bucket,
                    source,
                    target,
                    extra={
                        "extra": {
                            "alias": alias,
                            "bucket": resolved.bucket,
                            "from_key": source,
                            "to_key": target,
                        }
                    },
                )
                raise PartialRenameError(
                    bucket=resolved.bucket, from_key=source, to_key=target, cause=exc
                ) from exc
        return resolved.bucket

    def delete_object(self, alias: str, key: str) -> tuple[str, str]:
        """Delete by key. Missing keys are not distinguished from success."""
        object_key = (key or "").lstrip("/")
        if not object_key:
            raise InvalidStorageRequestError("Missing key")

        with self._track("delete", alias):
            resolved = self._registry.resolve(alias)
            resolved.client.delete_object(bucket=resolved.bucket, object_key=object_key)
        return resolved.bucket, object_key
