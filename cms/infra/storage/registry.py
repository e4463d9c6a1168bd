"""Bucket alias registry.

Resolves the short aliases used by the storage browser to a concrete bucket,
region and a storage client. Clients are cached per region so aliases that
share a region share a single client.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Mapping

from cms.common.config import DEFAULT_ALIAS, BucketSettings, Settings
from cms.infra.storage.client import StorageClient, StorageError
from cms.infra.storage.s3_client import S3StorageClient

logger = logging.getLogger("storage")

ClientFactory = Callable[[str], StorageClient]


class BucketNotConfiguredError(LookupError):
    """Raised when an alias is unknown and no default bucket exists."""


class StorageConnectivityError(RuntimeError):
    """Raised by the startup check when fail-fast mode is enabled."""


@dataclass(frozen=True, slots=True)
class ResolvedBucket:
    client: StorageClient
    bucket: str
    region: str


@dataclass(frozen=True, slots=True)
class ConnectivityResult:
    alias: str
    bucket: str
    region: str
    ok: bool
    error: str | None = None


class BucketRegistry:
    """Owns the alias table and the per-region client cache."""

    def __init__(
        self,
        buckets: Mapping[str, BucketSettings],
        *,
        default_region: str = "",
        prefixes: Mapping[str, str] | None = None,
        client_factory: ClientFactory,
    ) -> None:
        self._buckets = {alias.lower(): entry for alias, entry in buckets.items()}
        self._default_region = default_region
        self._prefixes = dict(prefixes or {})
        self._client_factory = client_factory
        self._clients: dict[str, StorageClient] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(
        cls, settings: Settings, *, client_factory: ClientFactory | None = None
    ) -> "BucketRegistry":
        factory = client_factory or (
            lambda region: S3StorageClient(settings=settings, region=region)
        )
        return cls(
            settings.S3_BUCKETS,
            default_region=settings.AWS_REGION,
            prefixes=settings.STORAGE_PREFIXES,
            client_factory=factory,
        )

    @property
    def aliases(self) -> list[str]:
        return list(self._buckets)

    @property
    def prefixes(self) -> dict[str, str]:
        return dict(self._prefixes)

    def entry(self, alias: str | None) -> BucketSettings:
        key = (alias or DEFAULT_ALIAS).strip().lower() or DEFAULT_ALIAS
        entry = self._buckets.get(key) or self._buckets.get(DEFAULT_ALIAS)
        if entry is None:
            raise BucketNotConfiguredError(
                f'No S3 bucket configured for alias "{alias}"'
            )
        return entry

    def resolve(self, alias: str | None) -> ResolvedBucket:
        entry = self.entry(alias)
        region = entry.region or self._default_region or ""
        return ResolvedBucket(
            client=self._client_for(region), bucket=entry.name, region=region
        )

    def _client_for(self, region: str) -> StorageClient:
        client = self._clients.get(region)
        if client is not None:
            return client
        with self._lock:
            client = self._clients.get(region)
            if client is None:
                logger.info(
                    "storage_client_created region=%s",
                    region or "<default>",
                    extra={"extra": {"region": region}},
                )
                client = self._client_factory(region)
                self._clients[region] = client
        return client

    def verify_connectivity(self, *, fail_fast: bool = False) -> list[ConnectivityResult]:
        """HEAD every configured bucket once.

        Failures are logged; with ``fail_fast`` the first failure raises
        ``StorageConnectivityError`` instead.
        """
        if not self._buckets:
            message = "storage check skipped: no buckets configured"
            if fail_fast:
                raise StorageConnectivityError(message)
            logger.warning(message)
            return []

        results: list[ConnectivityResult] = []
        for alias in self._buckets:
            resolved = self.resolve(alias)
            try:
                resolved.client.head_bucket(bucket=resolved.bucket)
            except StorageError as exc:
                message = (
                    f'storage check FAILED alias="{alias}" bucket="{resolved.bucket}" '
                    f'region="{resolved.region}" ({exc})'
                )
                if fail_fast:
                    raise StorageConnectivityError(message) from exc
                logger.error(message)
                results.append(
                    ConnectivityResult(
                        alias=alias,
                        bucket=resolved.bucket,
                        region=resolved.region,
                        ok=False,
                        error=str(exc),
                    )
                )
                continue
            logger.info(
                'storage check OK alias="%s" bucket="%s" region="%s"',
                alias,
                resolved.bucket,
                resolved.region,
            )
            results.append(
                ConnectivityResult(
                    alias=alias, bucket=resolved.bucket, region=resolved.region, ok=True
                )
            )
        return results
