from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from fastapi import Request
from fastapi.responses import PlainTextResponse

from cms.app.services.base import ServiceError
from cms.app.services.storage_service import InvalidStorageRequestError
from cms.infra.storage.client import StorageError
from cms.infra.storage.keys import UnknownPrefixError
from cms.infra.storage.registry import BucketNotConfiguredError


class PlainTextHTTPError(Exception):
    """An error answered with a ``text/plain`` body instead of problem+json."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


async def plain_text_error_handler(
    request: Request, exc: PlainTextHTTPError
) -> PlainTextResponse:
    return PlainTextResponse(exc.message, status_code=exc.status_code)


@contextmanager
def storage_errors() -> Iterator[None]:
    """Translate storage and service failures into plain-text HTTP errors.

    Validation problems become 400 with the bare message; configuration and
    backend failures become 500 with ``Error: <message>``.
    """
    try:
        yield
    except (InvalidStorageRequestError, UnknownPrefixError) as exc:
        raise PlainTextHTTPError(400, str(exc)) from exc
    except (BucketNotConfiguredError, StorageError, ServiceError) as exc:
        raise PlainTextHTTPError(500, f"Error: {exc}") from exc
