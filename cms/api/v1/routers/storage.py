from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile as FormFile

from cms.api.v1.deps import get_storage_service, require_dev_mode
from cms.api.v1.schemas.storage import (
    AliasesOut,
    FolderOut,
    ListingOut,
    MetaFilterOut,
    ObjectContentOut,
    ObjectOut,
    ObjectRename,
    ObjectWrite,
    PrefixesOut,
    RenameOut,
    UploadOut,
    WriteOut,
)
from cms.api.v1.utils import PlainTextHTTPError, storage_errors
from cms.app.services.storage_service import (
    ListingPage,
    ListingQuery,
    StorageBrowserService,
    UploadFile,
)

router = APIRouter(dependencies=[Depends(require_dev_mode)])

RENAME_ACTION = "rename"


def _listing_out(page: ListingPage) -> ListingOut:
    return ListingOut(
        bucket=page.bucket,
        prefix=page.prefix,
        folders=[FolderOut(prefix=folder) for folder in page.folders],
        objects=[
            ObjectOut(
                key=obj.key,
                size=obj.size,
                last_modified=obj.last_modified,
                e_tag=obj.etag,
            )
            for obj in page.objects
        ],
        is_truncated=page.is_truncated,
        next_continuation_token=page.next_continuation_token,
        meta_filter_applied=page.meta_filter_applied,
        head_requests=page.head_requests,
        meta_filter=MetaFilterOut(
            attempted=page.meta_filter.attempted,
            succeeded=page.meta_filter.succeeded,
            failed=page.meta_filter.failed,
            matched=page.meta_filter.matched,
        ),
    )


@router.get("/dev/storage")
def browse_storage(
    alias: str = Query(default="default"),
    prefix: str | None = Query(default=None),
    path: str | None = Query(default=None),
    key: str | None = Query(default=None),
    search: str | None = Query(default=None),
    continuation_token: str | None = Query(default=None, alias="continuationToken"),
    max_keys: str | None = Query(default=None, alias="maxKeys"),
    op: str | None = Query(default=None),
    meta_key: str | None = Query(default=None, alias="metaKey"),
    meta_value: str | None = Query(default=None, alias="metaValue"),
    meta_match: str | None = Query(default=None, alias="metaMatch"),
    head_limit: str | None = Query(default=None, alias="headLimit"),
    service: StorageBrowserService = Depends(get_storage_service),
) -> dict[str, Any]:
    """List a folder, read one object, or describe the configuration.

    ``op=buckets`` and ``op=prefixes`` return the configured aliases and named
    prefixes. A non-empty ``key`` returns that object's content. Otherwise the
    folder selected by ``prefix``/``path`` is listed.
    """
    if op == "buckets":
        return AliasesOut(aliases=service.list_aliases()).model_dump(by_alias=True)
    if op == "prefixes":
        return PrefixesOut(prefixes=service.list_prefixes()).model_dump(by_alias=True)

    with storage_errors():
        if key:
            content = service.read_object(alias, key)
            return ObjectContentOut(
                key=content.key,
                content_type=content.content_type,
                size=content.size,
                mode=content.mode,
                text=content.text,
                base64=content.base64,
            ).model_dump(by_alias=True, exclude_none=True)

        query = ListingQuery.build(
            alias=alias,
            prefix_name=prefix,
            path=path,
            search=search,
            continuation_token=continuation_token,
            max_keys=max_keys,
            meta_key=meta_key,
            meta_value=meta_value,
            meta_match=meta_match,
            head_limit=head_limit,
        )
        page = service.list_objects(query)
    return _listing_out(page).model_dump(mode="json", by_alias=True)


@router.put("/dev/storage")
async def write_object(
    request: Request,
    service: StorageBrowserService = Depends(get_storage_service),
) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as exc:
        raise PlainTextHTTPError(400, "Invalid JSON body") from exc
    try:
        payload = ObjectWrite.model_validate(body)
    except ValidationError as exc:
        raise PlainTextHTTPError(400, "Invalid write payload") from exc
    with storage_errors():
        bucket, key = await run_in_threadpool(
            service.write_object,
            payload.alias,
            payload.key,
            payload.content,
            payload.content_type,
        )
    return WriteOut(bucket=bucket, key=key).model_dump(by_alias=True)


@router.post("/dev/storage")
async def rename_or_upload(
    request: Request,
    service: StorageBrowserService = Depends(get_storage_service),
) -> dict[str, Any]:
    """JSON bodies carry actions (``rename``); anything else is a multipart upload."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError as exc:
            raise PlainTextHTTPError(400, "Invalid JSON body") from exc
        if not isinstance(body, dict) or body.get("action") != RENAME_ACTION:
            raise PlainTextHTTPError(400, "Unknown JSON action")
        try:
            payload = ObjectRename.model_validate(body)
        except ValidationError as exc:
            raise PlainTextHTTPError(400, "Invalid rename payload") from exc
        with storage_errors():
            bucket = await run_in_threadpool(
                service.rename_object, payload.alias, payload.from_key, payload.to_key
            )
        return RenameOut(
            bucket=bucket,
            from_key=payload.from_key.lstrip("/"),
            to_key=payload.to_key.lstrip("/"),
        ).model_dump(by_alias=True)

    form = await request.form()
    files: list[UploadFile] = []
    for _, value in form.multi_items():
        if isinstance(value, FormFile) and value.filename:
            files.append(
                UploadFile(
                    filename=value.filename,
                    body=await value.read(),
                    content_type=value.content_type,
                )
            )
    alias = str(form.get("alias") or "default")
    with storage_errors():
        result = await run_in_threadpool(
            service.upload_files,
            alias,
            files,
            prefix_name=str(form.get("prefix") or "") or None,
            path=str(form.get("path") or ""),
        )
    return UploadOut(
        uploaded=result.uploaded, bucket=result.bucket, base_key=result.base_key
    ).model_dump(by_alias=True)


@router.delete("/dev/storage")
def delete_object(
    alias: str = Query(default="default"),
    key: str = Query(default=""),
    service: StorageBrowserService = Depends(get_storage_service),
) -> dict[str, Any]:
    with storage_errors():
        bucket, object_key = service.delete_object(alias, key)
    return WriteOut(bucket=bucket, key=object_key).model_dump(by_alias=True)
