"""Pydantic schemas for the storage browser endpoints.

Field names are exposed in camelCase, which is what the browser UI sends and
expects.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AliasesOut(CamelModel):
    aliases: list[str]


class PrefixesOut(CamelModel):
    prefixes: dict[str, str]


class FolderOut(CamelModel):
    prefix: str


class ObjectOut(CamelModel):
    key: str
    size: int
    last_modified: datetime | None = None
    e_tag: str | None = None


class MetaFilterOut(CamelModel):
    attempted: int
    succeeded: int
    failed: int
    matched: int


class ListingOut(CamelModel):
    bucket: str
    prefix: str
    folders: list[FolderOut]
    objects: list[ObjectOut]
    is_truncated: bool
    next_continuation_token: str | None = None
    meta_filter_applied: bool
    head_requests: int
    meta_filter: MetaFilterOut


class ObjectContentOut(CamelModel):
    key: str
    content_type: str
    size: int
    mode: str
    text: str | None = None
    base64: str | None = None


class ObjectWrite(CamelModel):
    alias: str = "default"
    key: str = ""
    content: str | None = None
    content_type: str | None = None


class ObjectRename(CamelModel):
    action: str = ""
    alias: str = "default"
    from_key: str = ""
    to_key: str = ""


class WriteOut(CamelModel):
    ok: bool = True
    bucket: str
    key: str


class RenameOut(CamelModel):
    ok: bool = True
    bucket: str
    from_key: str
    to_key: str


class UploadOut(CamelModel):
    ok: bool = True
    uploaded: list[str] = Field(default_factory=list)
    bucket: str
    base_key: str
