#!/usr/bin/env python3
"""Command-line directory browser for the development storage endpoint.

Usage:
  .venv/bin/python scripts/storage_browser.py buckets
  .venv/bin/python scripts/storage_browser.py ls --prefix content posts/2026
  .venv/bin/python scripts/storage_browser.py ls --path content --meta-key status --meta-value draft
  .venv/bin/python scripts/storage_browser.py cat content/index.md
  .venv/bin/python scripts/storage_browser.py put content/index.md --file index.md
  .venv/bin/python scripts/storage_browser.py mv content/a.md content/b.md
  .venv/bin/python scripts/storage_browser.py rm content/b.md
  .venv/bin/python scripts/storage_browser.py upload --prefix media --path 2026 cover.png

The server is taken from CMS_BASE_URL (default http://localhost:8000).
"""

from __future__ import annotations

import argparse
import base64
import mimetypes
import os
import sys
from contextlib import ExitStack
from pathlib import Path
from typing import Any

import requests

ENDPOINT = "/api/dev/storage"
_UNITS = ("B", "KB", "MB", "GB", "TB")


def _base_url() -> str:
    return os.getenv("CMS_BASE_URL", "http://localhost:8000").rstrip("/")


def _request(method: str, *, params=None, json=None, data=None, files=None):
    resp = requests.request(
        method,
        f"{_base_url()}{ENDPOINT}",
        params=params,
        json=json,
        data=data,
        files=files,
        timeout=60,
    )
    if resp.status_code >= 400:
        # the endpoint answers errors in plain text
        raise SystemExit(f"{resp.status_code}: {resp.text}")
    return resp


def fmt_bytes(size: float) -> str:
    """Human readable size: ``512 B``, ``1.5 KB``, ``12 MB``."""
    index = 0
    value = float(size)
    while value >= 1024 and index < len(_UNITS) - 1:
        value /= 1024
        index += 1
    digits = 1 if value < 10 and index > 0 else 0
    return f"{value:.{digits}f} {_UNITS[index]}"


def _print_listing(body: dict[str, Any]) -> None:
    print(f"bucket: {body['bucket']}  prefix: {body['prefix'] or '(none)'}")
    for folder in body["folders"]:
        name = folder["prefix"].rstrip("/").rsplit("/", 1)[-1]
        print(f"  {name}/")
    for obj in body["objects"]:
        name = obj["key"].rsplit("/", 1)[-1]
        modified = obj.get("lastModified") or "-"
        print(f"  {name:<40} {fmt_bytes(obj['size']):>10}  {modified}")
    if body.get("metaFilterApplied"):
        report = body["metaFilter"]
        print(
            f"metadata filter: {report['matched']} matched, "
            f"{report['failed']} of {report['attempted']} lookups failed"
        )
    if body.get("isTruncated"):
        print(f"more results: --token {body['nextContinuationToken']}")


def cmd_buckets(args: argparse.Namespace) -> None:
    for alias in _request("GET", params={"op": "buckets"}).json()["aliases"]:
        print(alias)


def cmd_prefixes(args: argparse.Namespace) -> None:
    prefixes = _request("GET", params={"op": "prefixes"}).json()["prefixes"]
    for name, value in prefixes.items():
        print(f"{name}\t{value}")


def cmd_ls(args: argparse.Namespace) -> None:
    params = {
        "alias": args.alias,
        "prefix": args.prefix,
        "path": args.path_arg or args.path,
        "search": args.search,
        "continuationToken": args.token,
        "maxKeys": args.max_keys,
        "metaKey": args.meta_key,
        "metaValue": args.meta_value,
        "metaMatch": args.meta_match,
        "headLimit": args.head_limit,
    }
    params = {key: value for key, value in params.items() if value}
    _print_listing(_request("GET", params=params).json())


def cmd_cat(args: argparse.Namespace) -> None:
    body = _request("GET", params={"alias": args.alias, "key": args.key}).json()
    if body["mode"] == "text":
        sys.stdout.write(body["text"])
        return
    raw = base64.b64decode(body["base64"])
    if args.output:
        Path(args.output).write_bytes(raw)
        print(f"wrote {fmt_bytes(len(raw))} to {args.output}")
    else:
        print(f"<{body['contentType']}, {fmt_bytes(body['size'])}; use --output>")


def cmd_put(args: argparse.Namespace) -> None:
    if args.file:
        content = Path(args.file).read_text(encoding="utf-8")
    else:
        content = sys.stdin.read()
    payload = {"alias": args.alias, "key": args.key, "content": content}
    if args.content_type:
        payload["contentType"] = args.content_type
    body = _request("PUT", json=payload).json()
    print(f"saved {body['bucket']}/{body['key']}")


def cmd_mv(args: argparse.Namespace) -> None:
    body = _request(
        "POST",
        json={
            "action": "rename",
            "alias": args.alias,
            "fromKey": args.from_key,
            "toKey": args.to_key,
        },
    ).json()
    print(f"renamed {body['fromKey']} -> {body['toKey']}")


def cmd_rm(args: argparse.Namespace) -> None:
    if not args.yes:
        answer = input(f"Delete object?\n{args.key}\n[y/N] ")
        if answer.strip().lower() not in {"y", "yes"}:
            return
    body = _request("DELETE", params={"alias": args.alias, "key": args.key}).json()
    print(f"deleted {body['bucket']}/{body['key']}")


def cmd_upload(args: argparse.Namespace) -> None:
    with ExitStack() as stack:
        files = []
        for name in args.files:
            path = Path(name)
            content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
            handle = stack.enter_context(path.open("rb"))
            files.append(("files", (path.name, handle, content_type)))
        data = {"alias": args.alias, "prefix": args.prefix or "", "path": args.path or ""}
        body = _request("POST", data=data, files=files).json()
    target = body["baseKey"] or "(bucket root)"
    print(f"uploaded {len(body['uploaded'])} file(s) to {body['bucket']}/{target}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Browse the CMS development storage")
    parser.add_argument("--alias", default="default", help="Bucket alias")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("buckets", help="List bucket aliases").set_defaults(func=cmd_buckets)
    sub.add_parser("prefixes", help="List named prefixes").set_defaults(func=cmd_prefixes)

    ls = sub.add_parser("ls", help="List a folder")
    ls.add_argument("path_arg", nargs="?", default=None, metavar="PATH")
    ls.add_argument("--prefix", default=None, help="Named prefix, e.g. content")
    ls.add_argument("--path", default=None)
    ls.add_argument("--search", default=None)
    ls.add_argument("--token", default=None, help="Continuation token")
    ls.add_argument("--max-keys", default=None)
    ls.add_argument("--meta-key", default=None)
    ls.add_argument("--meta-value", default=None)
    ls.add_argument(
        "--meta-match",
        default=None,
        choices=("equals", "includes", "prefix", "exists"),
    )
    ls.add_argument("--head-limit", default=None)
    ls.set_defaults(func=cmd_ls)

    cat = sub.add_parser("cat", help="Print an object")
    cat.add_argument("key")
    cat.add_argument("--output", default=None, help="Write binary content here")
    cat.set_defaults(func=cmd_cat)

    put = sub.add_parser("put", help="Write a text object from a file or stdin")
    put.add_argument("key")
    put.add_argument("--file", default=None)
    put.add_argument("--content-type", default=None)
    put.set_defaults(func=cmd_put)

    mv = sub.add_parser("mv", help="Rename an object (copy then delete)")
    mv.add_argument("from_key")
    mv.add_argument("to_key")
    mv.set_defaults(func=cmd_mv)

    rm = sub.add_parser("rm", help="Delete an object")
    rm.add_argument("key")
    rm.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")
    rm.set_defaults(func=cmd_rm)

    upload = sub.add_parser("upload", help="Upload files")
    upload.add_argument("files", nargs="+")
    upload.add_argument("--prefix", default=None)
    upload.add_argument("--path", default=None)
    upload.set_defaults(func=cmd_upload)
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
