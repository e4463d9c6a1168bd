"""Helpers for composing object keys from named prefixes and relative paths."""

from __future__ import annotations

from typing import Mapping


class UnknownPrefixError(ValueError):
    """Raised when a named prefix is not configured."""


def strip_slashes(value: str | None) -> str:
    return (value or "").strip("/")


def join_key(*parts: str | None) -> str:
    """Join key segments with ``/``, trimming slashes and dropping empties."""
    return "/".join(cleaned for cleaned in map(strip_slashes, parts) if cleaned)


def build_key(prefixes: Mapping[str, str], name: str, *parts: str | None) -> str:
    """Namespace ``parts`` under the literal prefix configured for ``name``."""
    try:
        base = prefixes[name]
    except KeyError as exc:
        raise UnknownPrefixError(f"Unknown prefix '{name}'") from exc
    return join_key(base, *parts)
