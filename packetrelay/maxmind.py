"""Locations of an IP network database and the entries it holds."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Union

_SCHEME = re.compile(r"^([A-Za-z][A-Za-z0-9+.\-]*):(.*)$", re.DOTALL)
_SPECIAL_SCHEMES = {"http", "https", "ws", "wss", "ftp"}


@dataclass(frozen=True)
class FileSource:
    """A database read from a local file."""

    path: Path


@dataclass(frozen=True)
class UrlSource:
    """A database downloaded from a URL."""

    url: str


Source = Union[FileSource, UrlSource]


def _is_url(text: str) -> bool:
    match = _SCHEME.match(text)
    if match is None:
        return False
    scheme, rest = match.group(1).lower(), match.group(2)
    if scheme in _SPECIAL_SCHEMES:
        host = re.split(r"[/\\?#]", rest.lstrip("/\\"), maxsplit=1)[0]
        host = host.rsplit("@", 1)[-1]
        return bool(host) and not host.startswith(":")
    return True


def parse_source(text: str) -> Source:
    """Read `text` as a URL if it has a valid scheme, otherwise as a file path."""
    if _is_url(text):
        return UrlSource(text)
    if text:
        return FileSource(Path(text))
    raise ValueError(f"'{text}' is not a valid URL or path")


def source_from_json(data: Mapping[str, Any]) -> Source:
    """Build a source from ``{"kind": "File", "path": ...}`` or ``{"kind": "Url", "url": ...}``."""
    kind = data.get("kind")
    if kind == "File":
        path = data.get("path")
        if not isinstance(path, str):
            raise ValueError("a File source needs a string `path`")
        return FileSource(Path(path))
    if kind == "Url":
        url = data.get("url")
        if not isinstance(url, str) or not _is_url(url):
            raise ValueError("a Url source needs a valid `url`")
        return UrlSource(url)
    raise ValueError(f"unknown source kind {kind!r}")


def source_to_json(source: Source) -> dict[str, str]:
    """Return the JSON form of `source`."""
    if isinstance(source, FileSource):
        return {"kind": "File", "path": str(source.path)}
    if isinstance(source, UrlSource):
        return {"kind": "Url", "url": source.url}
    raise TypeError(f"not a source: {source!r}")


def _check(kind: str, key: str, value: Any) -> Any:
    if kind == "str" and isinstance(value, str):
        return value
    if kind == "bool" and isinstance(value, bool):
        return value
    if kind == "u64" and isinstance(value, int) and not isinstance(value, bool) and 0 <= value < 2**64:
        return value
    if kind == "list[str]" and isinstance(value, list) and all(isinstance(item, str) for item in value):
        return list(value)
    if (
        kind == "list[u64]"
        and isinstance(value, list)
        and all(isinstance(item, int) and not isinstance(item, bool) and 0 <= item < 2**64 for item in value)
    ):
        return list(value)
    raise ValueError(f"field {key!r} must be {kind}, got {value!r}")


def _entry_field(kind: str, key: str = "") -> Any:
    metadata = {"kind": kind, "key": key}
    if kind == "str":
        return field(default="", metadata=metadata)
    if kind == "bool":
        return field(default=False, metadata=metadata)
    if kind == "u64":
        return field(default=0, metadata=metadata)
    return field(default_factory=list, metadata=metadata)


@dataclass
class IpNetEntry:
    """Network and AS information about an IP address; missing fields are empty."""

    allocation: str = _entry_field("str")
    allocation_cc: str = _entry_field("str")
    allocation_registry: str = _entry_field("str")
    allocation_status: str = _entry_field("str")
    as_number: int = _entry_field("u64", "as")
    as_cc: str = _entry_field("str")
    as_entity: str = _entry_field("str")
    as_name: str = _entry_field("str")
    as_private: bool = _entry_field("bool")
    as_registry: str = _entry_field("str")
    prefix: str = _entry_field("str")
    prefix_asset: list[str] = _entry_field("list[str]")
    prefix_assignment: str = _entry_field("str")
    prefix_bogon: bool = _entry_field("bool")
    prefix_entity: str = _entry_field("str")
    prefix_name: str = _entry_field("str")
    prefix_origins: list[int] = _entry_field("list[u64]")
    prefix_registry: str = _entry_field("str")
    rpki_status: str = _entry_field("str")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "IpNetEntry":
        """Build an entry from a database record; unknown keys are ignored."""
        values = {}
        for entry_field in fields(cls):
            key = entry_field.metadata["key"] or entry_field.name
            if key in data:
                values[entry_field.name] = _check(entry_field.metadata["kind"], key, data[key])
        return cls(**values)