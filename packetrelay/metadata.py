"""Metadata values shared between filters and attached to endpoints."""

from __future__ import annotations

import base64
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Mapping, Optional, TypeVar

from google.protobuf import struct_pb2

from packetrelay import prost

KEY = "packetrelay.dev"

_U64_MAX = 2**64 - 1

T = TypeVar("T")


def _number_to_u64(number: float) -> int:
    if math.isnan(number) or number <= 0:
        return 0
    if number >= _U64_MAX:
        return _U64_MAX
    return int(number)


class Value:
    """A metadata value: a bool, an unsigned 64-bit number, a list, a string or bytes."""

    __slots__ = ("inner",)

    def __init__(self, inner: Any) -> None:
        if isinstance(inner, Value):
            inner = inner.inner
        if isinstance(inner, bool) or isinstance(inner, str):
            pass
        elif isinstance(inner, int):
            if not 0 <= inner <= _U64_MAX:
                raise ValueError(f"number {inner} is outside the unsigned 64-bit range")
        elif isinstance(inner, (bytes, bytearray, memoryview)):
            inner = bytes(inner)
        elif isinstance(inner, (list, tuple)):
            inner = [item if isinstance(item, Value) else Value(item) for item in inner]
        else:
            raise TypeError(f"unsupported metadata value type: {type(inner).__name__}")
        self.inner = inner

    def as_bytes(self) -> Optional[bytes]:
        """Return the bytes held, or None if this is not a bytes value."""
        return self.inner if isinstance(self.inner, bytes) else None

    def as_string(self) -> Optional[str]:
        """Return the string held, or None if this is not a string value."""
        return self.inner if isinstance(self.inner, str) else None

    def __str__(self) -> str:
        inner = self.inner
        if isinstance(inner, bool):
            return "true" if inner else "false"
        if isinstance(inner, bytes):
            return base64.b64encode(inner).decode("ascii")
        if isinstance(inner, list):
            return "[" + ",".join(str(item) for item in inner) + "]"
        return str(inner)

    def __repr__(self) -> str:
        return f"Value({self.inner!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Value):
            return NotImplemented
        a, b = self.inner, other.inner
        if isinstance(a, bool) or isinstance(b, bool):
            return isinstance(a, bool) and isinstance(b, bool) and a == b
        if isinstance(a, int):
            if isinstance(b, int):
                return a == b
            if isinstance(b, bytes):
                return len(b) == 1 and a == b[0]
            return False
        if isinstance(a, list):
            return isinstance(b, list) and a == b
        if isinstance(a, str):
            if isinstance(b, str):
                return a == b
            if isinstance(b, bytes):
                return a.encode("utf-8") == b
            return False
        if isinstance(b, bytes):
            return a == b
        if isinstance(b, str):
            return a == b.encode("utf-8")
        return False

    def __hash__(self) -> int:
        inner = self.inner
        if isinstance(inner, bool):
            return hash(("bool", inner))
        if isinstance(inner, int):
            if inner <= 0xFF:
                return hash(("bytes", bytes([inner])))
            return hash(("number", inner))
        if isinstance(inner, str):
            return hash(("bytes", inner.encode("utf-8")))
        if isinstance(inner, bytes):
            return hash(("bytes", inner))
        return hash(("list", tuple(inner)))

    def to_proto(self) -> struct_pb2.Value:
        """Convert to a protobuf ``Value``; bytes become a list of numbers."""
        result = struct_pb2.Value()
        inner = self.inner
        if isinstance(inner, bool):
            result.bool_value = inner
        elif isinstance(inner, int):
            result.number_value = float(inner)
        elif isinstance(inner, str):
            result.string_value = inner
        elif isinstance(inner, bytes):
            result.list_value.SetInParent()
            for byte in inner:
                result.list_value.values.add().number_value = float(byte)
        else:
            result.list_value.SetInParent()
            for item in inner:
                result.list_value.values.add().CopyFrom(item.to_proto())
        return result

    @classmethod
    def from_proto(cls, value: struct_pb2.Value) -> "Value":
        """Build a value from a protobuf ``Value``; nulls and structs are rejected."""
        kind = value.WhichOneof("kind")
        if kind is None or kind == "null_value":
            raise ValueError("unexpected missing value")
        if kind == "number_value":
            return cls(_number_to_u64(value.number_value))
        if kind == "string_value":
            return cls(value.string_value)
        if kind == "bool_value":
            return cls(value.bool_value)
        if kind == "list_value":
            return cls([cls.from_proto(item) for item in value.list_value.values])
        raise ValueError("unexpected struct value")

    def to_json(self) -> Any:
        """Return JSON-compatible data; bytes become a list of numbers."""
        inner = self.inner
        if isinstance(inner, bytes):
            return list(inner)
        if isinstance(inner, list):
            return [item.to_json() for item in inner]
        return inner

    @classmethod
    def from_json(cls, data: Any) -> "Value":
        """Build a value from JSON data: a bool, a non-negative integer, a list or a string."""
        if isinstance(data, bool) or isinstance(data, str):
            return cls(data)
        if isinstance(data, int):
            if not 0 <= data <= _U64_MAX:
                raise ValueError(f"{data} is not a valid metadata value")
            return cls(data)
        if isinstance(data, list):
            return cls([cls.from_json(item) for item in data])
        raise ValueError(f"{data!r} is not a valid metadata value")


@dataclass
class MetadataView(Generic[T]):
    """Metadata attached to an object: known entries under :data:`KEY`, plus user entries."""

    known: Optional[T] = None
    unknown: dict[str, Any] = field(default_factory=dict)

    def to_filter_metadata(self, encode_known: Callable[[T], struct_pb2.Struct]) -> dict[str, struct_pb2.Struct]:
        """Return the metadata as a mapping of names to protobuf structs.

        User entries that are not JSON objects are left out.
        """
        filter_metadata = {KEY: encode_known(self.known)}
        for key, value in self.unknown.items():
            converted = prost.struct_from_json(value)
            if converted is not None:
                filter_metadata[key] = converted
        return filter_metadata

    @classmethod
    def from_filter_metadata(
        cls,
        filter_metadata: Mapping[str, struct_pb2.Struct],
        decode_known: Callable[[struct_pb2.Struct], T],
    ) -> "MetadataView[T]":
        """Build a view from protobuf structs; `known` is None when :data:`KEY` is absent."""
        rest = dict(filter_metadata)
        known_struct = rest.pop(KEY, None)
        known = decode_known(known_struct) if known_struct is not None else None

        container = struct_pb2.Value()
        container.struct_value.SetInParent()
        for key, struct in rest.items():
            container.struct_value.fields[key].struct_value.CopyFrom(struct)
        unknown = prost.mapping_from_kind(container) or {}
        return cls(known=known, unknown=unknown)