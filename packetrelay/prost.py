"""Helpers for protobuf messages and the well-known ``Struct``/``Value`` types."""

from __future__ import annotations

import math
from typing import Any, Optional

from google.protobuf import struct_pb2
from google.protobuf.message import Message

_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1


def encode(message: Message) -> bytes:
    """Serialise `message` to its protobuf wire form."""
    return message.SerializeToString()


def _number_to_i64(number: float) -> int:
    if math.isnan(number):
        return 0
    if number >= _I64_MAX:
        return _I64_MAX
    if number <= _I64_MIN:
        return _I64_MIN
    return int(number)


def value_from_kind(value: struct_pb2.Value) -> Any:
    """Convert a protobuf ``Value`` into plain JSON-like Python data.

    Numbers are truncated to integers. Entries of lists and structs that hold
    no value are dropped; a top-level value that holds nothing is an error.
    """
    kind = value.WhichOneof("kind")
    if kind is None:
        raise ValueError("value has no kind set")
    if kind == "null_value":
        return None
    if kind == "bool_value":
        return value.bool_value
    if kind == "number_value":
        return _number_to_i64(value.number_value)
    if kind == "string_value":
        return value.string_value
    if kind == "list_value":
        return [value_from_kind(item) for item in value.list_value.values if item.WhichOneof("kind")]
    fields = value.struct_value.fields
    return {key: value_from_kind(fields[key]) for key in sorted(fields) if fields[key].WhichOneof("kind")}


def mapping_from_kind(value: struct_pb2.Value) -> Optional[dict[str, Any]]:
    """Convert a protobuf ``Value`` into a dict, or None if it is not a struct."""
    converted = value_from_kind(value)
    return converted if isinstance(converted, dict) else None


def from_json(value: Any) -> struct_pb2.Value:
    """Convert JSON-like Python data into a protobuf ``Value``."""
    result = struct_pb2.Value()
    if value is None:
        result.null_value = struct_pb2.NULL_VALUE
    elif isinstance(value, bool):
        result.bool_value = value
    elif isinstance(value, (int, float)):
        result.number_value = float(value)
    elif isinstance(value, str):
        result.string_value = value
    elif isinstance(value, (list, tuple)):
        result.list_value.SetInParent()
        for item in value:
            result.list_value.values.add().CopyFrom(from_json(item))
    elif isinstance(value, dict):
        result.struct_value.SetInParent()
        for key, item in value.items():
            result.struct_value.fields[str(key)].CopyFrom(from_json(item))
    else:
        raise TypeError(f"cannot convert {type(value).__name__} to a protobuf value")
    return result


def struct_from_json(value: Any) -> Optional[struct_pb2.Struct]:
    """Convert a JSON object into a protobuf ``Struct``, or None for anything else."""
    converted = from_json(value)
    if converted.WhichOneof("kind") == "struct_value":
        return converted.struct_value
    return None