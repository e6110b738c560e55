"""Metadata keys, references to metadata values, and symbols that resolve to values."""

from __future__ import annotations

import base64
import binascii
import logging
import sys
from typing import Any, Optional, Union

from packetrelay.metadata import Value

logger = logging.getLogger(__name__)


class Key:
    """An interned key in a metadata table."""

    __slots__ = ("_name",)

    def __init__(self, key: Union[str, "Key"]) -> None:
        self._name = key._name if isinstance(key, Key) else sys.intern(str(key))

    def __str__(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return repr(self._name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Key):
            return NotImplemented
        return self._name == other._name

    def __hash__(self) -> int:
        return hash(self._name)


DynamicMetadata = dict[Key, Value]


class Reference:
    """A reference to a value in a metadata table, written as ``$key``."""

    __slots__ = ("_key",)

    def __init__(self, key: Union[str, Key]) -> None:
        self._key = Key(key)

    def key(self) -> Key:
        """Return the referenced key."""
        return self._key

    def __str__(self) -> str:
        return f"${self._key}"

    def __repr__(self) -> str:
        return f"Reference({str(self._key)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Reference):
            return NotImplemented
        return self._key == other._key

    def __hash__(self) -> int:
        return hash(("reference", self._key))

    @classmethod
    def from_str(cls, string: str) -> "Reference":
        """Parse ``$key`` into a reference."""
        if not string.startswith("$"):
            raise ValueError("references are required to start with `$`")
        return cls(string[1:])


class Symbol:
    """Either a literal :class:`Value` or a :class:`Reference` to one."""

    __slots__ = ("_value",)

    def __init__(self, value: Any) -> None:
        if isinstance(value, (Reference, Value)):
            self._value = value
        else:
            self._value = Value(value)

    def __repr__(self) -> str:
        return f"Symbol({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Symbol):
            return NotImplemented
        return type(self._value) is type(other._value) and self._value == other._value

    def __hash__(self) -> int:
        return hash(self._value)

    def as_literal(self) -> Optional[Value]:
        """Return the literal value, or None for a reference."""
        return self._value if isinstance(self._value, Value) else None

    def as_reference(self) -> Optional[Reference]:
        """Return the reference, or None for a literal."""
        return self._value if isinstance(self._value, Reference) else None

    def resolve(self, metadata: DynamicMetadata) -> Optional[Value]:
        """Return the literal, or the referenced value from `metadata` (None if absent)."""
        if isinstance(self._value, Value):
            return self._value
        found = metadata.get(self._value.key())
        if found is None:
            logger.warning("couldn't resolve key %s", self._value)
        return found

    def resolve_to_bytes(self, metadata: DynamicMetadata) -> Optional[bytes]:
        """Resolve to bytes.

        Bytes are returned as they are, numbers as eight big-endian bytes and
        strings are decoded as base64; anything else gives None.
        """
        value = self.resolve(metadata)
        if value is None:
            return None
        inner = value.inner
        if isinstance(inner, bool):
            return None
        if isinstance(inner, int):
            return inner.to_bytes(8, "big")
        if isinstance(inner, bytes):
            return inner
        if isinstance(inner, str):
            try:
                return base64.b64decode(inner, validate=True)
            except (binascii.Error, ValueError):
                return None
        return None

    @classmethod
    def from_json(cls, data: Any) -> "Symbol":
        """Parse JSON data; strings starting with ``$`` become references."""
        if isinstance(data, str) and data.startswith("$"):
            return cls(Reference.from_str(data))
        return cls(Value.from_json(data))

    def to_json(self) -> Any:
        """Return JSON-compatible data for the symbol."""
        if isinstance(self._value, Reference):
            return str(self._value)
        return self._value.to_json()