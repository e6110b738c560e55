import pytest

from packetrelay.metadata import Value
from packetrelay.symbol import Key, Reference, Symbol
from packetrelay.utils import bytes_to_string


def test_key_equality_and_hash():
    assert Key("name") == Key("name")
    assert hash(Key("name")) == hash(Key("name"))
    assert str(Key("name")) == "name"
    assert Key(Key("name")) == Key("name")
    assert not Key("name") == Key("other")


def test_reference_from_str():
    reference = Reference.from_str("$foo")
    assert reference.key() == Key("foo")
    assert str(reference) == "$foo"


def test_reference_requires_dollar():
    with pytest.raises(ValueError, match="references are required to start with `\\$`"):
        Reference.from_str("foo")


def test_symbol_from_json_reference():
    symbol = Symbol.from_json("$key")
    assert symbol.as_reference() == Reference("key")
    assert symbol.as_literal() is None


def test_symbol_from_json_literal():
    symbol = Symbol.from_json("key")
    assert symbol.as_literal() == Value("key")
    assert symbol.as_reference() is None


@pytest.mark.parametrize("data", ["$key", "plain", 5, True, [1, "a"]])
def test_symbol_json_round_trip(data):
    assert Symbol.from_json(data).to_json() == data


def test_resolve_literal():
    assert Symbol(Value(3)).resolve({}) == Value(3)


def test_resolve_reference():
    metadata = {Key("k"): Value("v")}
    assert Symbol(Reference("k")).resolve(metadata) == Value("v")
    assert Symbol(Reference("missing")).resolve(metadata) is None


def test_resolve_number_to_bytes():
    result = Symbol(Value(258)).resolve_to_bytes({})
    assert len(result) == 8
    assert int.from_bytes(result, "big") == 258


def test_resolve_bytes_to_bytes():
    assert Symbol(Value(b"\x00\xff")).resolve_to_bytes({}) == b"\x00\xff"


def test_resolve_base64_string_to_bytes():
    encoded = bytes_to_string(b"hello")
    metadata = {Key("token"): Value(encoded)}
    assert Symbol(Reference("token")).resolve_to_bytes(metadata) == b"hello"


def test_resolve_invalid_base64_to_bytes():
    assert Symbol(Value("not base64!")).resolve_to_bytes({}) is None


def test_resolve_unsupported_to_bytes():
    assert Symbol(Value(True)).resolve_to_bytes({}) is None
    assert Symbol(Reference("missing")).resolve_to_bytes({}) is None


def test_symbol_wraps_raw_values():
    assert Symbol("x") == Symbol(Value("x"))