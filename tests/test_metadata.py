import pytest
from google.protobuf import struct_pb2

from packetrelay import prost
from packetrelay.metadata import KEY, MetadataView, Value


def _encode(known):
    return prost.struct_from_json(known)


def _decode(struct):
    return prost.mapping_from_kind(struct_pb2.Value(struct_value=struct))


def test_display():
    assert str(Value(True)) == "true"
    assert str(Value(5)) == "5"
    assert str(Value("text")) == "text"
    assert str(Value([Value(1), Value("a")])) == "[1,a]"


def test_number_equals_single_byte_one_way():
    assert Value(97) == Value(b"a")
    assert not Value(b"a") == Value(97)
    assert not Value(1) == Value(b"\x01\x02")


def test_string_equals_bytes_both_ways():
    assert Value("abc") == Value(b"abc")
    assert Value(b"abc") == Value("abc")
    assert hash(Value("abc")) == hash(Value(b"abc"))


def test_bool_differs_from_number():
    assert not Value(True) == Value(1)
    assert not Value(1) == Value(True)


def test_accessors():
    assert Value(b"xy").as_bytes() == b"xy"
    assert Value("xy").as_bytes() is None
    assert Value("xy").as_string() == "xy"
    assert Value(b"xy").as_string() is None


@pytest.mark.parametrize("inner", [-1, 2**64])
def test_number_range(inner):
    with pytest.raises(ValueError):
        Value(inner)


def test_unsupported_type():
    with pytest.raises(TypeError):
        Value(1.5)


@pytest.mark.parametrize("inner", [True, 7, "text", [1, "a", [False]]])
def test_proto_round_trip(inner):
    assert Value.from_proto(Value(inner).to_proto()) == Value(inner)


def test_bytes_to_proto_becomes_numbers():
    restored = Value.from_proto(Value(b"\x01\x02").to_proto())
    assert restored == Value([Value(1), Value(2)])


def test_from_proto_saturates_negative_numbers():
    assert Value.from_proto(struct_pb2.Value(number_value=-3.0)) == Value(0)


def test_from_proto_errors():
    with pytest.raises(ValueError, match="missing"):
        Value.from_proto(struct_pb2.Value())
    with pytest.raises(ValueError, match="missing"):
        Value.from_proto(struct_pb2.Value(null_value=struct_pb2.NULL_VALUE))
    with pytest.raises(ValueError, match="struct"):
        Value.from_proto(prost.from_json({"a": 1}))


@pytest.mark.parametrize("data", [True, 3, "text", [1, ["a"]]])
def test_json_round_trip(data):
    assert Value.from_json(data).to_json() == data


def test_bytes_to_json():
    assert Value(b"\x05\x06").to_json() == [5, 6]


@pytest.mark.parametrize("data", [-1, 1.5, None, {"a": 1}])
def test_from_json_rejects(data):
    with pytest.raises(ValueError):
        Value.from_json(data)


def test_metadata_view_round_trip():
    view = MetadataView(known={"tokens": ["abc"]}, unknown={"user": {"a": "b"}, "scalar": 5})
    filter_metadata = view.to_filter_metadata(_encode)
    assert set(filter_metadata) == {KEY, "user"}
    restored = MetadataView.from_filter_metadata(filter_metadata, _decode)
    assert restored.known == {"tokens": ["abc"]}
    assert restored.unknown == {"user": {"a": "b"}}


def test_metadata_view_without_known():
    filter_metadata = {"user": prost.struct_from_json({"k": "v"})}
    restored = MetadataView.from_filter_metadata(filter_metadata, _decode)
    assert restored.known is None
    assert restored.unknown == {"user": {"k": "v"}}


def test_metadata_view_empty():
    restored = MetadataView.from_filter_metadata({}, _decode)
    assert restored == MetadataView()