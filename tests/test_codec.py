from __future__ import annotations

from dataclasses import dataclass

import pytest

from distlab.codec import (
    DecodeError,
    EncodeError,
    Field,
    FieldKind,
    Message,
    decode,
    encode,
    field,
)
from distlab.fixture import Msg, MsgType


@dataclass
class Sample(Message):
    small: int = field(1, FieldKind.INT32)
    big: int = field(2, FieldKind.INT64)
    counter: int = field(3, FieldKind.UINT32)
    flag: bool = field(4, FieldKind.BOOL)
    label: str = field(5, FieldKind.STRING)
    numbers: list = field(6, FieldKind.INT64, repeated=True)
    chunks: list = field(7, FieldKind.BYTES, repeated=True)
    huge: int = field(8, FieldKind.UINT64)


def test_basic_encode_decode():
    msg = Msg(type=MsgType.PUT, id=42, name="the answer", paylad=[bytes([7] * 3)] * 2)
    buf = encode(msg)
    assert decode(Msg, buf) == msg


def test_default():
    assert decode(Msg, b"") == Msg()


def test_default_encodes_to_nothing():
    assert encode(Sample()) == b""
    assert Sample().encoded_len() == 0


def test_negative_int32_wire_bytes():
    data = encode(Sample(small=-1))
    assert data == b"\x08" + b"\xff" * 9 + b"\x01"
    assert decode(Sample, data) == Sample(small=-1)


def test_varint_300():
    assert encode(Sample(counter=300)) == b"\x18\xac\x02"


def test_packed_repeated_numbers():
    assert encode(Sample(numbers=[1, 2, 3])) == b"\x32\x03\x01\x02\x03"
    assert decode(Sample, b"\x32\x03\x01\x02\x03").numbers == [1, 2, 3]


def test_unpacked_repeated_numbers_are_accepted():
    assert decode(Sample, b"\x30\x01\x30\x02") == Sample(numbers=[1, 2])


def test_full_round_trip():
    sample = Sample(
        small=-(1 << 31),
        big=-(1 << 63),
        counter=(1 << 32) - 1,
        flag=True,
        label="héllo",
        numbers=[-5, 0, 7],
        chunks=[b"", b"ab"],
        huge=(1 << 64) - 1,
    )
    data = encode(sample)
    assert decode(Sample, data) == sample
    assert sample.encoded_len() == len(data)


def test_unknown_fields_are_skipped():
    data = b"\x78\x05" + b"\x75\x01\x02\x03\x04" + b"\x79" + bytes(8) + b"\x2a\x02hi"
    assert decode(Sample, data) == Sample(label="hi")


def test_group_is_skipped():
    data = b"\x4b\x08\x01\x4c\x08\x05"
    assert decode(Sample, data) == Sample(small=5)


def test_mismatched_end_group():
    with pytest.raises(DecodeError):
        decode(Sample, b"\x4b\x08\x01\x54")


@pytest.mark.parametrize(
    "data",
    [b"\x08", b"\x08\x80", b"\x2a\x05hi", b"\x0d\x00\x00\x00\x00", b"\x0e", b"\x00", b"\x0c"],
)
def test_malformed_input(data):
    with pytest.raises(DecodeError):
        decode(Sample, data)


def test_invalid_utf8_names_field():
    with pytest.raises(DecodeError) as info:
        decode(Sample, b"\x2a\x01\xff")
    assert "Sample.label" in str(info.value)
    assert info.value.stack == [("Sample", "label")]


def test_overlong_varint():
    with pytest.raises(DecodeError):
        decode(Sample, b"\x08" + b"\xff" * 10 + b"\x01")


@pytest.mark.parametrize(
    "sample",
    [
        Sample(small=1 << 31),
        Sample(counter=-1),
        Sample(label=b"x"),
        Sample(flag=1),
        Sample(chunks=["text"]),
        Sample(huge=1 << 64),
    ],
)
def test_encode_rejects_bad_values(sample):
    with pytest.raises(EncodeError):
        encode(sample)


def test_decode_requires_message_type():
    with pytest.raises(TypeError):
        decode(dict, b"")


def test_decode_requires_bytes():
    with pytest.raises(TypeError):
        decode(Sample, 5)


def test_encode_requires_message():
    with pytest.raises(TypeError):
        encode("not a message")


def test_field_rejects_tag_zero():
    with pytest.raises(ValueError):
        Field(0, FieldKind.INT32)


def test_decode_error_equality():
    assert DecodeError("invalid varint") == DecodeError("invalid varint")
    assert DecodeError("invalid varint") != DecodeError("buffer underflow")


def test_last_scalar_value_wins():
    assert decode(Sample, b"\x08\x01\x08\x02").small == 2