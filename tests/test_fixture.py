from distlab.codec import decode, encode
from distlab.fixture import Msg, MsgType


def test_basic_encode_decode():
    msg = Msg(type=MsgType.PUT, id=42, name="the answer", paylad=[bytes([7] * 3)] * 2)
    buf = encode(msg)
    msg1 = decode(Msg, buf)
    assert msg == msg1


def test_default():
    msg = Msg()
    msg1 = decode(Msg, b"")
    assert msg == msg1


def test_wire_bytes():
    msg = Msg(type=MsgType.PUT, id=42, name="the answer", paylad=[bytes([7] * 3)] * 2)
    expected = (
        b"\x08\x01"
        + b"\x10\x2a"
        + b"\x1a\x0athe answer"
        + b"\x22\x03\x07\x07\x07"
        + b"\x22\x03\x07\x07\x07"
    )
    assert msg.encode() == expected
    assert msg.encoded_len() == len(expected)


def test_is_valid():
    assert [MsgType.is_valid(v) for v in range(-1, 5)] == [False, True, True, True, True, False]


def test_from_int():
    assert MsgType.from_int(2) is MsgType.GET
    assert MsgType.from_int(3) is MsgType.DEL
    assert MsgType.from_int(9) is None


def test_message_type_and_set_type():
    msg = Msg()
    assert msg.message_type() is MsgType.UNKNOWN
    msg.set_type(MsgType.DEL)
    assert msg.type == 3
    assert msg.message_type() is MsgType.DEL


def test_invalid_type_value_reads_as_unknown():
    msg = decode(Msg, b"\x08\x09")
    assert msg.type == 9
    assert msg.message_type() is MsgType.UNKNOWN


def test_payload_round_trip_keeps_empty_entries():
    msg = Msg(paylad=[b"", b"x", b""])
    assert decode(Msg, encode(msg)).paylad == [b"", b"x", b""]