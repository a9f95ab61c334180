"""A small protocol-buffers codec for dataclass-based messages.

A message is a dataclass deriving from :class:`Message` whose fields are
declared with :func:`field`. Encoding follows proto3 rules: scalar fields
holding their default value are omitted, repeated numeric fields are packed,
and unknown fields are skipped on decoding.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Optional

_META = "distlab.codec"

_VARINT = 0
_I64 = 1
_LEN = 2
_SGROUP = 3
_EGROUP = 4
_I32 = 5

_MASK32 = (1 << 32) - 1
_MASK64 = (1 << 64) - 1
_MAX_TAG = (1 << 29) - 1


class EncodeError(ValueError):
    """Raised when a message cannot be encoded."""

    def __init__(self, description: str) -> None:
        super().__init__(description)
        self.description = description

    def __str__(self) -> str:
        return f"failed to encode Protobuf message: {self.description}"

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.description == other.description

    def __hash__(self) -> int:
        return hash((type(self), self.description))


class DecodeError(ValueError):
    """Raised when bytes cannot be decoded into a message."""

    def __init__(self, description: str) -> None:
        super().__init__(description)
        self.description = description
        self.stack: list[tuple[str, str]] = []

    def _push(self, message: str, field_name: str) -> None:
        self.stack.append((message, field_name))

    def __str__(self) -> str:
        context = "".join(f"{message}.{name}: " for message, name in self.stack)
        return f"failed to decode Protobuf message: {context}{self.description}"

    def __eq__(self, other: object) -> bool:
        return (
            type(self) is type(other)
            and self.description == other.description
            and self.stack == other.stack
        )

    def __hash__(self) -> int:
        return hash((type(self), self.description, tuple(self.stack)))


class FieldKind(Enum):
    """The scalar type a message field holds."""

    INT32 = "int32"
    INT64 = "int64"
    UINT32 = "uint32"
    UINT64 = "uint64"
    BOOL = "bool"
    ENUM = "enum"
    STRING = "string"
    BYTES = "bytes"

    @property
    def wire_type(self) -> int:
        if self in (FieldKind.STRING, FieldKind.BYTES):
            return _LEN
        return _VARINT

    @property
    def packable(self) -> bool:
        return self.wire_type == _VARINT


_INT_RANGES = {
    FieldKind.INT32: (-(1 << 31), 1 << 31),
    FieldKind.ENUM: (-(1 << 31), 1 << 31),
    FieldKind.INT64: (-(1 << 63), 1 << 63),
    FieldKind.UINT32: (0, 1 << 32),
    FieldKind.UINT64: (0, 1 << 64),
}


@dataclass(frozen=True)
class Field:
    """Wire description of one message field."""

    tag: int
    kind: FieldKind
    repeated: bool = False
    enum: Optional[type] = None

    def __post_init__(self) -> None:
        if not 1 <= self.tag <= _MAX_TAG:
            raise ValueError(f"invalid field tag: {self.tag}")


def _default_for(kind: FieldKind) -> Any:
    if kind is FieldKind.STRING:
        return ""
    if kind is FieldKind.BYTES:
        return b""
    if kind is FieldKind.BOOL:
        return False
    return 0


def field(tag: int, kind: FieldKind, repeated: bool = False, enum: Optional[type] = None) -> Any:
    """Declare a dataclass field of a :class:`Message` with its tag and kind."""
    spec = Field(tag, FieldKind(kind), repeated, enum)
    metadata = {_META: spec}
    if repeated:
        return dataclasses.field(default_factory=list, metadata=metadata)
    return dataclasses.field(default=_default_for(spec.kind), metadata=metadata)


def _varint(value: int) -> bytes:
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def _key(tag: int, wire_type: int) -> bytes:
    return _varint((tag << 3) | wire_type)


def _encode_scalar(kind: FieldKind, value: Any) -> bytes:
    if kind is FieldKind.STRING:
        if not isinstance(value, str):
            raise EncodeError(f"expected str, got {type(value).__name__}")
        try:
            raw = value.encode("utf-8")
        except UnicodeEncodeError:
            raise EncodeError("string is not encodable as UTF-8") from None
        return _varint(len(raw)) + raw
    if kind is FieldKind.BYTES:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise EncodeError(f"expected bytes, got {type(value).__name__}")
        raw = bytes(value)
        return _varint(len(raw)) + raw
    if kind is FieldKind.BOOL:
        if not isinstance(value, bool):
            raise EncodeError(f"expected bool, got {type(value).__name__}")
        return _varint(int(value))
    if not isinstance(value, int):
        raise EncodeError(f"expected int, got {type(value).__name__}")
    low, high = _INT_RANGES[kind]
    if not low <= value < high:
        raise EncodeError(f"value {value} out of range for {kind.value}")
    return _varint(int(value) & _MASK64)


def _from_varint(kind: FieldKind, value: int) -> Any:
    if kind in (FieldKind.INT32, FieldKind.ENUM):
        value &= _MASK32
        return value - (1 << 32) if value >= 1 << 31 else value
    if kind is FieldKind.INT64:
        return value - (1 << 64) if value >= 1 << 63 else value
    if kind is FieldKind.UINT32:
        return value & _MASK32
    if kind is FieldKind.BOOL:
        return value != 0
    return value


class _Reader:
    def __init__(self, data: bytes, start: int = 0, end: Optional[int] = None) -> None:
        self._data = data
        self._pos = start
        self._end = len(data) if end is None else end

    @property
    def done(self) -> bool:
        return self._pos >= self._end

    def varint(self) -> int:
        result = 0
        for shift in range(0, 70, 7):
            if self._pos >= self._end:
                raise DecodeError("invalid varint")
            byte = self._data[self._pos]
            self._pos += 1
            if shift == 63 and byte > 1:
                raise DecodeError("invalid varint")
            result |= (byte & 0x7F) << shift
            if byte < 0x80:
                return result
        raise DecodeError("invalid varint")

    def key(self) -> tuple[int, int]:
        key = self.varint()
        if key > _MASK32:
            raise DecodeError(f"invalid key value: {key}")
        wire_type = key & 0x07
        if wire_type > _I32:
            raise DecodeError(f"invalid wire type value: {wire_type}")
        tag = key >> 3
        if tag < 1:
            raise DecodeError("invalid tag value: 0")
        return tag, wire_type

    def take(self, size: int) -> bytes:
        if size > self._end - self._pos:
            raise DecodeError("buffer underflow")
        chunk = self._data[self._pos:self._pos + size]
        self._pos += size
        return chunk

    def sub(self) -> _Reader:
        size = self.varint()
        if size > self._end - self._pos:
            raise DecodeError("buffer underflow")
        reader = _Reader(self._data, self._pos, self._pos + size)
        self._pos += size
        return reader

    def skip(self, wire_type: int, tag: int) -> None:
        if wire_type == _VARINT:
            self.varint()
        elif wire_type == _I64:
            self.take(8)
        elif wire_type == _LEN:
            self.take(self.varint())
        elif wire_type == _I32:
            self.take(4)
        elif wire_type == _SGROUP:
            while True:
                if self.done:
                    raise DecodeError("buffer underflow")
                inner_tag, inner_type = self.key()
                if inner_type == _EGROUP:
                    if inner_tag != tag:
                        raise DecodeError("unexpected end group tag")
                    return
                self.skip(inner_type, inner_tag)
        else:
            raise DecodeError("unexpected end group tag")

    def scalar(self, kind: FieldKind) -> Any:
        if kind is FieldKind.STRING:
            raw = self.take(self.varint())
            try:
                return raw.decode("utf-8")
            except UnicodeDecodeError:
                raise DecodeError("invalid string value: data is not UTF-8 encoded") from None
        if kind is FieldKind.BYTES:
            return bytes(self.take(self.varint()))
        return _from_varint(kind, self.varint())


class Message:
    """Base class of messages; subclasses are dataclasses built with :func:`field`."""

    @classmethod
    def _field_specs(cls) -> list[tuple[str, Field]]:
        if not dataclasses.is_dataclass(cls):
            raise TypeError(f"{cls.__name__} is not a dataclass")
        specs = [
            (f.name, f.metadata[_META])
            for f in dataclasses.fields(cls)
            if _META in f.metadata
        ]
        tags = [spec.tag for _, spec in specs]
        if len(tags) != len(set(tags)):
            raise TypeError(f"{cls.__name__} declares a field tag twice")
        return specs

    def _encode_fields(self) -> Iterator[bytes]:
        name_of_type = type(self).__name__
        for name, spec in self._field_specs():
            value = getattr(self, name)
            try:
                if spec.repeated:
                    items = list(value)
                    if not items:
                        continue
                    if spec.kind.packable:
                        body = b"".join(_encode_scalar(spec.kind, item) for item in items)
                        yield _key(spec.tag, _LEN) + _varint(len(body)) + body
                    else:
                        for item in items:
                            yield _key(spec.tag, _LEN) + _encode_scalar(spec.kind, item)
                else:
                    payload = _encode_scalar(spec.kind, value)
                    if value != _default_for(spec.kind):
                        yield _key(spec.tag, spec.kind.wire_type) + payload
            except EncodeError as error:
                raise EncodeError(f"{name_of_type}.{name}: {error.description}") from None
            except TypeError:
                raise EncodeError(f"{name_of_type}.{name}: expected a sequence") from None

    def encode(self) -> bytes:
        """Return the wire encoding of this message."""
        return b"".join(self._encode_fields())

    def encoded_len(self) -> int:
        """Return the number of bytes the encoding of this message takes."""
        return len(self.encode())

    @classmethod
    def decode(cls, data: bytes) -> Any:
        """Build a message of this class from its wire encoding."""
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError(f"expected bytes-like data, got {type(data).__name__}")
        specs = cls._field_specs()
        by_tag = {spec.tag: (name, spec) for name, spec in specs}
        values: dict[str, Any] = {
            name: [] if spec.repeated else _default_for(spec.kind) for name, spec in specs
        }
        reader = _Reader(bytes(data))
        while not reader.done:
            tag, wire_type = reader.key()
            entry = by_tag.get(tag)
            if entry is None:
                reader.skip(wire_type, tag)
                continue
            name, spec = entry
            try:
                if spec.repeated and spec.kind.packable and wire_type == _LEN:
                    packed = reader.sub()
                    while not packed.done:
                        values[name].append(packed.scalar(spec.kind))
                    continue
                expected = spec.kind.wire_type
                if wire_type != expected:
                    raise DecodeError(f"invalid wire type: {wire_type} (expected {expected})")
                value = reader.scalar(spec.kind)
            except DecodeError as error:
                error._push(cls.__name__, name)
                raise
            if spec.repeated:
                values[name].append(value)
            else:
                values[name] = value
        return cls(**values)


def encode(message: Message) -> bytes:
    """Encode a message to bytes."""
    if not isinstance(message, Message):
        raise TypeError(f"expected a Message, got {type(message).__name__}")
    return message.encode()


def decode(message_type: type, data: bytes) -> Any:
    """Decode bytes into a message of the given type."""
    if not (isinstance(message_type, type) and issubclass(message_type, Message)):
        raise TypeError("message_type must be a Message subclass")
    return message_type.decode(data)