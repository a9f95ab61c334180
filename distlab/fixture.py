"""A simple message used to exercise the codec."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from distlab.codec import FieldKind, Message, field


class MsgType(IntEnum):
    """Kinds of request a :class:`Msg` may carry."""

    UNKNOWN = 0
    PUT = 1
    GET = 2
    DEL = 3

    @classmethod
    def is_valid(cls, value: int) -> bool:
        """Return True if value is one of the variants."""
        return value in cls._value2member_map_

    @classmethod
    def from_int(cls, value: int) -> Optional[MsgType]:
        """Return the variant for value, or None when there is none."""
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass
class Msg(Message):
    """A simple protobuf message."""

    type: int = field(1, FieldKind.ENUM, enum=MsgType)
    id: int = field(2, FieldKind.UINT64)
    name: str = field(3, FieldKind.STRING)
    paylad: list = field(4, FieldKind.BYTES, repeated=True)

    def message_type(self) -> MsgType:
        """Return the type as a variant, or UNKNOWN for an invalid value."""
        variant = MsgType.from_int(self.type)
        return MsgType.UNKNOWN if variant is None else variant

    def set_type(self, value: MsgType) -> None:
        """Store the given variant as the type."""
        self.type = int(MsgType(value))