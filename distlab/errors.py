"""Errors an RPC call can end with."""

from __future__ import annotations

from distlab.codec import DecodeError, EncodeError


class RpcError(Exception):
    """Base class of every RPC error; errors compare equal by kind and detail."""

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.args == other.args

    def __hash__(self) -> int:
        return hash((type(self), self.args))


class UnimplementedError(RpcError):
    """The requested service or method does not exist."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"unimplemented: {self.message}"


class EncodeFailedError(RpcError):
    """A request or reply could not be encoded."""

    def __init__(self, error: EncodeError) -> None:
        super().__init__(error)
        self.error = error
        self.__cause__ = error

    def __str__(self) -> str:
        return str(self.error)


class DecodeFailedError(RpcError):
    """A request or reply could not be decoded."""

    def __init__(self, error: DecodeError) -> None:
        super().__init__(error)
        self.error = error
        self.__cause__ = error

    def __str__(self) -> str:
        return str(self.error)


class RecvError(RpcError):
    """The reply was dropped before it was sent."""

    def __str__(self) -> str:
        return "reply canceled"


class RpcTimeoutError(RpcError):
    """The call got no reply in time."""

    def __str__(self) -> str:
        return "timeout"


class StoppedError(RpcError):
    """The network or the server has stopped."""

    def __str__(self) -> str:
        return "stopped"


class OtherError(RpcError):
    """Any other failure, described by a message."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message