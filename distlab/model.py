"""Histories of operations and events, and the model a history is checked against."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

S = TypeVar("S")
I = TypeVar("I")
O = TypeVar("O")


@dataclass(frozen=True)
class Operation(Generic[I, O]):
    """One completed operation: its input and output with call and finish times."""

    input: I
    call: int
    output: O
    finish: int


class EventKind(Enum):
    """Whether an event is the call or the return of an operation."""

    CALL = "call"
    RETURN = "return"


@dataclass(frozen=True)
class Event:
    """A call or return; a call carries an input, a return carries an output.

    Events of the same operation share an id.
    """

    kind: EventKind
    value: Any
    id: int


class Model(ABC, Generic[S, I, O]):
    """The sequential specification a concurrent history is checked against."""

    def partition(self, history: list[Operation[I, O]]) -> list[list[Operation[I, O]]]:
        """Split a history so that it is linearizable iff every part is."""
        return [list(history)]

    def partition_event(self, history: list[Event]) -> list[list[Event]]:
        """Split an event history so that it is linearizable iff every part is."""
        return [list(history)]

    @abstractmethod
    def init(self) -> S:
        """Return the initial state of the system."""

    @abstractmethod
    def step(self, state: S, input: I, output: O) -> tuple[bool, S]:
        """Return whether the step is possible from state, and the new state.

        The given state must not be changed.
        """

    def equal(self, state1: S, state2: S) -> bool:
        """Return whether two states are the same."""
        return state1 == state2