"""A key/value store model and a reader for its operation logs."""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Union

from distlab.model import Event, EventKind, Model, Operation


class Op(Enum):
    """Operations of the key/value store."""

    GET = "get"
    PUT = "put"
    APPEND = "append"


@dataclass(frozen=True)
class KvInput:
    """The input of a key/value operation."""

    op: Op
    key: str
    value: str = ""


@dataclass(frozen=True)
class KvOutput:
    """The output of a key/value operation."""

    value: str = ""


class KvModel(Model[str, KvInput, KvOutput]):
    """Models the value of a single key; histories are partitioned by key."""

    def partition(self, history: list[Operation]) -> list[list[Operation]]:
        groups: dict[str, list[Operation]] = defaultdict(list)
        for operation in history:
            groups[operation.input.key].append(operation)
        return list(groups.values())

    def partition_event(self, history: list[Event]) -> list[list[Event]]:
        groups: dict[str, list[Event]] = defaultdict(list)
        keys: dict[int, str] = {}
        for event in history:
            if event.kind is EventKind.CALL:
                key = event.value.key
                keys[event.id] = key
            else:
                key = keys[event.id]
            groups[key].append(event)
        return list(groups.values())

    def init(self) -> str:
        return ""

    def step(self, state: str, input: KvInput, output: KvOutput) -> tuple[bool, str]:
        if input.op is Op.GET:
            return output.value == state, state
        if input.op is Op.PUT:
            return True, input.value
        return True, state + input.value


_INVOKE = {
    Op.GET: re.compile(
        r'\{:process (\d+), :type :invoke, :f :get, :key "(.*)", :value nil\}'
    ),
    Op.PUT: re.compile(
        r'\{:process (\d+), :type :invoke, :f :put, :key "(.*)", :value "(.*)"\}'
    ),
    Op.APPEND: re.compile(
        r'\{:process (\d+), :type :invoke, :f :append, :key "(.*)", :value "(.*)"\}'
    ),
}
_RETURN_GET = re.compile(r'\{:process (\d+), :type :ok, :f :get, :key ".*", :value "(.*)"\}')
_RETURN_OTHER = re.compile(
    r'\{:process (\d+), :type :ok, :f :(?:put|append), :key ".*", :value ".*"\}'
)


def parse_kv_log(lines: Union[str, Iterable[str]]) -> list[Event]:
    """Read a key/value operation log into call and return events.

    Operations still pending at the end of the log get a return with an
    empty value.
    """
    if isinstance(lines, str):
        lines = lines.splitlines()
    events: list[Event] = []
    pending: dict[int, int] = {}
    next_id = 0

    def finish(process: str, value: str) -> None:
        match_id = pending.pop(int(process), None)
        if match_id is None:
            raise ValueError(f"return of process {process} without a call")
        events.append(Event(EventKind.RETURN, KvOutput(value), match_id))

    for line in lines:
        if not line.strip():
            continue
        for op, pattern in _INVOKE.items():
            found = pattern.search(line)
            if found:
                value = "" if op is Op.GET else found.group(3)
                events.append(Event(EventKind.CALL, KvInput(op, found.group(2), value), next_id))
                pending[int(found.group(1))] = next_id
                next_id += 1
                break
        else:
            found = _RETURN_GET.search(line)
            if found:
                finish(found.group(1), found.group(2))
                continue
            found = _RETURN_OTHER.search(line)
            if found:
                finish(found.group(1), "")
                continue
            raise ValueError(f"unrecognised log line: {line!r}")

    for match_id in pending.values():
        events.append(Event(EventKind.RETURN, KvOutput(""), match_id))
    return events