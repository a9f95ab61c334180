"""Linearizability checking of concurrent histories against a model.

A history is split into the partitions its model gives, and each partition
is searched for a sequential order of its operations that respects their
real-time order and that the model accepts.
"""

from __future__ import annotations

import queue
import threading
from typing import Any, Iterable, NamedTuple, Optional

from distlab.bitset import Bitset
from distlab.model import Event, EventKind, Model, Operation

_NO_ID = -1


class _Entry(NamedTuple):
    is_call: bool
    value: Any
    id: int
    time: int


class _Node:
    __slots__ = ("value", "id", "matched", "next", "prev")

    def __init__(self, value: Any, id: int, matched: Optional[_Node] = None) -> None:
        self.value = value
        self.id = id
        self.matched = matched
        self.next: Optional[_Node] = None
        self.prev: Optional[_Node] = None


def _entries_from_operations(history: Iterable[Operation]) -> list[_Entry]:
    entries = []
    for op_id, operation in enumerate(history):
        entries.append(_Entry(True, operation.input, op_id, operation.call))
        entries.append(_Entry(False, operation.output, op_id, operation.finish))
    entries.sort(key=lambda entry: entry.time)
    return entries


def _entries_from_events(history: Iterable[Event]) -> list[_Entry]:
    numbering: dict[int, int] = {}
    entries = []
    for event in history:
        new_id = numbering.setdefault(event.id, len(numbering))
        entries.append(_Entry(event.kind is EventKind.CALL, event.value, new_id, -1))
    return entries


def _link(entries: list[_Entry]) -> _Node:
    """Build the doubly linked list of entries behind a sentinel head node."""
    returns: dict[int, _Node] = {}
    head = _Node(None, _NO_ID)
    following: Optional[_Node] = None
    for entry in reversed(entries):
        if entry.is_call:
            node = _Node(entry.value, entry.id, returns.get(entry.id))
        else:
            node = _Node(entry.value, entry.id)
            returns[entry.id] = node
        if following is not None:
            following.prev = node
            node.next = following
        following = node
    if following is not None:
        following.prev = head
        head.next = following
    return head


def _lift(entry: _Node) -> None:
    entry.prev.next = entry.next
    entry.next.prev = entry.prev
    matched = entry.matched
    matched.prev.next = matched.next
    if matched.next is not None:
        matched.next.prev = matched.prev


def _unlift(entry: _Node) -> None:
    matched = entry.matched
    matched.prev.next = matched
    if matched.next is not None:
        matched.next.prev = matched
    entry.prev.next = entry
    entry.next.prev = entry


def _check_single(model: Model, entries: list[_Entry], kill: threading.Event) -> bool:
    linearized = Bitset(len(entries) // 2)
    cache: dict[int, list[tuple[Bitset, Any]]] = {}
    calls: list[tuple[_Node, Any]] = []
    state = model.init()
    head = _link(entries)
    entry = head.next

    def seen(bits: Bitset, candidate: Any) -> bool:
        return any(
            bits == other_bits and model.equal(candidate, other_state)
            for other_bits, other_state in cache.get(hash(bits), ())
        )

    while head.next is not None:
        if kill.is_set():
            return False
        if entry is not None and entry.matched is not None:
            ok, new_state = model.step(state, entry.value, entry.matched.value)
            if ok:
                new_linearized = linearized.copy()
                new_linearized.set(entry.id)
                if not seen(new_linearized, new_state):
                    cache.setdefault(hash(new_linearized), []).append(
                        (new_linearized, new_state)
                    )
                    calls.append((entry, state))
                    state = new_state
                    linearized.set(entry.id)
                    _lift(entry)
                    entry = head.next
                else:
                    entry = entry.next
            else:
                entry = entry.next
        else:
            if not calls:
                return False
            entry, state = calls.pop()
            linearized.clear(entry.id)
            _unlift(entry)
            entry = entry.next
    return True


def _run(model: Model, partitions: list[list[_Entry]], timeout: Optional[float]) -> bool:
    if not partitions:
        return True
    results: queue.Queue = queue.Queue()
    kill = threading.Event()

    def work(entries: list[_Entry]) -> None:
        try:
            results.put((_check_single(model, entries, kill), None))
        except BaseException as error:  # handed to the caller
            results.put((False, error))

    threads = [threading.Thread(target=work, args=(part,), daemon=True) for part in partitions]
    for thread in threads:
        thread.start()

    wait = timeout if timeout else None
    ok = True
    failure: Optional[BaseException] = None
    remaining = len(threads)
    try:
        while remaining:
            try:
                result, error = results.get(timeout=wait)
            except queue.Empty:
                break
            if error is not None:
                failure = error
                break
            ok = ok and result
            if not ok:
                break
            remaining -= 1
    finally:
        kill.set()
        for thread in threads:
            thread.join()
    if failure is not None:
        raise failure
    return ok


def check_operations(model: Model, history: list[Operation], timeout: Optional[float] = 0) -> bool:
    """Return whether a history of timed operations is linearizable under model.

    ``timeout`` is in seconds, 0 or None meaning none; when the wait for a
    partition's result times out, the result so far is returned, so a
    false positive is possible.
    """
    partitions = [_entries_from_operations(part) for part in model.partition(list(history))]
    return _run(model, partitions, timeout)


def check_events(model: Model, history: list[Event], timeout: Optional[float] = 0) -> bool:
    """Return whether an ordered history of call and return events is linearizable.

    ``timeout`` behaves as in :func:`check_operations`.
    """
    partitions = [_entries_from_events(part) for part in model.partition_event(list(history))]
    return _run(model, partitions, timeout)