"""Linearizability checking of operation and event histories.

Each partition of a history is searched independently for a sequential
order that respects real-time order and is allowed by the model. The
search keeps a cache of (linearized set, state) pairs it has seen, so the
same configuration is never explored twice.
"""

from __future__ import annotations

import queue
import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Optional, Union

from distlab.bitset import Bitset
from distlab.model import CheckResult, Event, EventKind, Model, Operation

Timeout = Union[float, int, timedelta, None]


@dataclass(frozen=True)
class _Entry:
    kind: EventKind
    value: Any
    id: int
    time: int
    client_id: int


@dataclass
class LinearizationInfo:
    """Per-partition histories and the longest linearizable prefixes found."""

    history: list[list[_Entry]] = field(default_factory=list)
    partial_linearizations: list[list[list[int]]] = field(default_factory=list)


class _Node:
    __slots__ = ("value", "match", "id", "next", "prev")

    def __init__(self, value: Any, match: Optional[_Node], id: int) -> None:
        self.value = value
        self.match = match  # a call when set; a return when None
        self.id = id
        self.next: Optional[_Node] = None
        self.prev: Optional[_Node] = None


def _make_entries(history: list[Operation]) -> list[_Entry]:
    entries: list[_Entry] = []
    for index, op in enumerate(history):
        entries.append(_Entry(EventKind.CALL, op.input, index, op.call_time, op.client_id))
        entries.append(
            _Entry(EventKind.RETURN, op.output, index, op.return_time, op.client_id)
        )
    # Equal timestamps: calls come before returns.
    entries.sort(key=lambda e: (e.time, 0 if e.kind is EventKind.CALL else 1))
    return entries


def _renumber(events: list[Event]) -> list[Event]:
    mapping: dict[int, int] = {}
    renumbered = []
    for event in events:
        new_id = mapping.setdefault(event.id, len(mapping))
        renumbered.append(Event(event.kind, event.value, new_id, event.client_id))
    return renumbered


def _convert_entries(events: list[Event]) -> list[_Entry]:
    # The position in the list serves as the time.
    return [
        _Entry(event.kind, event.value, event.id, index, event.client_id)
        for index, event in enumerate(events)
    ]


def _insert_before(node: _Node, mark: Optional[_Node]) -> _Node:
    if mark is not None:
        before = mark.prev
        mark.prev = node
        node.next = mark
        if before is not None:
            node.prev = before
            before.next = node
    return node


def _length(node: Optional[_Node]) -> int:
    count = 0
    while node is not None:
        node = node.next
        count += 1
    return count


def _make_linked_entries(entries: list[_Entry]) -> Optional[_Node]:
    root: Optional[_Node] = None
    returns: dict[int, _Node] = {}
    for elem in reversed(entries):
        if elem.kind is EventKind.RETURN:
            node = _Node(elem.value, None, elem.id)
            returns[elem.id] = node
        else:
            node = _Node(elem.value, returns.get(elem.id), elem.id)
        _insert_before(node, root)
        root = node
    return root


def _lift(entry: _Node) -> None:
    entry.prev.next = entry.next
    entry.next.prev = entry.prev
    match = entry.match
    match.prev.next = match.next
    if match.next is not None:
        match.next.prev = match.prev


def _unlift(entry: _Node) -> None:
    match = entry.match
    match.prev.next = match
    if match.next is not None:
        match.next.prev = match
    entry.prev.next = entry
    entry.next.prev = entry


def _cache_contains(
    model: Model, cache: dict[int, list[tuple[Bitset, Any]]], linearized: Bitset, state: Any
) -> bool:
    return any(
        linearized == seen and model.equal(state, seen_state)
        for seen, seen_state in cache.get(hash(linearized), ())
    )


def _check_single(
    model: Model, history: list[_Entry], compute_partial: bool, kill: threading.Event
) -> tuple[bool, list[Optional[list[int]]]]:
    entry = _make_linked_entries(history)
    n = _length(entry) // 2
    linearized = Bitset(n)
    cache: dict[int, list[tuple[Bitset, Any]]] = {}
    calls: list[tuple[_Node, Any]] = []
    # Longest linearizable prefix that includes each entry.
    longest: list[Optional[list[int]]] = [None] * n

    state = model.init()
    head = _insert_before(_Node(None, None, -1), entry)
    while head.next is not None:
        if kill.is_set():
            return False, longest
        if entry.match is not None:
            ok, new_state = model.step(state, entry.value, entry.match.value)
            if ok:
                new_linearized = linearized.clone().set(entry.id)
                if not _cache_contains(model, cache, new_linearized, new_state):
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
                return False, longest
            if compute_partial:
                seq: Optional[list[int]] = None
                for node, _ in calls:
                    current = longest[node.id]
                    if current is None or len(calls) > len(current):
                        if seq is None:
                            seq = [c.id for c, _ in calls]
                        longest[node.id] = seq
            node, state = calls.pop()
            linearized.clear(node.id)
            _unlift(node)
            entry = node.next

    seq = [node.id for node, _ in calls]
    return True, [seq] * n


def _seconds(timeout: Timeout) -> float:
    if timeout is None:
        return 0.0
    if isinstance(timeout, timedelta):
        return timeout.total_seconds()
    return float(timeout)


def _check_parallel(
    model: Model, history: list[list[_Entry]], compute_info: bool, timeout: Timeout
) -> tuple[CheckResult, LinearizationInfo]:
    ok = True
    timed_out = False
    results: queue.Queue[bool] = queue.Queue()
    longest: list[list[Optional[list[int]]]] = [[] for _ in history]
    kill = threading.Event()

    def run(index: int, subhistory: list[_Entry]) -> None:
        result, partial = _check_single(model, subhistory, compute_info, kill)
        longest[index] = partial
        results.put(result)

    for index, subhistory in enumerate(history):
        threading.Thread(target=run, args=(index, subhistory), daemon=True).start()

    limit = _seconds(timeout)
    deadline = time.monotonic() + limit if limit > 0 else None
    count = 0
    while count < len(history):
        try:
            if deadline is None:
                result = results.get()
            else:
                result = results.get(timeout=max(0.0, deadline - time.monotonic()))
        except queue.Empty:
            # A timeout may hide an illegal history.
            timed_out = True
            kill.set()
            break
        count += 1
        ok = ok and result
        if not ok and not compute_info:
            kill.set()
            break

    info = LinearizationInfo()
    if compute_info:
        while count < len(history):
            results.get()
            count += 1
        partials_by_partition = []
        for partition_longest in longest:
            unique: dict[int, list[int]] = {}
            for seq in partition_longest:
                if seq is not None:
                    unique.setdefault(id(seq), seq)
            partials_by_partition.append([list(seq) for seq in unique.values()])
        info = LinearizationInfo(history=history, partial_linearizations=partials_by_partition)

    if not ok:
        return CheckResult.ILLEGAL, info
    if timed_out:
        return CheckResult.UNKNOWN, info
    return CheckResult.OK, info


def _check_events(
    model: Model, history: list[Event], verbose: bool, timeout: Timeout
) -> tuple[CheckResult, LinearizationInfo]:
    partitions = model.partition_event(history)
    entries = [_convert_entries(_renumber(sub)) for sub in partitions]
    return _check_parallel(model, entries, verbose, timeout)


def _check_operations(
    model: Model, history: list[Operation], verbose: bool, timeout: Timeout
) -> tuple[CheckResult, LinearizationInfo]:
    partitions = model.partition(history)
    entries = [_make_entries(sub) for sub in partitions]
    return _check_parallel(model, entries, verbose, timeout)


def check_operations(model: Model, history: list[Operation]) -> bool:
    """Return whether the operation history is linearizable."""
    result, _ = _check_operations(model, history, False, None)
    return result is CheckResult.OK


def check_operations_timeout(
    model: Model, history: list[Operation], timeout: Timeout
) -> CheckResult:
    """Check with a timeout in seconds; 0 or None means none.

    UNKNOWN means the check timed out.
    """
    result, _ = _check_operations(model, history, False, timeout)
    return result


def check_operations_verbose(
    model: Model, history: list[Operation], timeout: Timeout
) -> tuple[CheckResult, LinearizationInfo]:
    """Check and also return the partial linearizations found."""
    return _check_operations(model, history, True, timeout)


def check_events(model: Model, history: list[Event]) -> bool:
    """Return whether the event history is linearizable."""
    result, _ = _check_events(model, history, False, None)
    return result is CheckResult.OK


def check_events_timeout(model: Model, history: list[Event], timeout: Timeout) -> CheckResult:
    """Check events with a timeout in seconds; 0 or None means none."""
    result, _ = _check_events(model, history, False, timeout)
    return result


def check_events_verbose(
    model: Model, history: list[Event], timeout: Timeout
) -> tuple[CheckResult, LinearizationInfo]:
    """Check events and also return the partial linearizations found."""
    return _check_events(model, history, True, timeout)