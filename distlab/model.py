"""Operations, events and the model a linearizability check runs against."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable


@dataclass
class Operation:
    """A completed operation: its input and output and when it was called and returned."""

    input: Any
    output: Any
    call_time: int
    return_time: int
    client_id: int = 0


class EventKind(enum.Enum):
    CALL = "call"
    RETURN = "return"


@dataclass
class Event:
    """One call or return; a call and its return share an ``id``."""

    kind: EventKind
    value: Any
    id: int
    client_id: int = 0


def no_partition(history: list[Operation]) -> list[list[Operation]]:
    """Treat the whole history as one partition."""
    return [list(history)]


def no_partition_event(history: list[Event]) -> list[list[Event]]:
    """Treat the whole event history as one partition."""
    return [list(history)]


def shallow_equal(state1: Any, state2: Any) -> bool:
    return state1 == state2


def default_describe_operation(input: Any, output: Any) -> str:
    return f"{input} -> {output}"


def default_describe_state(state: Any) -> str:
    return f"{state}"


@dataclass(frozen=True)
class Model:
    """A sequential specification.

    ``step(state, input, output)`` returns whether the step is allowed and
    the new state; it must not change ``state``. A history is linearizable
    exactly when each of its partitions is.
    """

    init: Callable[[], Any]
    step: Callable[[Any, Any, Any], tuple[bool, Any]]
    partition: Callable[[list[Operation]], list[list[Operation]]] = no_partition
    partition_event: Callable[[list[Event]], list[list[Event]]] = no_partition_event
    equal: Callable[[Any, Any], bool] = shallow_equal
    describe_operation: Callable[[Any, Any], str] = default_describe_operation
    describe_state: Callable[[Any], str] = default_describe_state


class CheckResult(str, enum.Enum):
    UNKNOWN = "Unknown"
    OK = "Ok"
    ILLEGAL = "Illegal"