import dataclasses

import pytest

from distlab.model import (
    Event,
    EventKind,
    Model,
    Operation,
    default_describe_operation,
    default_describe_state,
    no_partition,
    no_partition_event,
    shallow_equal,
)


def _counter_model():
    return Model(init=lambda: 0, step=lambda state, inp, out: (True, state + inp))


def test_no_partition_keeps_whole_history():
    history = [Operation("a", "b", 1, 2), Operation("c", "d", 3, 4, client_id=1)]
    assert no_partition(history) == [history]


def test_no_partition_event_keeps_whole_history():
    events = [Event(EventKind.CALL, "a", 0), Event(EventKind.RETURN, "b", 0)]
    assert no_partition_event(events) == [events]


def test_shallow_equal():
    assert shallow_equal("x", "x") is True
    assert shallow_equal("x", "y") is False


def test_default_describe_operation():
    assert default_describe_operation("x", "y") == "x -> y"


def test_default_describe_state():
    assert default_describe_state(42) == "42"


def test_model_fills_defaults():
    model = _counter_model()
    history = [Operation(1, None, 0, 1)]
    assert model.partition(history) == no_partition(history)
    assert model.partition_event([]) == no_partition_event([])
    assert model.equal(3, 3) is True
    assert model.describe_operation(1, 2) == default_describe_operation(1, 2)
    assert model.describe_state(7) == default_describe_state(7)


def test_model_step_and_init_are_used():
    model = _counter_model()
    ok, state = model.step(model.init(), 5, None)
    assert ok is True
    assert state == 5


def test_model_is_frozen():
    model = _counter_model()
    with pytest.raises(dataclasses.FrozenInstanceError):
        model.equal = lambda a, b: True
    assert model.equal(1, 2) is False


def test_events_with_same_id_pair_up():
    call = Event(EventKind.CALL, "in", 4, client_id=2)
    ret = Event(EventKind.RETURN, "out", 4, client_id=2)
    assert call.id == ret.id
    assert call.kind is not ret.kind