from distlab.kvmodel import (
    KV_MODEL,
    KvInput,
    KvOp,
    KvOutput,
    kv_describe_operation,
    kv_init,
    kv_partition,
    kv_step,
)
from distlab.model import Operation


def test_init_is_empty_value():
    assert kv_init() == ""


def test_get_must_return_current_value():
    state = "abc"
    assert kv_step(state, KvInput(KvOp.GET, "k"), KvOutput(state)) == (True, state)
    ok, new_state = kv_step(state, KvInput(KvOp.GET, "k"), KvOutput("other"))
    assert ok is False
    assert new_state == state


def test_put_replaces_value():
    assert kv_step("old", KvInput(KvOp.PUT, "k", "new"), KvOutput()) == (True, "new")


def test_append_extends_value():
    state, value = "ab", "cd"
    ok, new_state = kv_step(state, KvInput(KvOp.APPEND, "k", value), KvOutput())
    assert ok is True
    assert new_state.startswith(state)
    assert new_state.endswith(value)
    assert len(new_state) == len(state) + len(value)


def test_describe_get():
    assert kv_describe_operation(KvInput(KvOp.GET, "k"), KvOutput("v")) == "get('k') -> 'v'"


def test_describe_put():
    assert kv_describe_operation(KvInput(KvOp.PUT, "k", "v"), KvOutput()) == "put('k', 'v')"


def test_describe_append():
    assert (
        kv_describe_operation(KvInput(KvOp.APPEND, "k", "v"), KvOutput())
        == "append('k', 'v')"
    )


def test_describe_invalid_op():
    assert kv_describe_operation(KvInput(7, "k", "v"), KvOutput()) == "<invalid>"


def test_partition_groups_by_sorted_key_and_keeps_order():
    b1 = Operation(KvInput(KvOp.PUT, "b", "1"), KvOutput(), 0, 1)
    a1 = Operation(KvInput(KvOp.GET, "a"), KvOutput(""), 2, 3)
    b2 = Operation(KvInput(KvOp.APPEND, "b", "2"), KvOutput(), 4, 5)
    assert kv_partition([b1, a1, b2]) == [[a1], [b1, b2]]


def test_partition_of_empty_history():
    assert kv_partition([]) == []


def test_model_runs_a_sequence():
    state = KV_MODEL.init()
    ok_put, state = KV_MODEL.step(state, KvInput(KvOp.PUT, "x", "p"), KvOutput())
    ok_append, state = KV_MODEL.step(state, KvInput(KvOp.APPEND, "x", "q"), KvOutput())
    ok_get, final = KV_MODEL.step(state, KvInput(KvOp.GET, "x"), KvOutput(state))
    assert (ok_put, ok_append, ok_get) == (True, True, True)
    assert final == state
    assert KV_MODEL.partition is kv_partition
    assert KV_MODEL.equal(state, final) is True