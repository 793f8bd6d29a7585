import enum
import io
from dataclasses import dataclass, field
from typing import Any

import pytest

from distlab.labgob import (
    LabDecoder,
    LabEncoder,
    error_count,
    register,
    register_name,
)


@dataclass
class T1:
    t1int0: int = 0
    t1int1: int = 0
    t1string0: str = ""
    t1string1: str = ""


@dataclass
class T2:
    t2slice: list[T1] = field(default_factory=list)
    t2map: dict[int, T1] = field(default_factory=dict)
    t2t3: Any = None


@dataclass
class T3:
    t3int999: int = 0


@dataclass
class T4:
    yes: int = 0
    _no: int = 0


@dataclass
class T5:
    shown: int = 0
    _hidden: int = 0


class Color(enum.Enum):
    RED = "red"
    BLUE = "blue"


def _roundtrip(*values):
    buf = io.BytesIO()
    enc = LabEncoder(buf)
    for value in values:
        enc.encode(value)
    return LabDecoder(io.BytesIO(buf.getvalue()))


def test_gob():
    e0 = error_count()
    register(T3)

    buf = io.BytesIO()
    t1 = T1(t1int1=1, t1string1="6.824")
    t2 = T2(
        t2slice=[T1(), t1],
        t2map={99: T1(1, 2, "x", "y")},
        t2t3=T3(999),
    )
    enc = LabEncoder(buf)
    enc.encode(0)
    enc.encode(1)
    enc.encode(t1)
    enc.encode(t2)

    dec = LabDecoder(io.BytesIO(buf.getvalue()))
    x0 = dec.decode(int)
    x1 = dec.decode(int)
    d1 = dec.decode(T1)
    d2 = dec.decode(T2)

    assert x0 == 0
    assert x1 == 1
    assert d1.t1int0 == 0
    assert d1.t1int1 == 1
    assert d1.t1string0 == ""
    assert d1.t1string1 == "6.824"
    assert len(d2.t2slice) == 2
    assert d2.t2slice[1].t1int1 == 1
    assert len(d2.t2map) == 1
    assert d2.t2map[99].t1string1 == "y"
    assert d2.t2t3 == T3(999)
    assert error_count() == e0


def test_capital():
    e0 = error_count()
    dec = _roundtrip([])
    result = dec.decode(list[dict[T4, int]])
    assert result == []
    assert error_count() == e0 + 1


def test_default():
    e0 = error_count()

    @dataclass
    class DD:
        x: int = 0

    buf = io.BytesIO()
    LabEncoder(buf).encode(DD())
    reply = DD(99)
    result = LabDecoder(io.BytesIO(buf.getvalue())).decode(reply)

    assert error_count() == e0 + 1
    assert result is reply
    assert reply.x == 0


def test_private_fields_are_not_transmitted():
    e0 = error_count()
    dec = _roundtrip(T5(shown=1, _hidden=7))
    result = dec.decode(T5)
    assert result.shown == 1
    assert result._hidden == 0
    assert error_count() == e0 + 1


def test_mixed_values_round_trip():
    value = {
        "k": (1, 2.5, None),
        3: [b"\x00\xff", {4, 5}],
        "e": Color.RED,
        "text": "line one\nline two",
        "flag": True,
    }
    assert _roundtrip(value).decode() == value


def test_values_come_back_in_order_then_eof():
    dec = _roundtrip("a", 2, [3])
    assert dec.decode() == "a"
    assert dec.decode() == 2
    assert dec.decode() == [3]
    with pytest.raises(EOFError):
        dec.decode()


def test_decoded_value_is_a_copy():
    original = T1(t1string1="x")
    dec = _roundtrip(original)
    result = dec.decode(T1)
    assert result == original
    assert result is not original


def test_fill_default_instance_without_warning():
    e0 = error_count()
    dec = _roundtrip(T1(t1int0=5, t1string0="abc"))
    target = T1()
    result = dec.decode(target)
    assert result is target
    assert target == T1(t1int0=5, t1string0="abc")
    assert error_count() == e0


def test_int_decodes_as_float():
    result = _roundtrip(3).decode(float)
    assert result == 3.0
    assert isinstance(result, float)


def test_unsupported_value_raises():
    with pytest.raises(TypeError):
        LabEncoder(io.BytesIO()).encode(object())


def test_type_mismatch_raises():
    dec = _roundtrip("text")
    with pytest.raises(TypeError):
        dec.decode(int)


def test_malformed_data_raises():
    dec = LabDecoder(io.BytesIO(b"not json\n"))
    with pytest.raises(ValueError):
        dec.decode()


def test_unregistered_type_raises():
    dec = LabDecoder(io.BytesIO(b'{"d":"nowhere.Missing","f":{}}\n'))
    with pytest.raises(ValueError):
        dec.decode()


def test_register_name_conflict():
    @dataclass
    class First:
        a: int = 0

    @dataclass
    class Second:
        b: int = 0

    register_name("test-labgob-shared", First)
    register_name("test-labgob-shared", First)
    with pytest.raises(ValueError):
        register_name("test-labgob-shared", Second)


def test_register_under_custom_name_round_trips():
    @dataclass
    class Custom:
        value: str = ""

    register_name("test-labgob-custom", Custom)
    result = _roundtrip(Custom("v")).decode(Custom)
    assert result == Custom("v")


def test_register_rejects_plain_class():
    class Plain:
        pass

    with pytest.raises(TypeError):
        register(Plain)