"""Value encoding for RPC messages and persisted state.

Values are written one per line as tagged JSON, so a decoded value never
shares objects with the sender. The encoder and decoder also watch for two
common mistakes: dataclass fields with a leading underscore, which are not
transmitted, and decoding into a target that already holds non-default data.
"""

from __future__ import annotations

import base64
import dataclasses
import enum
import json
import logging
import threading
import typing
from typing import Any, BinaryIO

_log = logging.getLogger(__name__)

_lock = threading.Lock()
_error_count = 0
_checked: set[Any] = set()
_by_name: dict[str, type] = {}
_by_type: dict[type, str] = {}


def error_count() -> int:
    """Return how many problems the checks have found so far."""
    with _lock:
        return _error_count


def _record_error() -> None:
    global _error_count
    with _lock:
        _error_count += 1


def _is_private(name: str) -> bool:
    return name.startswith("_")


def _check_type(tp: Any) -> None:
    """Complain once about private dataclass fields reachable from ``tp``."""
    try:
        with _lock:
            if tp in _checked:
                return
            _checked.add(tp)
    except TypeError:
        return

    if isinstance(tp, type) and dataclasses.is_dataclass(tp):
        for f in dataclasses.fields(tp):
            if _is_private(f.name):
                _log.error(
                    "labgob error: private field %s of %s is not transmitted "
                    "in RPC or persisted state",
                    f.name,
                    tp.__name__,
                )
                _record_error()
            # Annotations written as strings are not resolved; values are
            # still checked field by field when they are encoded.
            if not isinstance(f.type, str):
                _check_type(f.type)
        return

    for arg in typing.get_args(tp):
        if arg is not Ellipsis:
            _check_type(arg)


def _check_value(value: Any) -> None:
    _check_type(type(value))
    if isinstance(value, (list, tuple, set, frozenset)):
        for item in value:
            _check_value(item)
    elif isinstance(value, dict):
        for key, item in value.items():
            _check_value(key)
            _check_value(item)
    elif dataclasses.is_dataclass(value) and not isinstance(value, type):
        for f in dataclasses.fields(value):
            if not _is_private(f.name):
                _check_value(getattr(value, f.name))


_PRIMITIVES = (bool, int, float, complex, str, bytes)


def _check_default(value: Any, depth: int, name: str) -> None:
    """Warn if ``value`` holds non-default data that a decode would replace."""
    global _error_count
    if depth > 3 or value is None:
        return
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        for f in dataclasses.fields(value):
            qualified = f"{name}.{f.name}" if name else f.name
            _check_default(getattr(value, f.name, None), depth + 1, qualified)
        return
    if type(value) in _PRIMITIVES and value != type(value)():
        with _lock:
            if _error_count < 1:
                _log.warning(
                    "labgob warning: Decoding into a non-default variable/field %s may not work",
                    name or type(value).__name__,
                )
            _error_count += 1


def _default_name(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


def register(cls: type) -> None:
    """Make a dataclass or enum known to decoders under its default name."""
    register_name(_default_name(cls), cls)


def register_name(name: str, cls: type) -> None:
    """Make a dataclass or enum known to decoders under ``name``."""
    if not isinstance(cls, type) or not (
        dataclasses.is_dataclass(cls) or issubclass(cls, enum.Enum)
    ):
        raise TypeError(f"labgob: cannot register {cls!r}; expected a dataclass or enum")
    _check_type(cls)
    with _lock:
        known = _by_name.get(name)
        if known is not None and known is not cls:
            raise ValueError(f"labgob: name {name!r} is already registered for {known!r}")
        previous = _by_type.get(cls)
        if previous is not None and previous != name:
            raise ValueError(f"labgob: {cls!r} is already registered as {previous!r}")
        _by_name[name] = cls
        _by_type[cls] = name


def _name_for(cls: type) -> str:
    with _lock:
        name = _by_type.get(cls)
        if name is None:
            name = _default_name(cls)
            stale = _by_name.get(name)
            if stale is not None:
                _by_type.pop(stale, None)
            _by_name[name] = cls
            _by_type[cls] = name
        return name


def _lookup(name: str) -> type:
    with _lock:
        cls = _by_name.get(name)
    if cls is None:
        raise ValueError(f"labgob: type {name!r} is not registered")
    return cls


def _to_tree(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return {"e": _name_for(type(value)), "v": _to_tree(value.value)}
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, (bytes, bytearray)):
        return {"b": base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, list):
        return [_to_tree(item) for item in value]
    if isinstance(value, tuple):
        return {"t": [_to_tree(item) for item in value]}
    if isinstance(value, (set, frozenset)):
        return {"s": [_to_tree(item) for item in value]}
    if isinstance(value, dict):
        return {"m": [[_to_tree(k), _to_tree(v)] for k, v in value.items()]}
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            "d": _name_for(type(value)),
            "f": {
                f.name: _to_tree(getattr(value, f.name))
                for f in dataclasses.fields(value)
                if not _is_private(f.name)
            },
        }
    raise TypeError(f"labgob: cannot encode value of type {type(value).__name__}")


def _build_dataclass(cls: type, data: dict[str, Any]) -> Any:
    obj = cls.__new__(cls)
    for f in dataclasses.fields(cls):
        if f.name in data:
            object.__setattr__(obj, f.name, _from_tree(data[f.name]))
        elif f.default is not dataclasses.MISSING:
            object.__setattr__(obj, f.name, f.default)
        elif f.default_factory is not dataclasses.MISSING:
            object.__setattr__(obj, f.name, f.default_factory())
    return obj


def _from_tree(tree: Any) -> Any:
    if isinstance(tree, list):
        return [_from_tree(item) for item in tree]
    if not isinstance(tree, dict):
        return tree
    if "b" in tree:
        return base64.b64decode(tree["b"])
    if "t" in tree:
        return tuple(_from_tree(item) for item in tree["t"])
    if "s" in tree:
        return {_from_tree(item) for item in tree["s"]}
    if "m" in tree:
        return {_from_tree(k): _from_tree(v) for k, v in tree["m"]}
    if "e" in tree:
        return _lookup(tree["e"])(_from_tree(tree["v"]))
    if "d" in tree:
        cls = _lookup(tree["d"])
        if not dataclasses.is_dataclass(cls):
            raise ValueError(f"labgob: {tree['d']!r} is not a dataclass")
        return _build_dataclass(cls, tree["f"])
    raise ValueError("labgob: malformed data")


def _is_type_like(target: Any) -> bool:
    return (
        target is Any
        or typing.get_origin(target) is not None
        or isinstance(target, type)
    )


def _conform(value: Any, target: Any) -> Any:
    origin = typing.get_origin(target) or target
    if origin is Any or not isinstance(origin, type):
        return value
    if origin is float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    if not isinstance(value, origin):
        raise TypeError(
            f"labgob: decoded {type(value).__name__}, expected {origin.__name__}"
        )
    return value


class LabEncoder:
    """Writes values to a binary stream, one per line."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream

    def encode(self, value: Any) -> None:
        """Check and write one value."""
        _check_value(value)
        text = json.dumps(_to_tree(value), separators=(",", ":"))
        self._stream.write(text.encode("utf-8") + b"\n")


class LabDecoder:
    """Reads values written by a :class:`LabEncoder`."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream

    def decode(self, target: Any = None) -> Any:
        """Read the next value.

        ``target`` may be a type the value must have, or an existing object
        to fill; a dataclass instance is updated in place and returned.
        """
        type_like = target is None or _is_type_like(target)
        if target is not None:
            if type_like:
                _check_type(target)
            else:
                _check_type(type(target))
                _check_default(target, 1, "")

        line = self._stream.readline()
        if not line:
            raise EOFError("labgob: no more values")
        try:
            value = _from_tree(json.loads(line))
        except json.JSONDecodeError as exc:
            raise ValueError("labgob: malformed data") from exc

        if target is None:
            return value
        if type_like:
            return _conform(value, target)

        value = _conform(value, type(target))
        if dataclasses.is_dataclass(target):
            for f in dataclasses.fields(target):
                if not _is_private(f.name):
                    object.__setattr__(target, f.name, getattr(value, f.name))
            return target
        return value