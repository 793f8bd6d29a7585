"""Map and reduce functions for MapReduce jobs, looked up by application name.

Besides word count and an inverted index, there are applications that
crash, stall or record timing, to exercise a MapReduce implementation's
fault tolerance and parallelism.
"""

from __future__ import annotations

import itertools
import os
import random
import re
import secrets
import time
from dataclasses import dataclass
from typing import Callable

from distlab.mrprotocol import KeyValue

MapFunc = Callable[[str, str], list[KeyValue]]
ReduceFunc = Callable[[str, list[str]], str]

_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


@dataclass(frozen=True)
class MapReduceApp:
    """A named pair of map and reduce functions."""

    name: str
    mapf: MapFunc
    reducef: ReduceFunc


def _words(text: str) -> list[str]:
    """Split ``text`` into maximal runs of letters."""
    return [
        "".join(run)
        for is_letter, run in itertools.groupby(text, key=str.isalpha)
        if is_letter
    ]


def _byte_len(text: str) -> int:
    return len(text.encode(_ENCODING, _ERRORS))


def _sorted_join(values: list[str]) -> str:
    # Sorting makes the output independent of the order values arrive in.
    return " ".join(sorted(values))


# Word count.


def wc_map(filename: str, contents: str) -> list[KeyValue]:
    """Emit ``(word, "1")`` for every word in ``contents``."""
    return [KeyValue(word, "1") for word in _words(contents)]


def wc_reduce(key: str, values: list[str]) -> str:
    """Return the number of occurrences of a word."""
    return str(len(values))


# Inverted index.


def indexer_map(document: str, value: str) -> list[KeyValue]:
    """Emit ``(word, document)`` once for each distinct word in the document."""
    return [KeyValue(word, document) for word in dict.fromkeys(_words(value))]


def indexer_reduce(key: str, values: list[str]) -> str:
    """Return the document count followed by the sorted document names."""
    documents = sorted(values)
    return f"{len(documents)} {','.join(documents)}"


# Applications that sometimes crash or stall.


def _maybe_crash() -> None:
    roll = secrets.randbelow(1000)
    if roll < 330:
        os._exit(1)
    elif roll < 660:
        time.sleep(secrets.randbelow(10 * 1000) / 1000)


def _file_facts(filename: str, contents: str) -> list[KeyValue]:
    return [
        KeyValue("a", filename),
        KeyValue("b", str(_byte_len(filename))),
        KeyValue("c", str(_byte_len(contents))),
        KeyValue("d", "xyzzy"),
    ]


def crash_map(filename: str, contents: str) -> list[KeyValue]:
    """Emit facts about the file; may kill the process or stall first."""
    _maybe_crash()
    return _file_facts(filename, contents)


def crash_reduce(key: str, values: list[str]) -> str:
    """Join the sorted values; may kill the process or stall first."""
    _maybe_crash()
    return _sorted_join(values)


def nocrash_map(filename: str, contents: str) -> list[KeyValue]:
    """Like :func:`crash_map`, but never crashes or stalls."""
    return _file_facts(filename, contents)


def nocrash_reduce(key: str, values: list[str]) -> str:
    """Like :func:`crash_reduce`, but never crashes or stalls."""
    return _sorted_join(values)


# Early exit: some reduce tasks take a long time.


def early_exit_map(filename: str, contents: str) -> list[KeyValue]:
    """Emit ``(filename, "1")`` once per file."""
    return [KeyValue(filename, "1")]


def early_exit_reduce(key: str, values: list[str]) -> str:
    """Return the number of values, sleeping first for some keys."""
    if "sherlock" in key or "tom" in key:
        time.sleep(3)
    return str(len(values))


# Job count: records every map invocation in the working directory.

_JOBCOUNT_PREFIX = "mr-worker-jobcount"
_jobcount_counter = itertools.count()


def jobcount_map(filename: str, contents: str) -> list[KeyValue]:
    """Leave a marker file for this invocation, then stall a while."""
    marker = f"{_JOBCOUNT_PREFIX}-{os.getpid()}-{next(_jobcount_counter)}"
    with open(marker, "w", encoding=_ENCODING) as f:
        f.write("x")
    time.sleep((2000 + random.randrange(3000)) / 1000)
    return [KeyValue("a", "x")]


def jobcount_reduce(key: str, values: list[str]) -> str:
    """Return how many map invocations left a marker file."""
    return str(sum(1 for name in os.listdir(".") if name.startswith(_JOBCOUNT_PREFIX)))


# Timing: count how many workers run a phase at the same time.


def _is_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except (OSError, OverflowError):
        return False
    return True


def _nparallel(phase: str) -> int:
    """Return how many processes are running ``phase`` right now, this one included."""
    marker = f"mr-worker-{phase}-{os.getpid()}"
    with open(marker, "w", encoding=_ENCODING) as f:
        f.write("x")

    pattern = re.compile(rf"mr-worker-{re.escape(phase)}-([+-]?\d+)")
    running = 0
    for name in os.listdir("."):
        match = pattern.match(name)
        if match and _is_alive(int(match.group(1))):
            running += 1

    time.sleep(1)
    os.remove(marker)
    return running


def mtiming_map(filename: str, contents: str) -> list[KeyValue]:
    """Emit this process's start time and how many maps ran alongside it."""
    start = time.time()
    pid = os.getpid()
    running = _nparallel("map")
    return [
        KeyValue(f"times-{pid}", f"{start:.1f}"),
        KeyValue(f"parallel-{pid}", str(running)),
    ]


def mtiming_reduce(key: str, values: list[str]) -> str:
    """Join the sorted values."""
    return _sorted_join(values)


def rtiming_map(filename: str, contents: str) -> list[KeyValue]:
    """Emit ten fixed keys, one for each of the letters a to j."""
    return [KeyValue(letter, "1") for letter in "abcdefghij"]


def rtiming_reduce(key: str, values: list[str]) -> str:
    """Return how many reduces ran alongside this one."""
    return str(_nparallel("reduce"))


_APPS = {
    app.name: app
    for app in (
        MapReduceApp("wc", wc_map, wc_reduce),
        MapReduceApp("indexer", indexer_map, indexer_reduce),
        MapReduceApp("crash", crash_map, crash_reduce),
        MapReduceApp("nocrash", nocrash_map, nocrash_reduce),
        MapReduceApp("early_exit", early_exit_map, early_exit_reduce),
        MapReduceApp("jobcount", jobcount_map, jobcount_reduce),
        MapReduceApp("mtiming", mtiming_map, mtiming_reduce),
        MapReduceApp("rtiming", rtiming_map, rtiming_reduce),
    )
}


def load_app(name: str) -> MapReduceApp:
    """Return the application called ``name``.

    A path such as ``../mrapps/wc.so`` names the application ``wc``.
    Raises ValueError for an unknown application.
    """
    base, _ = os.path.splitext(os.path.basename(name))
    app = _APPS.get(base)
    if app is None:
        raise ValueError(
            f"unknown MapReduce application {name!r}; expecting one of {sorted(_APPS)}"
        )
    return app