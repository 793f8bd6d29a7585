"""Command-line entry points: a sequential MapReduce and a worker process."""

from __future__ import annotations

import sys
from itertools import groupby
from typing import Callable, Optional, Sequence

from distlab.mrapps import load_app
from distlab.mrprotocol import KeyValue, output_name
from distlab.worker import worker

MapFunc = Callable[[str, str], list[KeyValue]]
ReduceFunc = Callable[[str, list[str]], str]

_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


def run_sequential(
    mapf: MapFunc,
    reducef: ReduceFunc,
    filenames: Sequence[str],
    output_path: str = "mr-out-0",
) -> str:
    """Map every file, reduce each distinct key in key order, write the output.

    Each output line is ``key value``. Returns ``output_path``.
    """
    intermediate: list[KeyValue] = []
    for filename in filenames:
        with open(filename, encoding=_ENCODING, errors=_ERRORS) as f:
            contents = f.read()
        intermediate.extend(mapf(filename, contents))

    intermediate.sort(key=lambda kv: kv.key)

    with open(output_path, "w", encoding=_ENCODING, errors=_ERRORS) as out:
        for key, group in groupby(intermediate, key=lambda kv: kv.key):
            values = [kv.value for kv in group]
            out.write(f"{key} {reducef(key, values)}\n")
    return output_path


def sequential_main(argv: Optional[Sequence[str]] = None) -> int:
    """Run a whole job in this process: ``mrsequential app inputfiles...``."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) < 2:
        print("Usage: mrsequential xxx.so inputfiles...", file=sys.stderr)
        return 1
    try:
        app = load_app(args[0])
    except ValueError:
        print(f"cannot load plugin {args[0]}", file=sys.stderr)
        return 1
    try:
        run_sequential(app.mapf, app.reducef, args[1:], output_name(0))
    except OSError as exc:
        print(f"cannot open {exc.filename}", file=sys.stderr)
        return 1
    return 0


def worker_main(argv: Optional[Sequence[str]] = None) -> int:
    """Run one worker against the default coordinator: ``mrworker app``."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) != 1:
        print("Usage: mrworker xxx.so", file=sys.stderr)
        return 1
    try:
        app = load_app(args[0])
    except ValueError:
        print(f"cannot load plugin {args[0]}", file=sys.stderr)
        return 1
    try:
        worker(app.mapf, app.reducef)
    except OSError as exc:
        print(f"worker: cannot reach coordinator: {exc}", file=sys.stderr)
        return 1
    except RuntimeError as exc:
        print(f"worker: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(sequential_main())