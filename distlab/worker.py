"""MapReduce workers: run map and reduce tasks handed out by the coordinator."""

from __future__ import annotations

import json
import os
import time
from itertools import groupby
from multiprocessing.connection import Client
from typing import Any, Callable, Optional

from distlab.mrprotocol import (
    KeyValue,
    TaskType,
    coordinator_address,
    intermediate_name,
    output_name,
)

MapFunc = Callable[[str, str], list[KeyValue]]
ReduceFunc = Callable[[str, list[str]], str]

_ENCODING = "utf-8"
_ERRORS = "surrogateescape"
_WAIT_PAUSE = 0.05


def ihash(key: str) -> int:
    """FNV-1a 32-bit hash of ``key``, masked to a non-negative 31-bit value."""
    h = 0x811C9DC5
    for byte in key.encode(_ENCODING, _ERRORS):
        h ^= byte
        h = (h * 0x01000193) & 0xFFFFFFFF
    return h & 0x7FFFFFFF


def run_map_task(
    mapf: MapFunc, filename: str, map_id: int, n_reduce: int, directory: str = "."
) -> list[str]:
    """Map one input file and split its output into ``n_reduce`` files.

    Returns the paths written, in reduce-task order.
    """
    with open(filename, encoding=_ENCODING, errors=_ERRORS) as f:
        contents = f.read()
    buckets: list[list[KeyValue]] = [[] for _ in range(n_reduce)]
    for kv in mapf(filename, contents):
        buckets[ihash(kv.key) % n_reduce].append(kv)

    paths = []
    for reduce_id, bucket in enumerate(buckets):
        path = os.path.join(directory, intermediate_name(map_id, reduce_id))
        with open(path, "w", encoding=_ENCODING, errors=_ERRORS) as out:
            for kv in bucket:
                out.write(json.dumps({"Key": kv.key, "Value": kv.value}) + "\n")
        paths.append(path)
    return paths


def _read_intermediate(path: str) -> list[KeyValue]:
    pairs = []
    try:
        with open(path, encoding=_ENCODING, errors=_ERRORS) as f:
            for line in f:
                try:
                    record = json.loads(line)
                    pairs.append(KeyValue(record["Key"], record["Value"]))
                except (ValueError, KeyError, TypeError):
                    break
    except FileNotFoundError:
        pass
    return pairs


def run_reduce_task(
    reducef: ReduceFunc, reduce_id: int, n_map: int, directory: str = "."
) -> str:
    """Reduce the intermediate files of one reduce task; return the output path."""
    pairs: list[KeyValue] = []
    for map_id in range(n_map):
        pairs.extend(_read_intermediate(os.path.join(directory, intermediate_name(map_id, reduce_id))))
    pairs.sort(key=lambda kv: kv.key)

    path = os.path.join(directory, output_name(reduce_id))
    with open(path, "w", encoding=_ENCODING, errors=_ERRORS) as out:
        for key, group in groupby(pairs, key=lambda kv: kv.key):
            values = [kv.value for kv in group]
            out.write(f"{key} {reducef(key, values)}\n")
    return path


class CoordinatorClient:
    """Sends requests to a coordinator, one connection per call."""

    def __init__(self, address: Any = None) -> None:
        self.address = coordinator_address() if address is None else address

    def call(self, method: str, *args: Any) -> Any:
        """Call ``method`` on the coordinator and return its result.

        Raises OSError if the coordinator cannot be reached and RuntimeError
        if it rejects the call.
        """
        with Client(self.address) as conn:
            conn.send((method, args))
            status, payload = conn.recv()
        if status != "ok":
            raise RuntimeError(f"coordinator call {method} failed: {payload}")
        return payload


def worker(mapf: MapFunc, reducef: ReduceFunc, address: Any = None) -> None:
    """Ask the coordinator for tasks and run them until told to exit."""
    client = CoordinatorClient(address)
    worker_id = client.call("register_worker")
    while True:
        task = client.call("request_task", worker_id)
        if task.exit:
            client.call("worker_exit", worker_id)
            return
        if task.task_type is TaskType.MAP:
            run_map_task(mapf, task.map_name, task.map_id, task.reduce_count)
            client.call("task_done", TaskType.MAP, task.map_name, 0)
        elif task.task_type is TaskType.REDUCE:
            run_reduce_task(reducef, task.reduce_id, task.map_task_count)
            client.call("task_done", TaskType.REDUCE, "", task.reduce_id)
        else:
            time.sleep(_WAIT_PAUSE)