"""Messages exchanged between the MapReduce coordinator and its workers."""

from __future__ import annotations

import enum
import getpass
import os
from dataclasses import dataclass


class TaskType(enum.IntEnum):
    """What a worker is asked to do."""

    WAIT = 0
    MAP = 1
    REDUCE = 2


@dataclass(frozen=True)
class KeyValue:
    """One key/value pair produced by a map function."""

    key: str
    value: str


@dataclass
class TaskAssignment:
    """The coordinator's answer to a worker asking for work."""

    task_type: TaskType = TaskType.WAIT
    reduce_count: int = 0
    map_name: str = ""
    map_id: int = 0
    reduce_id: int = 0
    map_task_count: int = 0
    exit: bool = False


_INTERMEDIATE_NAME = "mr-{}-{}"
_OUTPUT_NAME = "mr-out-{}"


def coordinator_address() -> str:
    """Return a per-user UNIX-domain socket path for the coordinator."""
    owner = str(os.getuid()) if hasattr(os, "getuid") else getpass.getuser()
    return "/var/tmp/824-mr-" + owner


def intermediate_name(map_id: int, reduce_id: int) -> str:
    """Name of the file holding map task ``map_id``'s output for one reduce task."""
    return _INTERMEDIATE_NAME.format(map_id, reduce_id)


def output_name(reduce_id: int) -> str:
    """Name of the file holding the output of one reduce task."""
    return _OUTPUT_NAME.format(reduce_id)