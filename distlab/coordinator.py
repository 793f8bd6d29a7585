"""The MapReduce coordinator: hands out map and reduce tasks to workers."""

from __future__ import annotations

import enum
import logging
import os
import sys
import threading
import time
from dataclasses import dataclass
from multiprocessing.connection import Client, Listener
from typing import Any, Optional, Sequence

from distlab.mrprotocol import TaskAssignment, TaskType, coordinator_address

_log = logging.getLogger(__name__)

DEFAULT_TASK_TIMEOUT = 15.0
_REMOTE_METHODS = ("request_task", "task_done", "worker_exit", "register_worker")


class _Phase(enum.Enum):
    MAP = 0
    REDUCE = 1
    EXIT = 2


@dataclass
class _MapTask:
    id: int
    name: str
    working: bool = False
    done: bool = False
    worker_id: int = 0


@dataclass
class _ReduceTask:
    id: int
    working: bool = False
    done: bool = False
    worker_id: int = 0


class Coordinator:
    """Tracks map and reduce tasks and the workers doing them.

    A task that is not reported done within ``task_timeout`` seconds is
    handed out again and its worker is dropped.
    """

    def __init__(
        self,
        files: Sequence[str],
        n_reduce: int,
        task_timeout: float = DEFAULT_TASK_TIMEOUT,
    ) -> None:
        self._lock = threading.Lock()
        self._n_reduce = n_reduce
        self._task_timeout = task_timeout
        self._workers: list[int] = []
        self._phase = _Phase.MAP
        self._map_tasks: dict[str, _MapTask] = {}
        for index, name in enumerate(files):
            self._map_tasks[name] = _MapTask(index, name)
        self._map_done_count = 0
        self._reduce_tasks = [_ReduceTask(i) for i in range(n_reduce)]
        self._reduce_done_count = 0
        self._timers: list[threading.Timer] = []
        self._listener: Optional[Listener] = None
        self._address: Any = None
        self._closing = threading.Event()

    def request_task(self, worker_id: int) -> TaskAssignment:
        """Give the worker a task, tell it to wait, or tell it to exit."""
        with self._lock:
            if self._phase is _Phase.MAP:
                task = next(
                    (t for t in self._map_tasks.values() if not t.working and not t.done),
                    None,
                )
                if task is None:
                    return TaskAssignment(TaskType.WAIT)
                task.working = True
                task.worker_id = worker_id
                self._start_timer(TaskType.MAP, task.name, 0)
                return TaskAssignment(
                    task_type=TaskType.MAP,
                    reduce_count=self._n_reduce,
                    map_name=task.name,
                    map_id=task.id,
                )
            if self._phase is _Phase.REDUCE:
                task = next(
                    (t for t in self._reduce_tasks if not t.working and not t.done),
                    None,
                )
                if task is None:
                    return TaskAssignment(TaskType.WAIT)
                task.working = True
                task.worker_id = worker_id
                self._start_timer(TaskType.REDUCE, "", task.id)
                return TaskAssignment(
                    task_type=TaskType.REDUCE,
                    reduce_id=task.id,
                    map_task_count=self._map_done_count,
                )
            return TaskAssignment(exit=True)

    def _start_timer(self, task_type: TaskType, map_name: str, reduce_id: int) -> None:
        timer = threading.Timer(
            self._task_timeout, self._check_timeout, args=(task_type, map_name, reduce_id)
        )
        timer.daemon = True
        self._timers = [t for t in self._timers if t.is_alive()]
        self._timers.append(timer)
        timer.start()

    def _check_timeout(self, task_type: TaskType, map_name: str, reduce_id: int) -> None:
        with self._lock:
            if task_type is TaskType.MAP:
                task = self._map_tasks.get(map_name)
                if task is not None and not task.done and task.working:
                    _log.info("Map task [%s] timeout, reassigning...", map_name)
                    task.working = False
                    self._delete_worker(task.worker_id)
            elif task_type is TaskType.REDUCE and 0 <= reduce_id < len(self._reduce_tasks):
                task = self._reduce_tasks[reduce_id]
                if not task.done and task.working:
                    _log.info("Reduce task [%s] timeout, reassigning...", reduce_id)
                    task.working = False
                    self._delete_worker(task.worker_id)

    def _delete_worker(self, worker_id: int) -> None:
        try:
            self._workers.remove(worker_id)
        except ValueError:
            _log.warning(
                "Worker [%s] exit error! worker is not exist or already removed!", worker_id
            )
            return
        _log.info("Worker [%s] removed from coordinator!", worker_id)

    def worker_exit(self, worker_id: int) -> None:
        """Forget a worker that is shutting down."""
        with self._lock:
            _log.info("Worker [%s] exit!", worker_id)
            self._delete_worker(worker_id)

    def task_done(self, task_type: int, map_name: str = "", reduce_id: int = 0) -> None:
        """Record that a map task (by file name) or a reduce task (by id) finished."""
        kind = TaskType(task_type)
        with self._lock:
            if kind is TaskType.MAP:
                task = self._map_tasks.get(map_name)
                if task is not None and not task.done:
                    task.done = True
                    task.working = False
                    self._map_done_count += 1
                    _log.info("Map task [%s] done!", map_name)
                if self._phase is _Phase.MAP and self._map_done_count == len(self._map_tasks):
                    self._phase = _Phase.REDUCE
                    _log.info("All map tasks done! Starting Reduce phase.")
            elif kind is TaskType.REDUCE:
                if 0 <= reduce_id < len(self._reduce_tasks):
                    task = self._reduce_tasks[reduce_id]
                    if not task.done:
                        task.done = True
                        task.working = False
                        self._reduce_done_count += 1
                        _log.info("Reduce task [%s] done!", reduce_id)
                if self._phase is _Phase.REDUCE and self._reduce_done_count == len(
                    self._reduce_tasks
                ):
                    self._phase = _Phase.EXIT
                    _log.info("All reduce tasks done! Coordinator is finishing.")

    def register_worker(self) -> int:
        """Register a new worker and return its id."""
        with self._lock:
            worker_id = len(self._workers)
            self._workers.append(worker_id)
            _log.info("Worker [%s] register worker!", worker_id)
            return worker_id

    def done(self) -> bool:
        """Return whether the job has finished and every worker has left."""
        with self._lock:
            finished = self._phase is _Phase.EXIT and not self._workers
        if finished:
            _log.info("Coordinator Done!")
        return finished

    def serve(self, address: Any = None) -> Any:
        """Start answering workers at ``address`` and return the bound address.

        A string is a UNIX-domain socket path; a (host, port) tuple is TCP,
        and port 0 picks a free port.
        """
        if address is None:
            address = coordinator_address()
        if isinstance(address, str):
            try:
                os.remove(address)
            except FileNotFoundError:
                pass
        self._listener = Listener(address)
        self._address = self._listener.address
        self._closing.clear()
        threading.Thread(target=self._accept_loop, daemon=True).start()
        return self._address

    def _accept_loop(self) -> None:
        listener = self._listener
        while not self._closing.is_set():
            try:
                conn = listener.accept()
            except OSError:
                break
            if self._closing.is_set():
                conn.close()
                break
            threading.Thread(target=self._handle, args=(conn,), daemon=True).start()

    def _handle(self, conn: Any) -> None:
        with conn:
            try:
                method, args = conn.recv()
            except (EOFError, OSError, ValueError, TypeError):
                return
            if method not in _REMOTE_METHODS:
                conn.send(("error", f"unknown method {method!r}"))
                return
            try:
                result = getattr(self, method)(*args)
            except Exception as exc:
                conn.send(("error", f"{type(exc).__name__}: {exc}"))
                return
            conn.send(("ok", result))

    def shutdown(self) -> None:
        """Stop serving and cancel pending task timers."""
        with self._lock:
            timers, self._timers = self._timers, []
        for timer in timers:
            timer.cancel()
        listener, self._listener = self._listener, None
        if listener is None:
            return
        self._closing.set()
        try:
            Client(self._address).close()
        except OSError:
            pass
        listener.close()


def make_coordinator(files: Sequence[str], n_reduce: int) -> Coordinator:
    """Create a coordinator for ``files`` and start serving at the default address."""
    coordinator = Coordinator(files, n_reduce)
    coordinator.serve()
    return coordinator


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run a coordinator over the input files named on the command line."""
    files = list(sys.argv[1:] if argv is None else argv)
    if not files:
        print("Usage: mrcoordinator inputfiles...", file=sys.stderr)
        return 1
    coordinator = make_coordinator(files, 10)
    try:
        while not coordinator.done():
            time.sleep(1)
        time.sleep(1)
    finally:
        coordinator.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())