# distlab

A toolkit for building and testing distributed systems in Python.

It has these parts:

- **`distlab.labgob`**: an encoder and decoder (`LabEncoder`, `LabDecoder`)
  for values sent between processes or saved to disk. Values are written
  one per line as tagged JSON to a binary stream. Supported values are
  `None`, booleans, numbers, strings, bytes, lists, tuples, sets, dicts,
  enums and dataclasses. While encoding and decoding, the module logs a
  problem when a dataclass has a field whose name starts with an
  underscore, since such fields are not transmitted. It also logs a problem
  when you decode into an object that already holds non-default values.
  `error_count()` reports how many such problems were seen. Use
  `register(cls)` or `register_name(name, cls)` to make a dataclass or
  enum known to a decoder that has not encoded it itself.
- **`distlab.checker`**: a linearizability checker for recorded histories.
  A history is a list of `Operation`s or of `Event`s (see `distlab.model`).
  It is checked against a `Model`, which is a sequential specification with
  `init` and `step` functions and optional partitioning, equality and
  description functions. The checking functions are:
  - `check_operations` and `check_events`, which return a bool.
  - `check_operations_timeout` and `check_events_timeout`, which return a
    `CheckResult`. The timeout is in seconds or a `timedelta`; 0 or `None`
    means no timeout. A check that runs out of time returns
    `CheckResult.UNKNOWN`.
  - `check_operations_verbose` and `check_events_verbose`, which also
    return a `LinearizationInfo` holding the longest linearizable prefixes
    found in each partition.
- **`distlab.kvmodel`**: a ready-made model of a key/value store with get,
  put and append. It is `KV_MODEL`, with inputs `KvInput(op, key, value)`
  using `KvOp` and outputs `KvOutput(value)`. Histories are partitioned by
  key.
- **`distlab.bitset`**: the fixed-capacity `Bitset` the checker uses.
- **MapReduce**: `distlab.coordinator`, `distlab.worker`,
  `distlab.mrprotocol`, `distlab.mrapps` and `distlab.cli`. The coordinator
  hands out map and reduce tasks to worker processes over a local socket.
  A sequential runner produces reference output. Sample applications
  include word count, an inverted indexer, and test applications that
  crash, stall or measure parallelism.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Running MapReduce

Start a coordinator with the input files. It uses 10 reduce tasks and
listens on a UNIX-domain socket at `/var/tmp/824-mr-<uid>`. It exits once
all tasks are done and every worker has left.

```
mrcoordinator pg-*.txt
```

In the same directory, start one or more workers with the name of an
application:

```
mrworker wc
```

The application names are `wc`, `indexer`, `crash`, `nocrash`,
`early_exit`, `jobcount`, `mtiming` and `rtiming`. A path such as
`../mrapps/wc.so` is accepted too; it names the application `wc`.

Map task *M* writes its output for reduce task *R* to `mr-M-R`. Reduce task
*R* writes its results to `mr-out-R`. A task that is not reported done
within 15 seconds is handed out again.

The sequential runner writes every result into a single file, `mr-out-0`:

```
mrsequential wc pg-*.txt
```

Each output line is a key, a space, and the value the reduce function
returned for that key, in key order.

From Python, `Coordinator(files, n_reduce, task_timeout)` can be driven
directly. You can also serve it with `serve(address)`, where a string
address is a socket path and a `(host, port)` tuple is TCP. Then run
`worker(mapf, reducef, address)` against it. `run_sequential(mapf,
reducef, filenames, output_path)` and `load_app(name)` are also available.

## Checking a history

```python
from distlab.checker import check_operations
from distlab.kvmodel import KV_MODEL, KvInput, KvOp, KvOutput
from distlab.model import Operation

history = [
    Operation(KvInput(KvOp.PUT, "x", "1"), KvOutput(), 0, 10, client_id=0),
    Operation(KvInput(KvOp.GET, "x"), KvOutput("1"), 20, 30, client_id=1),
]
print(check_operations(KV_MODEL, history))  # True
```

## Encoding values

```python
import io
from dataclasses import dataclass

from distlab.labgob import LabDecoder, LabEncoder


@dataclass
class Args:
    Key: str = ""
    Value: str = ""


buf = io.BytesIO()
LabEncoder(buf).encode(Args("k", "v"))
buf.seek(0)
print(LabDecoder(buf).decode(Args))  # Args(Key='k', Value='v')
```

## What this package does not do

It has no simulated network of its own. There is nothing here that drops,
delays or reorders messages, or that cuts off hosts. MapReduce workers and
the coordinator talk over a real local socket, and the linearizability
checker works on histories you record yourself. There is also no
fault-tolerant replicated key/value server; `distlab.kvmodel` only
describes how such a store should behave, for use with the checker.