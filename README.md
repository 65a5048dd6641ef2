# hxkit

A small toolkit of low-level utilities in plain Python, with no dependencies
outside the standard library.

## Modules

- `hxkit.allocators`: the system-wide allocators over a simulated address
  space, where addresses are plain integers. `OsHeapAllocator` hands out
  aligned blocks with a header and counts them; `StackAllocator` is a bump
  allocator over a fixed range whose space is never reused;
  `TempStackAllocator` rewinds to its previous depth when a scope closes and
  raises `AllocationError` if the scope leaked allocations;
  `ScratchpadAllocator` has three pages, a temp area and an exclusive "all"
  section. `MemoryManagerId` names the allocators.
- `hxkit.memory`: `MemoryManager` routes allocations to the current
  allocator of each thread and overflows to the heap when a fixed allocator
  is full. `MemoryManagerScope` is a context manager that makes an allocator
  current and reports `total_allocation_count()`, `total_bytes_allocated()`,
  `scope_allocation_count()` and `scope_bytes_allocated()`. Module-level
  functions: `memory_manager_init`, `memory_manager_shutdown`,
  `memory_manager_allocation_count`, `malloc`, `malloc_ext`, `free` and
  `is_scratchpad`.
- `hxkit.sort`: `insertion_sort(items, less)` sorts a list in place,
  `binary_search(items, value, less)` returns an index or `None`, and
  `RadixSort` orders values by keys of a `KeyKind` (8-, 16- or 32-bit signed
  or unsigned integers, or 32-bit floats). `radix_key(key, kind)` gives the
  unsigned 32-bit sort key.
- `hxkit.hashing`: `fnv1a_hash`, `string_literal_hash_debug` (over at most
  the first 192 characters), `integer_hash`, and the hash table node types
  `IntegerNode` and `StringNode`.
- `hxkit.prng`: `TestRandom`, a 32-bit linear congruential generator.
- `hxkit.profiler`: `Profiler` records `scope(label, min_cycles)` blocks
  while started, logs them with `log()` or writes Chrome tracing JSON with
  `write_chrome_tracing(filename)`. A shared instance is `hxkit.profiler.profiler`.
- `hxkit.tasks`: `Task` (subclass it and implement `execute(queue)`) and
  `TaskQueue`, which runs tasks on the calling thread when its pool size is
  0, or on a pool of threads otherwise. An exception raised by a task on the
  pool is re-raised from `wait_for_all()` or `close()`.
- `hxkit.file`: `File`, a binary file stream opened with `OpenMode.IN`,
  `OpenMode.OUT`, optionally with `OpenMode.FALLIBLE`, which turns errors into
  a cleared `good` flag instead of raised exceptions. It offers `read`,
  `write`, `get_line` and `print`, and is a context manager.
- `hxkit.settings`: the shared `settings` object (`Settings`) and `LogLevel`.

## Installation

```
pip install .
```

## Examples

Radix sorting:

```python
from hxkit.sort import RadixSort, KeyKind

rs = RadixSort(KeyKind.INT32)
for value in (5, -3, 12, 0):
    rs.insert(value, f"item {value}")
rs.sort()
print(list(rs))  # ['item -3', 'item 0', 'item 5', 'item 12']
```

Temporary allocations that are rolled back when the scope closes:

```python
from hxkit.memory import MemoryManagerScope, malloc, free, memory_manager_init
from hxkit.allocators import MemoryManagerId

memory_manager_init()
with MemoryManagerScope(MemoryManagerId.TEMPORARY_STACK) as scope:
    address = malloc(64)
    print(scope.scope_bytes_allocated())  # 64
    free(address)
```

Running tasks:

```python
from hxkit.tasks import Task, TaskQueue

class Hello(Task):
    def execute(self, queue):
        print("hello from", self.label)

with TaskQueue(thread_pool_size=2) as queue:
    queue.enqueue(Hello("greeting"))
    queue.wait_for_all()
```

Profiling:

```python
from hxkit.profiler import Profiler

profiler = Profiler()
profiler.start()
with profiler.scope("work", 0):
    sum(range(10000))
profiler.write_chrome_tracing("trace.json")
```

## What it does not do

- The memory manager models addresses and bookkeeping only; it does not
  reserve or hand out real memory, and nothing can be stored at an address.
- There is no interactive console or command line: profiling and settings
  are driven from Python code only.

## Tests

```
pip install .[test]
pytest
```