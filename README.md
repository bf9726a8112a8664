# ccbase

Concurrency building blocks for threaded Python programs on Linux.

## Contents

- `ccbase.token_bucket.TokenBucket`: a token-bucket rate limiter. Time is
  given in microseconds (`now_us`), or read from the wall clock when omitted.
  `gen` adds the tokens earned since the last call and keeps the fractional
  remainder. `get` and `check` take or test tokens. `overdraft` takes tokens
  unconditionally and returns how many are owed. `mod` changes the rate and
  the bucket size. `tokens` returns the count, never negative.
- `ccbase.eventfd.EventFd`: a wrapper around a Linux eventfd counter, with
  `notify`, `get`, `get_wait`, `write`, `read`, `fileno` and `close`. It can
  be used as a context manager.
- `ccbase.fast_queue.FastQueue`: a bounded single-producer/single-consumer
  ring queue of `qlen` slots, which holds at most `qlen - 1` items.
  - `push` returns `False` when the queue is full.
  - `pop` raises `QueueEmpty` when there is nothing to take.
  - `pop_wait(timeout)` waits up to `timeout` milliseconds; a negative value
    waits forever. With `enable_notify=True` (the default) it blocks on an
    `EventFd`; otherwise it polls every millisecond.
- `ccbase.accumulated_list`:
  - `AccumulatedList`: a list that only grows; the newest nodes are visited
    first.
  - `AllocatedList`: a pool that reuses freed slots.
  - `ThreadLocalList`: one object per thread, visible from every thread and
    freed when its thread ends.
- `ccbase.memory_reclamation`: deferred deletion of objects that readers may
  still be using. Each scheme offers `read_lock`, `read_unlock`, `retire` and
  `retire_cleanup`.
  - `RefCountReclamation`: `retire` waits until no reader holds the lock,
    then deletes at once.
  - `EpochBasedReclamation`: uses global epochs.
  - `HazardPtrReclamation`: readers publish the objects they use; the
    constructor takes `hazard_ptr_num` and `reclaim_threshold`.
  - `PtrReclamationAdapter`: gives any of the three the same interface for a
    single shared reference.
- `ccbase.thread_local_obj.ThreadLocalObj`: a per-instance, per-thread value
  built by a factory on first use. Each instance has an increasing
  `instance_id()`.
- `ccbase.concurrent_ptr`:
  - `ConcurrentPtr`: a reference that readers use (`reader()` as a context
    manager, or `read_lock`/`read_unlock`) while writers replace it with
    `reset`. Replaced objects are handed to an optional deleter once that is
    safe.
  - `ConcurrentSharedPtr`: a simpler form with `get` and `reset`.
- `ccbase.dispatch_queue.DispatchQueue`: many producers to many consumers
  over a mesh of bounded `FastQueue`s.
  - `register_producer` returns an `OutQueue` and reuses unregistered ones.
    `OutQueue.push` is round-robin, `push_to` targets one consumer, and
    `unregister` gives the producer back.
  - `register_consumer` returns an `InQueue` with `pop` and `pop_wait`.
  - Registering past `max_producers` or `max_consumers` raises
    `RuntimeError`.
- `ccbase.timer_wheel`: a hierarchical `TimerWheel` with one-shot and
  periodic timers, measured in ticks of `us_per_tick` microseconds.
  - `add_timer`, `add_period_timer`, `reset_timer` and `reset_period_timer`
    return `False` for timeouts above `MAX_TIMEOUT`, and for a zero period.
  - `move_on` runs due callbacks, or hands them to an optional `sched_func`.
  - A `TimerOwner` holds one cancellable timer.
  - An injectable `clock` (microseconds) makes the wheel testable.
- `ccbase.thread`:
  - `create_thread` returns a started thread.
  - `create_detached_thread` starts a daemon thread.
  - `set_thread_name` renames the Python thread to `<base>/<name>`.
- `ccbase.worker_group`:
  - `WorkerGroup`: a pool of worker threads that run posted, delayed and
    periodic tasks.
  - `Worker`: each worker is a `TimerWheel` with one-millisecond ticks;
    `Worker.current()` returns the worker running the calling thread.
  - `Poller` / `DefaultPoller`: decide how idle workers wait.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Examples

Rate limiting:

```python
from ccbase.token_bucket import TokenBucket

bucket = TokenBucket(1000, 200, 0, 0)   # 1000 tokens/s, bucket of 200, empty at t=0
bucket.gen(1_000)                       # one millisecond later: one token
assert bucket.get(1)
```

A worker group:

```python
from ccbase.worker_group import WorkerGroup

with WorkerGroup(4, 1024) as group:
    group.post_task(lambda: print("hello"))
    group.post_task(lambda: print("later"), delay_ms=100)
    group.post_period_task(lambda: print("tick"), 1000, worker_id=0)
```

Leaving the `with` block stops the workers. Tasks already queued still run,
but pending timers do not.

A timer wheel driven by hand:

```python
from ccbase.timer_wheel import TimerOwner, TimerWheel

wheel = TimerWheel(us_per_tick=1000)
owner = TimerOwner()
wheel.add_timer(50, lambda: print("fired"), owner)
wheel.move_on()            # call regularly; due callbacks run here
owner.cancel()
```

## Limitations

- The package is a library only. It provides no command-line program.
- `EventFd` relies on `os.eventfd`, which is available on Linux only.
  `FastQueue` therefore needs Linux when `enable_notify` is on.
- `set_thread_name` changes the name of the Python `threading.Thread`. It
  does not change the operating-system thread name.