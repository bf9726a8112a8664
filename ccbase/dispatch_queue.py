"""Many-to-many task dispatch over a grid of single-producer queues."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from ccbase.fast_queue import FastQueue, QueueEmpty

T = TypeVar("T")

_MAX_STICKY_READ_CNT = 32


def _round_robin(
    queues: list[FastQueue[Any]], cursor: int, attempt: Callable[[FastQueue[Any]], bool]
) -> int | None:
    """Try queues starting after ``cursor``, wrapping; return the index that succeeded."""
    count = len(queues)
    start = cursor + 1
    for offset in range(count):
        index = (start + offset) % count
        if attempt(queues[index]):
            return index
    return None


class OutQueue(Generic[T]):
    """A producer's end of a DispatchQueue. Use it from one thread only."""

    def __init__(self, dispatch_queue: DispatchQueue[T], index: int) -> None:
        self._dispatch_queue = dispatch_queue
        self._index = index
        self._registered = True
        self._cursor = -1
        self._queues: list[FastQueue[T]] = []

    def _check_registered(self) -> None:
        if not self._registered:
            raise RuntimeError("push unregistered OutQueue")

    def push(self, value: T) -> bool:
        """Push to the next consumer with room; return False if all are full."""
        self._check_registered()
        index = _round_robin(self._queues, self._cursor, lambda q: q.push(value))
        if index is None:
            return False
        self._cursor = index
        return True

    def push_to(self, index: int, value: T) -> bool:
        """Push to consumer ``index``; return False if full or absent."""
        self._check_registered()
        if not 0 <= index < len(self._queues):
            return False
        return self._queues[index].push(value)

    def unregister(self) -> None:
        """Give this producer back to the dispatch queue for reuse."""
        self._dispatch_queue.unregister_producer(self)


class InQueue(Generic[T]):
    """A consumer's end of a DispatchQueue. Use it from one thread only."""

    def __init__(self, dispatch_queue: DispatchQueue[T], index: int) -> None:
        self._dispatch_queue = dispatch_queue
        self._index = index
        self._cursor = -1
        self._sticky_reads = 0
        self._queues: list[FastQueue[T]] = []

    def pop(self) -> T:
        """Pop from some producer's queue, or raise QueueEmpty."""
        # keep reading the same producer for a while
        if 0 < self._sticky_reads < _MAX_STICKY_READ_CNT:
            try:
                value = self._queues[self._cursor].pop()
            except QueueEmpty:
                pass
            else:
                self._sticky_reads += 1
                return value
        self._sticky_reads = 0

        popped: list[T] = []

        def attempt(queue: FastQueue[T]) -> bool:
            try:
                popped.append(queue.pop())
            except QueueEmpty:
                return False
            return True

        index = _round_robin(self._queues, self._cursor, attempt)
        if index is None:
            raise QueueEmpty
        self._cursor = index
        self._sticky_reads = 1
        return popped[0]

    def pop_wait(self, timeout: int = -1) -> T:
        """Pop, polling every millisecond for up to ``timeout`` ms (negative: forever)."""
        slept_ms = 0
        while True:
            try:
                return self.pop()
            except QueueEmpty:
                if 0 <= timeout <= slept_ms:
                    raise
                time.sleep(0.001)
                slept_ms += 1


class DispatchQueue(Generic[T]):
    """Connects every producer to every consumer with a bounded queue of ``qlen`` slots."""

    def __init__(
        self, qlen: int, max_producers: int = 1024 * 16, max_consumers: int = 1024
    ) -> None:
        if qlen < 1:
            raise ValueError(f"qlen must be at least 1, got {qlen}")
        self._qlen = qlen
        self._max_producers = max_producers
        self._max_consumers = max_consumers
        self._lock = threading.Lock()
        self._producers: list[OutQueue[T]] = []
        self._consumers: list[InQueue[T]] = []
        self._reclaimed: list[int] = []

    def _new_queue(self) -> FastQueue[T]:
        return FastQueue(self._qlen, enable_notify=False)

    def register_producer(self) -> OutQueue[T]:
        """Return a producer end, reusing an unregistered one if possible."""
        with self._lock:
            if self._reclaimed:
                producer = self._producers[self._reclaimed.pop()]
                producer._registered = True
                return producer
            if len(self._producers) >= self._max_producers:
                raise RuntimeError("too many producers")
            producer = OutQueue(self, len(self._producers))
            for consumer in self._consumers:
                queue = self._new_queue()
                consumer._queues.append(queue)
                producer._queues.append(queue)
            self._producers.append(producer)
            return producer

    def register_consumer(self) -> InQueue[T]:
        """Return a new consumer end."""
        with self._lock:
            if len(self._consumers) >= self._max_consumers:
                raise RuntimeError("too many consumers")
            consumer = InQueue(self, len(self._consumers))
            for producer in self._producers:
                queue = self._new_queue()
                consumer._queues.append(queue)
                producer._queues.append(queue)
            self._consumers.append(consumer)
            return consumer

    def unregister_producer(self, outq: OutQueue[T]) -> None:
        """Mark ``outq`` as free for a later register_producer."""
        with self._lock:
            index = getattr(outq, "_index", None)
            if (
                not isinstance(outq, OutQueue)
                or index is None
                or not 0 <= index < len(self._producers)
                or self._producers[index] is not outq
            ):
                raise ValueError("invalid OutQueue to unregister")
            if not outq._registered:
                raise RuntimeError("double unregister")
            outq._registered = False
            self._reclaimed.append(index)


__all__ = ["DispatchQueue", "InQueue", "OutQueue"]