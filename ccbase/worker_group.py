"""A group of worker threads fed through a dispatch queue, each with a timer wheel."""

from __future__ import annotations

import abc
import threading
import time
from collections.abc import Callable
from typing import Any

from ccbase.dispatch_queue import DispatchQueue, InQueue, OutQueue
from ccbase.fast_queue import QueueEmpty
from ccbase.thread import create_thread
from ccbase.thread_local_obj import ThreadLocalObj
from ccbase.timer_wheel import TimerWheel

Task = Callable[[], Any]

_MAX_BATCH_PROCESS_TASKS = 16
_POLLER_TIMEOUT_MS = 1

_tls = threading.local()


class Poller(abc.ABC):
    """Waits for outside events between rounds of task processing."""

    @abc.abstractmethod
    def poll(self, timeout_ms: int) -> None:
        """Wait up to ``timeout_ms``; with 0 this must not block."""


class DefaultPoller(Poller):
    """A poller that just sleeps."""

    def poll(self, timeout_ms: int) -> None:
        if timeout_ms > 0:
            time.sleep(timeout_ms / 1000)


_DEFAULT_POLLER = DefaultPoller()


class Worker(TimerWheel):
    """One worker thread of a WorkerGroup, with its own millisecond timer wheel."""

    def __init__(
        self, group: WorkerGroup, worker_id: int, inq: InQueue[Task], poller: Poller
    ) -> None:
        super().__init__(1000, False)
        self._group = group
        self._worker_id = worker_id
        self._inq = inq
        self._poller = poller
        self._stop_flag = threading.Event()
        self._thread = create_thread(self._main, f"w{group.id()}-{worker_id}")

    @staticmethod
    def current() -> Worker | None:
        """Return the worker running the calling thread, if any."""
        return getattr(_tls, "worker", None)

    def id(self) -> int:
        return self._worker_id

    def worker_group(self) -> WorkerGroup:
        return self._group

    def poller(self) -> Poller:
        return self._poller

    def post_task(self, func: Task) -> bool:
        """Post ``func`` to this worker."""
        return self._group.post_task(func, worker_id=self._worker_id)

    def _main(self) -> None:
        _tls.worker = self
        while not self._stop_flag.is_set():
            self.move_on()
            processed = self._process_tasks(_MAX_BATCH_PROCESS_TASKS)
            self._poller.poll(
                _POLLER_TIMEOUT_MS if processed < _MAX_BATCH_PROCESS_TASKS else 0
            )
        self._process_tasks(None)

    def _process_tasks(self, limit: int | None) -> int:
        count = 0
        while limit is None or count < limit:
            try:
                func = self._inq.pop()
            except QueueEmpty:
                break
            func()
            count += 1
        return count

    def _stop(self) -> None:
        self._stop_flag.set()
        self._thread.join()


class _ClientContext:
    """A posting thread's producer end; given back when the thread ends."""

    def __init__(self) -> None:
        self.queue_holder: DispatchQueue[Task] | None = None
        self.out_queue: OutQueue[Task] | None = None

    def __del__(self) -> None:
        if self.out_queue is not None:
            try:
                self.out_queue.unregister()
            except Exception:
                pass


class WorkerGroup:
    """Worker threads that run posted tasks, immediately, delayed or periodically.

    Call ``close`` (or use the group as a context manager) to stop the
    workers; tasks still queued are run before they exit.
    """

    def __init__(
        self,
        worker_num: int,
        queue_size: int,
        poller_supplier: Callable[[int], Poller] | None = None,
    ) -> None:
        supplier = poller_supplier or (lambda _worker_id: _DEFAULT_POLLER)
        self._client_ctx: ThreadLocalObj[_ClientContext] = ThreadLocalObj(_ClientContext)
        self._queue: DispatchQueue[Task] = DispatchQueue(queue_size)
        self._closed = False
        self._workers = [
            Worker(self, worker_id, self._queue.register_consumer(), supplier(worker_id))
            for worker_id in range(worker_num)
        ]

    def id(self) -> int:
        return self._client_ctx.instance_id()

    def size(self) -> int:
        return len(self._workers)

    def is_current_thread(self, worker_id: int | None = None) -> bool:
        """Return whether the caller runs on a worker of this group (``worker_id`` if given)."""
        worker = Worker.current()
        if worker is None or worker._group is not self:
            return False
        return worker_id is None or worker.id() == worker_id

    def _out_queue(self) -> OutQueue[Task]:
        ctx = self._client_ctx.get()
        if ctx.out_queue is None:
            ctx.queue_holder = self._queue
            ctx.out_queue = self._queue.register_producer()
        return ctx.out_queue

    def _push(self, task: Task, worker_id: int | None) -> bool:
        outq = self._out_queue()
        if worker_id is None:
            return outq.push(task)
        return outq.push_to(worker_id, task)

    def post_task(
        self, func: Task, worker_id: int | None = None, delay_ms: int | None = None
    ) -> bool:
        """Queue ``func`` for any worker, or ``worker_id``; optionally after ``delay_ms``.

        Returns False if the target queue is full or the worker does not exist.
        """
        if delay_ms is None:
            return self._push(func, worker_id)
        if delay_ms < 0:
            raise ValueError(f"delay_ms must not be negative, got {delay_ms}")

        def schedule() -> None:
            worker = Worker.current()
            assert worker is not None
            worker.add_timer(delay_ms, func)

        return self._push(schedule, worker_id)

    def post_period_task(
        self, func: Task, period_ms: int, worker_id: int | None = None
    ) -> bool:
        """Run ``func`` every ``period_ms`` on one worker (``worker_id`` if given)."""
        if period_ms < 0:
            raise ValueError(f"period_ms must not be negative, got {period_ms}")

        def schedule() -> None:
            worker = Worker.current()
            assert worker is not None
            worker.add_period_timer(period_ms, func)

        return self._push(schedule, worker_id)

    def close(self) -> None:
        """Stop all workers after they finish the tasks already queued."""
        if self._closed:
            return
        self._closed = True
        for worker in self._workers:
            worker._stop()

    def __enter__(self) -> WorkerGroup:
        return self

    def __exit__(self, *args) -> None:
        self.close()


__all__ = ["DefaultPoller", "Poller", "Worker", "WorkerGroup"]