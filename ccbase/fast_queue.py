"""Bounded single-producer single-consumer ring queue."""

from __future__ import annotations

import threading
import time
from typing import Generic, TypeVar

from ccbase.eventfd import EventFd

T = TypeVar("T")


class QueueEmpty(Exception):
    """Raised when popping from an empty queue."""


class FastQueue(Generic[T]):
    """A ring buffer of ``qlen`` slots holding at most ``qlen - 1`` items.

    Safe for one producer thread and one consumer thread. With
    ``enable_notify`` the consumer can block on an eventfd; otherwise
    ``pop_wait`` polls every millisecond.
    """

    def __init__(self, qlen: int, enable_notify: bool = True) -> None:
        if qlen < 1:
            raise ValueError(f"qlen must be at least 1, got {qlen}")
        self._qlen = qlen
        self._head = 0
        self._tail = 0
        self._slots: list[T | None] = [None] * qlen
        self._event = EventFd() if enable_notify else None

    def used_size(self) -> int:
        head, tail = self._head, self._tail
        return tail - head if tail >= head else tail + self._qlen - head

    def free_size(self) -> int:
        head, tail = self._head, self._tail
        return head - 1 - tail if head > tail else head - 1 + self._qlen - tail

    def __len__(self) -> int:
        return self.used_size()

    def push(self, value: T) -> bool:
        """Append ``value``; return False if the queue is full."""
        if self.free_size() <= 0:
            return False
        self._slots[self._tail] = value
        self._tail = (self._tail + 1) % self._qlen
        if self._event is not None and self.used_size() == 1:
            self._event.notify()
        return True

    def pop(self) -> T:
        """Remove and return the oldest item, or raise QueueEmpty."""
        if self.used_size() <= 0:
            raise QueueEmpty
        value = self._slots[self._head]
        self._slots[self._head] = None
        self._head = (self._head + 1) % self._qlen
        return value  # type: ignore[return-value]

    def pop_wait(self, timeout: int = -1) -> T:
        """Pop, waiting up to ``timeout`` ms (negative: forever)."""
        if self._event is not None:
            while True:
                try:
                    return self.pop()
                except QueueEmpty:
                    if not self._event.get_wait(timeout):
                        raise
        slept_ms = 0
        while True:
            try:
                return self.pop()
            except QueueEmpty:
                if 0 <= timeout <= slept_ms:
                    raise
                time.sleep(0.001)
                slept_ms += 1


__all__ = ["FastQueue", "QueueEmpty", "threading"] if False else ["FastQueue", "QueueEmpty"]