"""Per-instance, per-thread objects."""

from __future__ import annotations

import itertools
import threading
from collections.abc import Callable
from typing import Generic, TypeVar

T = TypeVar("T")

_next_instance_id = itertools.count()
_id_lock = threading.Lock()


class ThreadLocalObj(Generic[T]):
    """Holds one object per thread, created by ``factory`` on first use.

    Every instance gets a distinct, increasing instance id.
    """

    def __init__(self, factory: Callable[[], T]) -> None:
        self._factory = factory
        with _id_lock:
            self._instance_id = next(_next_instance_id)
        self._local = threading.local()

    def instance_id(self) -> int:
        return self._instance_id

    def get(self) -> T:
        """Return the calling thread's object."""
        try:
            return self._local.value
        except AttributeError:
            value = self._factory()
            self._local.value = value
            return value