"""Append-only lists of shared nodes and per-thread slots built on them."""

from __future__ import annotations

import threading
import weakref
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class _Node:
    __slots__ = ("data", "next")

    def __init__(self, data: Any) -> None:
        self.data = data
        self.next: _Node | None = None


class AccumulatedList(Generic[T]):
    """A list that only grows; newest nodes are visited first.

    Adding is thread-safe and traversal never blocks or sees a torn list.
    """

    def __init__(self, factory: Callable[[], T]) -> None:
        self._factory = factory
        self._head: _Node | None = None
        self._lock = threading.Lock()

    def add_node(self) -> T:
        """Create a node with a fresh object from the factory and return it."""
        node = _Node(self._factory())
        with self._lock:
            node.next = self._head
            self._head = node
        return node.data

    def __iter__(self) -> Iterator[T]:
        node = self._head
        while node is not None:
            yield node.data
            node = node.next

    def travel(self, func: Callable[[T], Any]) -> None:
        for data in self:
            func(data)

    def find_node(self, predicate: Callable[[T], bool]) -> T | None:
        """Return the first node data matching ``predicate``, or None."""
        return next((data for data in self if predicate(data)), None)


@dataclass
class _Slot:
    allocated: bool = False
    value: Any = None


class AllocatedList(Generic[T]):
    """A pool of objects whose freed slots are reused by later allocations.

    The factory must return a distinct object on every call.
    """

    def __init__(self, factory: Callable[[], T]) -> None:
        self._factory = factory
        self._slots: AccumulatedList[_Slot] = AccumulatedList(_Slot)
        self._by_id: dict[int, _Slot] = {}
        self._lock = threading.Lock()

    def alloc(self) -> T:
        """Return a fresh object, reusing a freed slot when there is one."""
        with self._lock:
            slot = self._slots.find_node(lambda s: not s.allocated)
            if slot is None:
                slot = self._slots.add_node()
            slot.value = self._factory()
            slot.allocated = True
            self._by_id[id(slot.value)] = slot
            return slot.value

    def free(self, obj: T) -> None:
        """Release ``obj`` so its slot can be reused."""
        with self._lock:
            slot = self._by_id.get(id(obj))
            if slot is None or slot.value is not obj:
                raise ValueError("object was not allocated from this list")
            del self._by_id[id(obj)]
            slot.allocated = False
            slot.value = None

    def __iter__(self) -> Iterator[T]:
        for slot in self._slots:
            value = slot.value
            if slot.allocated and value is not None:
                yield value

    def travel(self, func: Callable[[T], Any]) -> None:
        """Call ``func`` on every allocated object."""
        for value in self:
            func(value)


class _LocalHolder:
    __slots__ = ("node", "__weakref__")

    def __init__(self, node: Any) -> None:
        self.node = node


class ThreadLocalList(Generic[T]):
    """One object per thread, all reachable from any thread.

    A thread's object is returned to the pool when the thread ends.
    """

    def __init__(self, factory: Callable[[], T]) -> None:
        self._list: AllocatedList[T] = AllocatedList(factory)
        self._local = threading.local()

    def local_node(self) -> T:
        """Return the calling thread's object, creating it on first use."""
        holder = getattr(self._local, "holder", None)
        if holder is None:
            node = self._list.alloc()
            holder = _LocalHolder(node)
            weakref.finalize(holder, self._list.free, node)
            self._local.holder = holder
        return holder.node

    def travel(self, func: Callable[[T], Any]) -> None:
        """Call ``func`` on the object of every live thread."""
        self._list.travel(func)