"""A shared reference that readers can use while writers replace it."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from ccbase.memory_reclamation import EpochBasedReclamation, PtrReclamationAdapter

T = TypeVar("T")

Deleter = Callable[[Any], Any]


class ConcurrentPtrReader(Generic[T]):
    """Holds a read lock on a ConcurrentPtr for the span of a ``with`` block."""

    def __init__(self, cp: ConcurrentPtr[T]) -> None:
        self._cp = cp
        self._obj = cp.read_lock()
        self._locked = True

    def get(self) -> T | None:
        """Return the object that was current when the lock was taken."""
        return self._obj

    def __enter__(self) -> ConcurrentPtrReader[T]:
        return self

    def __exit__(self, *args) -> None:
        if self._locked:
            self._locked = False
            self._cp.read_unlock()


class ConcurrentPtr(Generic[T]):
    """A replaceable reference whose old values are deleted only when safe.

    ``deleter`` is called on every object that is replaced, once no reader
    can still be using it. The reclamation scheme defaults to epoch based.
    """

    def __init__(
        self,
        obj: T | None = None,
        deleter: Deleter | None = None,
        reclamation: Any = None,
    ) -> None:
        self._obj = obj
        self._deleter = deleter
        self._lock = threading.Lock()
        self._recl = PtrReclamationAdapter(
            reclamation if reclamation is not None else EpochBasedReclamation()
        )

    def _load(self) -> T | None:
        return self._obj

    def read_lock(self) -> T | None:
        """Enter a read section and return the current object."""
        return self._recl.read_lock(self._load)

    def read_unlock(self) -> None:
        self._recl.read_unlock()

    def reader(self) -> ConcurrentPtrReader[T]:
        """Return a context manager holding a read lock on this reference."""
        return ConcurrentPtrReader(self)

    def reset(self, obj: T | None = None, sync_cleanup: bool = False) -> None:
        """Replace the object; the old one is retired for later deletion.

        With ``sync_cleanup`` this waits until everything retired so far has
        been deleted.
        """
        with self._lock:
            old, self._obj = self._obj, obj
        if old is not None:
            self._recl.retire(old, self._deleter)
        if sync_cleanup:
            self._recl.retire_cleanup()

    def __del__(self) -> None:
        obj = getattr(self, "_obj", None)
        deleter = getattr(self, "_deleter", None)
        if obj is not None and deleter is not None:
            self._obj = None
            try:
                deleter(obj)
            except Exception:
                pass


class ConcurrentSharedPtr(Generic[T]):
    """A replaceable reference handing out the current object to readers.

    Objects are kept alive by whoever holds them, so no deleter is needed.
    """

    def __init__(self, obj: T | None = None, reclamation: Any = None) -> None:
        self._ptr: ConcurrentPtr[T] = ConcurrentPtr(obj, None, reclamation)

    def get(self) -> T | None:
        """Return the current object."""
        with self._ptr.reader() as reader:
            return reader.get()

    def reset(self, obj: T | None = None, sync_cleanup: bool = False) -> None:
        """Replace the current object."""
        self._ptr.reset(obj, sync_cleanup)


__all__ = ["ConcurrentPtr", "ConcurrentPtrReader", "ConcurrentSharedPtr"]