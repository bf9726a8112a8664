"""Deferred reclamation schemes for objects shared between threads.

A writer that unpublishes an object hands it to ``retire`` together with an
optional deleter. The deleter runs once no reader can still be using the
object. Without a deleter the object is simply dropped.
"""

from __future__ import annotations

import threading
import time
import weakref
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ccbase.accumulated_list import ThreadLocalList

Deleter = Callable[[Any], Any]


def _dispose(obj: Any, deleter: Deleter | None) -> None:
    if obj is not None and deleter is not None:
        deleter(obj)


class RefCountReclamation:
    """Reclamation guarded by one shared reader count.

    ``retire`` waits until no reader holds the lock, then deletes at once.
    """

    READ_LOCK_POINTER = False
    HAS_RETIRE_CLEANUP = False

    def __init__(self) -> None:
        self._ref_count = 0
        self._cond = threading.Condition()

    def read_lock(self) -> None:
        with self._cond:
            self._ref_count += 1

    def read_unlock(self) -> None:
        with self._cond:
            if self._ref_count == 0:
                raise RuntimeError("read_unlock without read_lock")
            self._ref_count -= 1
            if self._ref_count == 0:
                self._cond.notify_all()

    def retire(self, obj: Any, deleter: Deleter | None = None) -> None:
        """Wait for all readers to leave, then delete ``obj``."""
        if obj is None:
            return
        self._wait_for_readers()
        _dispose(obj, deleter)

    def retire_cleanup(self) -> None:
        """Wait until no reader holds the lock.

        Retired objects are deleted inside ``retire``, so nothing else is
        ever left pending by this scheme.
        """
        self._wait_for_readers()

    def _wait_for_readers(self) -> None:
        with self._cond:
            self._cond.wait_for(lambda: self._ref_count == 0)


class _ExitToken:
    __slots__ = ("__weakref__",)


class _PerThreadStates:
    """Per-thread state reachable from every thread, with an exit hook."""

    def __init__(self, factory: Callable[[], Any]) -> None:
        self._states: ThreadLocalList[Any] = ThreadLocalList(factory)
        self._exit_tokens = threading.local()
        self._orphan_lock = threading.Lock()

    def _local_state(self) -> Any:
        state = self._states.local_node()
        if getattr(self._exit_tokens, "token", None) is None:
            token = _ExitToken()
            weakref.finalize(token, self._on_thread_exit, state)
            self._exit_tokens.token = token
        return state

    def _all_states(self) -> list[Any]:
        states: list[Any] = []
        self._states.travel(states.append)
        return states

    def _on_thread_exit(self, state: Any) -> None:
        raise NotImplementedError


@dataclass
class _EpochState:
    is_active: bool = False
    local_epoch: int = 0
    retire_epoch: int = 0
    retire_lists: list[list[tuple[Any, Deleter | None]]] = field(
        default_factory=lambda: [[], []]
    )


class EpochBasedReclamation(_PerThreadStates):
    """Epoch based reclamation.

    An object retired in epoch N is deleted once the global epoch reaches
    N + 2; the epoch only advances when every active reader has observed it.
    """

    READ_LOCK_POINTER = False
    HAS_RETIRE_CLEANUP = True
    EPOCH_SLOTS = 2

    def __init__(self) -> None:
        super().__init__(_EpochState)
        self._global_epoch = 0
        self._epoch_lock = threading.Lock()
        self._orphans: list[tuple[int, Any, Deleter | None]] = []

    def read_lock(self) -> None:
        state = self._local_state()
        state.is_active = True
        state.local_epoch = self._global_epoch

    def read_unlock(self) -> None:
        self._local_state().is_active = False

    def retire(self, obj: Any, deleter: Deleter | None = None) -> None:
        """Queue ``obj`` for deletion once no reader can reach it.

        The caller must already have made ``obj`` unreachable to readers.
        """
        self._try_reclaim()
        state = self._local_state()
        state.retire_lists[state.retire_epoch % self.EPOCH_SLOTS].append(
            (obj, deleter)
        )
        self._try_update_epoch()

    def retire_cleanup(self) -> None:
        """Block until everything retired so far has been deleted."""
        count = 0
        while count < self.EPOCH_SLOTS or self._has_orphans():
            count += self._try_reclaim()
            self._try_update_epoch()

    def _has_orphans(self) -> bool:
        with self._orphan_lock:
            return bool(self._orphans)

    def _take_orphans(self, epoch: int) -> list[tuple[Any, Deleter | None]]:
        with self._orphan_lock:
            ready = [(o, d) for e, o, d in self._orphans if e + 2 <= epoch]
            self._orphans = [x for x in self._orphans if x[0] + 2 > epoch]
        return ready

    def _try_reclaim(self) -> int:
        state = self._local_state()
        epoch = self._global_epoch
        reclaimed: list[tuple[Any, Deleter | None]] = []
        slots = 0
        if state.retire_epoch != epoch:
            slots = min(epoch - state.retire_epoch, self.EPOCH_SLOTS)
            for i in range(1, slots + 1):
                pending = state.retire_lists[
                    (state.retire_epoch + i) % self.EPOCH_SLOTS
                ]
                reclaimed.extend(pending)
                pending.clear()
            state.retire_epoch = epoch
        reclaimed.extend(self._take_orphans(epoch))
        for obj, deleter in reclaimed:
            _dispose(obj, deleter)
        return slots

    def _try_update_epoch(self) -> None:
        epoch = self._global_epoch
        all_sync = all(
            s.local_epoch == epoch for s in self._all_states() if s.is_active
        )
        if all_sync:
            with self._epoch_lock:
                if self._global_epoch == epoch:
                    self._global_epoch = epoch + 1

    def _on_thread_exit(self, state: _EpochState) -> None:
        current = state.retire_epoch % self.EPOCH_SLOTS
        entries = []
        for slot, pending in enumerate(state.retire_lists):
            epoch = state.retire_epoch if slot == current else state.retire_epoch - 1
            entries.extend((epoch, obj, deleter) for obj, deleter in pending)
            pending.clear()
        if entries:
            with self._orphan_lock:
                self._orphans.extend(entries)


@dataclass
class _HazardState:
    hazards: list[Any]
    retire_list: list[tuple[Any, Deleter | None]] = field(default_factory=list)


class HazardPtrReclamation(_PerThreadStates):
    """Hazard pointer reclamation.

    Readers publish the objects they use; a retired object is deleted once
    no thread publishes it. Reclamation is attempted whenever the calling
    thread's retire list reaches ``reclaim_threshold`` entries.
    """

    READ_LOCK_POINTER = True
    HAS_RETIRE_CLEANUP = True

    def __init__(self, hazard_ptr_num: int = 1, reclaim_threshold: int = 8) -> None:
        if hazard_ptr_num < 1:
            raise ValueError("hazard_ptr_num must be at least 1")
        super().__init__(lambda: _HazardState([None] * hazard_ptr_num))
        self._hazard_ptr_num = hazard_ptr_num
        self._reclaim_threshold = reclaim_threshold
        self._orphans: list[tuple[Any, Deleter | None]] = []

    def read_lock(self, obj: Any, index: int = 0) -> None:
        """Publish ``obj`` in hazard slot ``index`` of the calling thread."""
        if not 0 <= index < self._hazard_ptr_num:
            raise IndexError(f"hazard index {index} out of range")
        self._local_state().hazards[index] = obj

    def read_unlock(self) -> None:
        hazards = self._local_state().hazards
        hazards[:] = [None] * len(hazards)

    def retire(self, obj: Any, deleter: Deleter | None = None) -> None:
        """Queue ``obj`` for deletion once no thread publishes it."""
        state = self._local_state()
        state.retire_list.append((obj, deleter))
        if len(state.retire_list) >= self._reclaim_threshold:
            self._try_reclaim()

    def retire_cleanup(self) -> None:
        """Block until everything retired so far has been deleted."""
        state = self._local_state()
        while True:
            self._try_reclaim()
            with self._orphan_lock:
                pending = bool(self._orphans)
            if not state.retire_list and not pending:
                return
            time.sleep(0)

    def _try_reclaim(self) -> None:
        hazards = {
            id(h) for s in self._all_states() for h in s.hazards if h is not None
        }
        state = self._local_state()
        reclaimed: list[tuple[Any, Deleter | None]] = []
        survivors: list[tuple[Any, Deleter | None]] = []
        for entry in state.retire_list:
            (survivors if id(entry[0]) in hazards else reclaimed).append(entry)
        state.retire_list = survivors
        with self._orphan_lock:
            kept = []
            for entry in self._orphans:
                (kept if id(entry[0]) in hazards else reclaimed).append(entry)
            self._orphans = kept
        for obj, deleter in reclaimed:
            _dispose(obj, deleter)

    def _on_thread_exit(self, state: _HazardState) -> None:
        if state.retire_list:
            with self._orphan_lock:
                self._orphans.extend(state.retire_list)
            state.retire_list = []


class PtrReclamationAdapter:
    """Uniform read/retire interface for a single shared reference."""

    def __init__(self, reclamation: Any) -> None:
        self._recl = reclamation

    @property
    def reclamation(self) -> Any:
        return self._recl

    def read_lock(self, load: Callable[[], Any]) -> Any:
        """Enter a read section and return the value produced by ``load``."""
        if getattr(self._recl, "READ_LOCK_POINTER", False):
            while True:
                obj = load()
                self._recl.read_lock(obj, 0)
                if load() is obj:
                    return obj
        self._recl.read_lock()
        return load()

    def read_unlock(self) -> None:
        self._recl.read_unlock()

    def retire(self, obj: Any, deleter: Deleter | None = None) -> None:
        self._recl.retire(obj, deleter)

    def retire_cleanup(self) -> None:
        if getattr(self._recl, "HAS_RETIRE_CLEANUP", False):
            self._recl.retire_cleanup()


__all__ = [
    "EpochBasedReclamation",
    "HazardPtrReclamation",
    "PtrReclamationAdapter",
    "RefCountReclamation",
]