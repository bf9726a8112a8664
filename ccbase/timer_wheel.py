"""Hierarchical timing wheel driven by a monotonic clock."""

from __future__ import annotations

import contextlib
import enum
import threading
import time
from collections.abc import Callable
from typing import Any

_WHEEL_VECS = 5
_VEC_BITS = 6
_ROOT_BITS = 8
_VEC_SIZE = 1 << _VEC_BITS
_ROOT_SIZE = 1 << _ROOT_BITS
_VEC_MASK = _VEC_SIZE - 1
_ROOT_MASK = _ROOT_SIZE - 1

MAX_TIMEOUT = 0xFFFFFFFF

Callback = Callable[[], Any]


class _Flag(enum.IntFlag):
    NONE = 0
    HAS_OWNER = 0x1
    PERIOD = 0x2


def _monotonic_us() -> int:
    return time.monotonic_ns() // 1000


class _TimerNode:
    __slots__ = ("timeout", "expire", "callback", "flags", "bucket", "wheel")

    def __init__(self) -> None:
        self.timeout = 0
        self.expire = 0
        self.callback: Callback | None = None
        self.flags = _Flag.NONE
        self.bucket: dict[_TimerNode, None] | None = None
        self.wheel: TimerWheel | None = None


class _TimerVec:
    __slots__ = ("index", "slots")

    def __init__(self, size: int) -> None:
        self.index = 0
        self.slots: list[dict[_TimerNode, None]] = [{} for _ in range(size)]


# Timers deleted by callbacks while a wheel runs its expired callbacks.
_dead = threading.local()


def _dead_state() -> threading.local:
    if not hasattr(_dead, "tracking"):
        _dead.tracking = False
        _dead.nodes = set()
    return _dead


class TimerOwner:
    """Owns at most one timer; the timer is cancelled when the owner goes away."""

    def __init__(self) -> None:
        self._node: _TimerNode | None = None
        self._wheel: TimerWheel | None = None

    def has_timer(self) -> bool:
        return self._node is not None

    def cancel(self) -> None:
        """Remove the owned timer from its wheel, if it is scheduled."""
        if self._node is not None and self._wheel is not None:
            self._wheel._del_timer_node(self._node)

    def __del__(self) -> None:
        try:
            self.cancel()
        except Exception:
            pass


class TimerWheel:
    """Timers with a resolution of ``us_per_tick`` microseconds.

    Expired timers run from ``move_on``. ``clock`` returns a monotonic time
    in microseconds; the system monotonic clock is used by default.
    """

    def __init__(
        self,
        us_per_tick: int = 1000,
        enable_lock: bool = True,
        clock: Callable[[], int] | None = None,
    ) -> None:
        if us_per_tick < 1:
            raise ValueError(f"us_per_tick must be at least 1, got {us_per_tick}")
        self._us_per_tick = us_per_tick
        self._clock = clock if clock is not None else _monotonic_us
        self._lock: Any = threading.Lock() if enable_lock else contextlib.nullcontext()
        self._root = _TimerVec(_ROOT_SIZE)
        self._vecs = [self._root] + [_TimerVec(_VEC_SIZE) for _ in range(_WHEEL_VECS - 1)]
        self._count = 0
        self._tick_cur = 0
        self._start_us = self._clock()

    # public API

    def add_timer(
        self, timeout: int, callback: Callback | None, owner: TimerOwner | None = None
    ) -> bool:
        """Run ``callback`` once after ``timeout`` ticks; False if out of range."""
        if not self._valid_timeout(timeout, period=False):
            return False
        node = self._prepare_node(owner)
        node.timeout = timeout
        node.expire = self._tick_cur + timeout
        node.callback = callback
        node.flags = _Flag.HAS_OWNER if owner is not None else _Flag.NONE
        self._add_timer_node(node)
        return True

    def reset_timer(self, owner: TimerOwner, timeout: int) -> bool:
        """Reschedule the owner's timer as a one-shot timer."""
        if not self._valid_timeout(timeout, period=False) or not owner.has_timer():
            return False
        node = self._rearm(owner)
        node.timeout = timeout
        node.expire = self._tick_cur + timeout
        node.flags = _Flag.HAS_OWNER
        self._add_timer_node(node)
        return True

    def add_period_timer(
        self, timeout: int, callback: Callback | None, owner: TimerOwner | None = None
    ) -> bool:
        """Run ``callback`` every ``timeout`` ticks; a zero period is refused."""
        if not self._valid_timeout(timeout, period=True):
            return False
        node = self._prepare_node(owner)
        node.timeout = timeout
        node.expire = self._tick_cur + timeout
        node.callback = callback
        node.flags = _Flag.PERIOD | (_Flag.HAS_OWNER if owner is not None else _Flag.NONE)
        self._add_timer_node(node)
        return True

    def reset_period_timer(self, owner: TimerOwner, timeout: int) -> bool:
        """Reschedule the owner's timer as a periodic timer."""
        if not self._valid_timeout(timeout, period=True) or not owner.has_timer():
            return False
        node = self._rearm(owner)
        node.timeout = timeout
        node.expire = self._tick_cur + timeout
        node.flags = _Flag.PERIOD | _Flag.HAS_OWNER
        self._add_timer_node(node)
        return True

    def move_on(self, sched_func: Callable[[Callback], Any] | None = None) -> None:
        """Advance to the current time and run the callbacks of expired timers.

        With ``sched_func`` each callback is handed to it instead of being run.
        """
        fired = self._poll()
        dead = _dead_state()
        dead.tracking = True
        try:
            for node, callback in fired:
                if node is not None and node in dead.nodes:
                    # deleted by an earlier callback of this round
                    continue
                if callback is None:
                    continue
                if sched_func is None:
                    callback()
                else:
                    sched_func(callback)
        finally:
            dead.tracking = False
            dead.nodes.clear()

    def timer_count(self) -> int:
        return self._count

    def current_tick(self) -> int:
        return self._tick_cur

    # internals

    @staticmethod
    def _valid_timeout(timeout: int, period: bool) -> bool:
        if timeout < 0:
            raise ValueError(f"timeout must not be negative, got {timeout}")
        if timeout > MAX_TIMEOUT:
            return False
        return not (period and timeout == 0)

    def _prepare_node(self, owner: TimerOwner | None) -> _TimerNode:
        if owner is None:
            return _TimerNode()
        if owner.has_timer():
            node = self._rearm(owner)
        else:
            node = _TimerNode()
            owner._node = node
        owner._wheel = self
        return node

    @staticmethod
    def _rearm(owner: TimerOwner) -> _TimerNode:
        node = owner._node
        assert node is not None
        wheel = node.wheel if node.wheel is not None else owner._wheel
        if wheel is not None:
            wheel._del_timer_node(node)
        return node

    def _add_timer_node(self, node: _TimerNode) -> None:
        with self._lock:
            self._add_node_locked(node)

    def _add_node_locked(self, node: _TimerNode) -> None:
        expire = node.expire
        now = self._tick_cur
        # expiry in the past may happen when timers are added from other threads
        distance = expire - now if expire >= now else 0
        if distance < _ROOT_SIZE:
            bucket = self._root.slots[expire & _ROOT_MASK]
        else:
            for level in range(1, _WHEEL_VECS):
                shift = _ROOT_BITS + (level - 1) * _VEC_BITS
                if distance < 1 << (shift + _VEC_BITS):
                    bucket = self._vecs[level].slots[(expire >> shift) & _VEC_MASK]
                    break
            else:
                raise RuntimeError("timer expiry beyond the range of the wheel")
        bucket[node] = None
        node.bucket = bucket
        node.wheel = self
        self._count += 1

    def _del_timer_node(self, node: _TimerNode) -> None:
        dead = _dead_state()
        if dead.tracking:
            dead.nodes.add(node)
        with self._lock:
            self._unlink_locked(node)

    def _unlink_locked(self, node: _TimerNode) -> None:
        if node.bucket is not None:
            del node.bucket[node]
            node.bucket = None
            self._count -= 1

    def _cascade(self, vec: _TimerVec) -> None:
        bucket = vec.slots[vec.index]
        nodes = list(bucket)
        bucket.clear()
        for node in nodes:
            node.bucket = None
            self._count -= 1
            self._add_node_locked(node)
        vec.index = (vec.index + 1) & _VEC_MASK

    def _tick_now(self) -> int:
        elapsed = self._clock() - self._start_us
        if elapsed < 0:
            raise RuntimeError("clock reading before the wheel was started")
        return elapsed // self._us_per_tick

    def _poll(self) -> list[tuple[_TimerNode | None, Callback | None]]:
        fired: list[tuple[_TimerNode | None, Callback | None]] = []
        with self._lock:
            tick_to = self._tick_now()
            root = self._root
            while tick_to >= self._tick_cur:
                if root.index == 0:
                    level = 1
                    while True:
                        self._cascade(self._vecs[level])
                        if self._vecs[level].index != 1:
                            break
                        level += 1
                        if level >= _WHEEL_VECS:
                            break
                bucket = root.slots[root.index]
                while bucket:
                    node = next(iter(bucket))
                    self._unlink_locked(node)
                    if node.flags & _Flag.PERIOD:
                        fired.append((node, node.callback))
                        node.expire = self._tick_cur + node.timeout
                        self._add_node_locked(node)
                    elif node.flags & _Flag.HAS_OWNER:
                        fired.append((node, node.callback))
                    else:
                        fired.append((None, node.callback))
                        node.callback = None
                        node.wheel = None
                self._tick_cur += 1
                root.index = (root.index + 1) & _ROOT_MASK
        return fired


__all__ = ["MAX_TIMEOUT", "TimerOwner", "TimerWheel"]