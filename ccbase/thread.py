"""Helpers for starting named threads."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any


def set_thread_name(name: str) -> None:
    """Name the calling thread ``<base>/<name>``.

    ``<base>`` is the current name up to its last slash, or the whole current
    name when it has none. An empty ``name`` leaves the thread unchanged.
    """
    if not name:
        return
    thread = threading.current_thread()
    base, _, _ = thread.name.rpartition("/")
    if not base and "/" not in thread.name:
        base = thread.name
    thread.name = f"{base}/{name}"


def _start(func: Callable[[], Any], name: str | None, daemon: bool) -> threading.Thread:
    if name:
        def target() -> None:
            set_thread_name(name)
            func()
    else:
        target = func
    # a new thread starts out with its creator's name
    thread = threading.Thread(
        target=target, name=threading.current_thread().name, daemon=daemon
    )
    thread.start()
    return thread


def create_thread(func: Callable[[], Any], name: str | None = None) -> threading.Thread:
    """Start a thread running ``func`` and return it for joining."""
    return _start(func, name, daemon=False)


def create_detached_thread(func: Callable[[], Any], name: str | None = None) -> None:
    """Start a daemon thread running ``func`` that is never joined."""
    _start(func, name, daemon=True)


__all__ = ["create_detached_thread", "create_thread", "set_thread_name"]