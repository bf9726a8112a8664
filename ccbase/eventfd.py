"""Thin wrapper around a Linux eventfd counter."""

from __future__ import annotations

import os
import select


class EventFd:
    """An eventfd counter used as a wake-up notification."""

    def __init__(self, initval: int = 0, nonblocking: bool = True) -> None:
        flags = os.EFD_CLOEXEC
        if nonblocking:
            flags |= os.EFD_NONBLOCK
        self._fd: int | None = os.eventfd(initval, flags)

    def notify(self) -> bool:
        """Increment the counter by one."""
        return self.write(1)

    def get(self) -> bool:
        """Consume the counter; return whether it was non-zero."""
        return self.read() is not None

    def get_wait(self, timeout: int = -1) -> bool:
        """Consume the counter, waiting up to ``timeout`` ms (negative: forever)."""
        poller = select.poll()
        poller.register(self.fileno(), select.POLLIN)
        while not self.get():
            if not poller.poll(timeout):
                return False
        return True

    def write(self, value: int) -> bool:
        """Add ``value`` to the counter; return False if it would block."""
        try:
            os.eventfd_write(self.fileno(), value)
        except BlockingIOError:
            return False
        return True

    def read(self) -> int | None:
        """Read and reset the counter; return None if it is zero."""
        try:
            return os.eventfd_read(self.fileno())
        except BlockingIOError:
            return None

    def fileno(self) -> int:
        if self._fd is None:
            raise ValueError("operation on closed EventFd")
        return self._fd

    def close(self) -> None:
        if self._fd is not None:
            fd, self._fd = self._fd, None
            os.close(fd)

    def __enter__(self) -> EventFd:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __del__(self) -> None:
        try:
            self.close()
        except OSError:
            pass