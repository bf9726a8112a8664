import threading

import pytest

from ccbase.eventfd import EventFd


def test_notify_then_get():
    with EventFd() as efd:
        assert not efd.get()
        assert efd.notify()
        assert efd.get()
        assert not efd.get()


def test_write_accumulates_and_read_resets():
    with EventFd() as efd:
        assert efd.write(5)
        assert efd.write(2)
        assert efd.read() == 5 + 2
        assert efd.read() is None


def test_initial_value():
    with EventFd(3) as efd:
        assert efd.read() == 3


def test_get_wait_times_out():
    with EventFd() as efd:
        assert efd.get_wait(0) is False
        assert efd.get_wait(10) is False


def test_get_wait_woken_by_other_thread():
    with EventFd() as efd:
        timer = threading.Timer(0.05, efd.notify)
        timer.start()
        try:
            assert efd.get_wait(5000) is True
        finally:
            timer.join()
        assert not efd.get()


def test_fileno_is_valid_descriptor():
    with EventFd() as efd:
        assert efd.fileno() >= 0


def test_closed_eventfd_rejects_operations():
    efd = EventFd()
    efd.close()
    efd.close()
    with pytest.raises(ValueError):
        efd.notify()
    with pytest.raises(ValueError):
        efd.fileno()