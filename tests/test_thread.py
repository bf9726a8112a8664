import threading

from ccbase.thread import create_detached_thread, create_thread, set_thread_name


def test_create_thread_runs_function():
    results = []
    thread = create_thread(lambda: results.append(42))
    thread.join(timeout=5)
    assert not thread.is_alive()
    assert results == [42]


def test_create_thread_is_joinable_not_daemon():
    seen = []
    thread = create_thread(lambda: seen.append(threading.current_thread().daemon))
    thread.join(timeout=5)
    assert seen == [False]


def test_named_thread_appends_to_creator_name():
    parent = threading.current_thread().name
    seen = []
    thread = create_thread(lambda: seen.append(threading.current_thread().name), "job")
    thread.join(timeout=5)
    assert seen == [f"{parent}/job"]


def test_unnamed_thread_keeps_creator_name():
    parent = threading.current_thread().name
    seen = []
    thread = create_thread(lambda: seen.append(threading.current_thread().name))
    thread.join(timeout=5)
    assert seen == [parent]


def _renamed_thread_name(creator_name, new_name):
    """Run set_thread_name inside a thread created under ``creator_name``."""
    current = threading.current_thread()
    original = current.name
    current.name = creator_name
    try:
        thread = create_thread(lambda: set_thread_name(new_name))
    finally:
        current.name = original
    thread.join(timeout=5)
    assert not thread.is_alive()
    return thread.name


def test_set_thread_name_replaces_after_last_slash():
    assert _renamed_thread_name("base/old", "new") == "base/new"


def test_set_thread_name_without_slash_appends():
    assert _renamed_thread_name("plain", "x") == "plain/x"


def test_set_thread_name_empty_keeps_name():
    assert _renamed_thread_name("keep/me", "") == "keep/me"


def test_create_detached_thread_runs_as_daemon():
    done = threading.Event()
    seen = []

    def body():
        seen.append((threading.current_thread().daemon, threading.current_thread().name))
        done.set()

    parent = threading.current_thread().name
    assert create_detached_thread(body, "bg") is None
    assert done.wait(5)
    assert seen == [(True, f"{parent}/bg")]