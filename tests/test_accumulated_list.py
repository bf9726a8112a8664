import threading

import pytest

from ccbase.accumulated_list import AccumulatedList, AllocatedList, ThreadLocalList


def test_add_node_returns_factory_objects():
    lst = AccumulatedList(dict)
    first = lst.add_node()
    first["n"] = 1
    second = lst.add_node()
    assert first == {"n": 1}
    assert second == {}
    assert second is not first


def test_iteration_is_newest_first():
    lst = AccumulatedList(dict)
    nodes = [lst.add_node() for _ in range(4)]
    for index, node in enumerate(nodes):
        node["i"] = index
    assert [n["i"] for n in lst] == [3, 2, 1, 0]


def test_travel_visits_every_node():
    lst = AccumulatedList(list)
    for _ in range(5):
        lst.add_node()
    seen = []
    lst.travel(seen.append)
    assert len(seen) == 5


def test_find_node():
    lst = AccumulatedList(dict)
    for index in range(3):
        lst.add_node()["i"] = index
    found = lst.find_node(lambda n: n["i"] == 1)
    assert found == {"i": 1}
    assert lst.find_node(lambda n: n["i"] == 99) is None


def test_concurrent_adds_all_visible():
    lst = AccumulatedList(dict)
    threads = [
        threading.Thread(target=lambda: [lst.add_node() for _ in range(100)])
        for _ in range(4)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sum(1 for _ in lst) == 4 * 100


def test_allocated_list_travel_skips_freed():
    pool = AllocatedList(dict)
    a = pool.alloc()
    b = pool.alloc()
    a["name"] = "a"
    b["name"] = "b"
    pool.free(a)
    assert [n["name"] for n in pool] == ["b"]


def test_allocated_list_realloc_gives_fresh_object():
    created = []

    def factory():
        obj = {"serial": len(created)}
        created.append(obj)
        return obj

    pool = AllocatedList(factory)
    a = pool.alloc()
    pool.free(a)
    b = pool.alloc()
    assert b is created[-1]
    assert b is not a
    seen = []
    pool.travel(seen.append)
    assert seen == [b]


def test_free_foreign_object_raises():
    pool = AllocatedList(dict)
    with pytest.raises(ValueError):
        pool.free({})


def test_double_free_raises():
    pool = AllocatedList(dict)
    obj = pool.alloc()
    pool.free(obj)
    with pytest.raises(ValueError):
        pool.free(obj)


def test_thread_local_same_object_in_thread():
    tl = ThreadLocalList(dict)
    node = tl.local_node()
    node["x"] = 1
    again = tl.local_node()
    assert again == {"x": 1}
    assert again is node
    seen = []
    tl.travel(seen.append)
    assert {"x": 1} in seen


def test_thread_local_distinct_per_thread():
    tl = ThreadLocalList(dict)
    barrier = threading.Barrier(3)
    nodes = {}

    def worker(name):
        node = tl.local_node()
        node["name"] = name
        nodes[name] = node
        barrier.wait()
        barrier.wait()

    threads = [threading.Thread(target=worker, args=(n,)) for n in ("a", "b")]
    for t in threads:
        t.start()
    barrier.wait()
    seen = []
    tl.travel(lambda n: seen.append(n["name"]))
    barrier.wait()
    for t in threads:
        t.join()
    assert sorted(seen) == ["a", "b"]
    assert nodes["a"] is not nodes["b"]