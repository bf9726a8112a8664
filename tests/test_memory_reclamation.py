import threading
from contextlib import contextmanager

import pytest

from ccbase.memory_reclamation import (
    EpochBasedReclamation,
    HazardPtrReclamation,
    PtrReclamationAdapter,
    RefCountReclamation,
)


class Item:
    def __init__(self, name):
        self.name = name

    def __repr__(self):
        return f"Item({self.name!r})"


@contextmanager
def reader_in_thread(recl, *args):
    locked = threading.Event()
    release = threading.Event()

    def run():
        recl.read_lock(*args)
        locked.set()
        release.wait(5)
        recl.read_unlock()

    thread = threading.Thread(target=run)
    thread.start()
    assert locked.wait(5)
    try:
        yield
    finally:
        release.set()
        thread.join(5)


def test_refcount_retire_without_readers_deletes_at_once():
    recl = RefCountReclamation()
    deleted = []
    item = Item("a")
    recl.retire(item, deleted.append)
    assert deleted == [item]


def test_refcount_retire_none_is_ignored():
    recl = RefCountReclamation()
    deleted = []
    recl.retire(None, deleted.append)
    assert deleted == []


def test_refcount_retire_waits_for_reader():
    recl = RefCountReclamation()
    deleted = []
    item = Item("a")
    recl.read_lock()
    writer = threading.Thread(target=recl.retire, args=(item, deleted.append))
    writer.start()
    writer.join(0.1)
    assert writer.is_alive()
    assert deleted == []
    recl.read_unlock()
    writer.join(5)
    assert deleted == [item]


def test_refcount_unbalanced_unlock_raises():
    recl = RefCountReclamation()
    with pytest.raises(RuntimeError):
        recl.read_unlock()


def test_epoch_retire_cleanup_deletes():
    recl = EpochBasedReclamation()
    deleted = []
    items = [Item(i) for i in range(3)]
    for item in items:
        recl.retire(item, deleted.append)
    recl.retire_cleanup()
    assert sorted(deleted, key=lambda x: x.name) == items


def test_epoch_reclaims_after_two_epochs():
    recl = EpochBasedReclamation()
    deleted = []
    first, second, third = Item("a"), Item("b"), Item("c")
    recl.retire(first, deleted.append)
    recl.retire(second, deleted.append)
    assert deleted == []
    recl.retire(third, deleted.append)
    assert deleted == [first]


def test_epoch_active_reader_blocks_reclamation():
    recl = EpochBasedReclamation()
    deleted = []
    guarded = Item("guarded")
    with reader_in_thread(recl):
        recl.retire(guarded, deleted.append)
        for i in range(10):
            recl.retire(Item(i), deleted.append)
        assert guarded not in deleted
    recl.retire_cleanup()
    assert guarded in deleted
    assert len(deleted) == 11


def test_epoch_cleanup_in_other_thread():
    adapter = PtrReclamationAdapter(EpochBasedReclamation())
    deleted = []
    item = Item("a")
    loaded = adapter.read_lock(lambda: item)
    adapter.read_unlock()
    assert loaded is item

    def work():
        adapter.retire(loaded, deleted.append)
        adapter.retire_cleanup()

    thread = threading.Thread(target=work)
    thread.start()
    thread.join(5)
    assert not thread.is_alive()
    assert deleted == [item]


def test_hazard_threshold_defers_reclamation():
    recl = HazardPtrReclamation()
    deleted = []
    items = [Item(i) for i in range(8)]
    for item in items[:7]:
        recl.retire(item, deleted.append)
    assert deleted == []
    recl.retire(items[7], deleted.append)
    assert deleted == items


def test_hazard_protects_published_object():
    recl = HazardPtrReclamation(reclaim_threshold=1)
    deleted = []
    protected, other = Item("p"), Item("o")
    with reader_in_thread(recl, protected):
        recl.retire(protected, deleted.append)
        assert deleted == []
        recl.retire(other, deleted.append)
        assert deleted == [other]
    recl.retire_cleanup()
    assert deleted == [other, protected]


def test_hazard_index_out_of_range():
    recl = HazardPtrReclamation(hazard_ptr_num=2)
    recl.read_lock(Item("a"), 1)
    with pytest.raises(IndexError):
        recl.read_lock(Item("b"), 2)


def test_hazard_own_unlock_allows_cleanup():
    recl = HazardPtrReclamation(reclaim_threshold=1)
    deleted = []
    item = Item("a")
    recl.read_lock(item)
    recl.retire(item, deleted.append)
    assert deleted == []
    recl.read_unlock()
    recl.retire_cleanup()
    assert deleted == [item]


def test_adapter_epoch_read_and_retire():
    adapter = PtrReclamationAdapter(EpochBasedReclamation())
    deleted = []
    value = Item("v")
    assert adapter.read_lock(lambda: value) is value
    adapter.read_unlock()
    adapter.retire(value, deleted.append)
    adapter.retire_cleanup()
    assert deleted == [value]


def test_adapter_hazard_protects_loaded_value():
    adapter = PtrReclamationAdapter(HazardPtrReclamation(reclaim_threshold=1))
    deleted = []
    value = Item("v")
    loaded = adapter.read_lock(lambda: value)
    adapter.retire(loaded, deleted.append)
    assert deleted == []
    adapter.read_unlock()
    adapter.retire_cleanup()
    assert deleted == [value]


def test_adapter_refcount_cleanup_is_noop_and_retire_immediate():
    adapter = PtrReclamationAdapter(RefCountReclamation())
    deleted = []
    value = Item("v")
    assert adapter.read_lock(lambda: value) is value
    adapter.read_unlock()
    adapter.retire(value, deleted.append)
    adapter.retire_cleanup()
    assert deleted == [value]