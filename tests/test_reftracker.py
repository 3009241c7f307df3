from xgfs.meta.mem_store import MemoryStore
from xgfs.meta.reftracker import RefTracker


def test_add_then_release_queues_for_gc():
    store = MemoryStore()
    tracker = RefTracker(store)
    tracker.add("s-1", 1)
    tracker.release("s-1")
    assert store.list_zero_ref(0) == ["s-1"]


def test_release_with_remaining_refs_does_not_queue():
    store = MemoryStore()
    tracker = RefTracker(store)
    tracker.add("s-1", 2)
    tracker.release("s-1")
    assert store.list_zero_ref(0) == []
    assert store.inc_ref("s-1", 0) == 1


def test_empty_id_and_zero_delta_are_ignored():
    store = MemoryStore()
    tracker = RefTracker(store)
    tracker.add("s-1", 0)
    tracker.add("", 5)
    tracker.release("")
    assert store.inc_ref("s-1", 1) == 1
    assert store.list_zero_ref(0) == []


def test_release_many():
    store = MemoryStore()
    tracker = RefTracker(store)
    for shard in ("a", "b"):
        tracker.add(shard, 1)
    tracker.release_many(["a", "b"])
    assert sorted(store.list_zero_ref(0)) == ["a", "b"]


def test_release_unknown_shard_queues_it():
    store = MemoryStore()
    RefTracker(store).release("ghost")
    assert store.list_zero_ref(0) == ["ghost"]