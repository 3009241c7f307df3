import pytest

from xgfs.meta.mem_store import MemoryStore
from xgfs.meta.types import ROOT_ID, Inode, InodeType, NotFoundError


def test_memory_store_gc_queue():
    store = MemoryStore()
    store.inc_ref("shard-a", 1)
    assert store.inc_ref("shard-a", -1) == 0
    store.decide_gc("shard-a", 0)
    assert store.list_zero_ref(10) == ["shard-a"]
    store.mark_gc_complete("shard-a")
    assert store.list_zero_ref(1) == []


def test_root_and_allocation():
    store = MemoryStore()
    assert store.root().id == ROOT_ID
    assert store.allocate_id() == 2
    assert store.allocate_id() == 3


def test_get_missing_raises():
    store = MemoryStore()
    with pytest.raises(NotFoundError):
        store.get(42)


def test_put_get_delete():
    store = MemoryStore()
    inode_id = store.allocate_id()
    store.put(Inode(id=inode_id, name="f", type=InodeType.FILE, size=3))
    assert store.get(inode_id).size == 3
    store.delete(inode_id)
    with pytest.raises(NotFoundError):
        store.get(inode_id)


def test_children_expands_hard_links():
    store = MemoryStore()
    inode_id = store.allocate_id()
    store.put(Inode(id=inode_id, parents={ROOT_ID: {"a", "b"}}, type=InodeType.FILE))
    kids = store.children(ROOT_ID)
    assert sorted(k.name for k in kids) == ["a", "b"]
    assert all(k.parent == ROOT_ID and k.id == inode_id for k in kids)


def test_returned_inodes_do_not_alias_store():
    store = MemoryStore()
    root = store.root()
    root.metadata["x"] = "y"
    assert store.root().metadata == {}


def test_positive_ref_clears_pending_gc():
    store = MemoryStore()
    store.decide_gc("s", 0)
    assert store.inc_ref("s", 2) == 2
    assert store.list_zero_ref(0) == []


def test_decide_gc_ignores_positive_refs():
    store = MemoryStore()
    store.decide_gc("s", 1)
    assert store.list_zero_ref(0) == []


def test_list_zero_ref_limit():
    store = MemoryStore()
    for name in ("a", "b", "c"):
        store.decide_gc(name, 0)
    assert len(store.list_zero_ref(2)) == 2
    assert sorted(store.list_zero_ref(0)) == ["a", "b", "c"]


def test_transaction_passes_through():
    store = MemoryStore()
    with store.begin() as txn:
        inode_id = txn.allocate_id()
        txn.put(Inode(id=inode_id, name="t"))
    assert store.get(inode_id).name == "t"