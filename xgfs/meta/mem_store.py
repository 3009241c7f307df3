"""In-memory metadata store."""

from __future__ import annotations

import threading

from xgfs.meta.types import ROOT_ID, Inode, NotFoundError, Store, Txn, new_root_inode


class MemoryStore(Store):
    """A simple in-memory metadata store, mainly for tests."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        root = new_root_inode()
        self._inodes: dict[int, Inode] = {root.id: root}
        self._shards: dict[str, int] = {}
        self._pending_gc: dict[str, None] = {}
        self._next_id = 2

    def root(self) -> Inode:
        return self.get(ROOT_ID)

    def get(self, inode_id: int) -> Inode:
        with self._lock:
            try:
                return self._inodes[inode_id].clone()
            except KeyError:
                raise NotFoundError(f"inode {inode_id} not found") from None

    def put(self, inode: Inode) -> None:
        with self._lock:
            self._inodes[inode.id] = inode.clone()

    def delete(self, inode_id: int) -> None:
        with self._lock:
            self._inodes.pop(inode_id, None)

    def children(self, parent: int) -> list[Inode]:
        with self._lock:
            out = []
            for inode in self._inodes.values():
                for name in sorted(inode.parents.get(parent, ())):
                    child = inode.clone()
                    child.parent = parent
                    child.name = name
                    out.append(child)
            return out

    def allocate_id(self) -> int:
        with self._lock:
            inode_id = self._next_id
            self._next_id += 1
            return inode_id

    def inc_ref(self, shard_id: str, delta: int) -> int:
        with self._lock:
            count = self._shards.get(shard_id, 0) + delta
            if count <= 0:
                self._shards.pop(shard_id, None)
                return 0
            self._shards[shard_id] = count
            self._pending_gc.pop(shard_id, None)
            return count

    def decide_gc(self, shard_id: str, refs: int) -> None:
        if refs > 0:
            return
        with self._lock:
            self._pending_gc[shard_id] = None

    def list_zero_ref(self, limit: int) -> list[str]:
        with self._lock:
            pending = list(self._pending_gc)
        return pending[:limit] if limit > 0 else pending

    def mark_gc_complete(self, shard_id: str) -> None:
        with self._lock:
            self._pending_gc.pop(shard_id, None)

    def begin(self) -> Txn:
        return _MemoryTxn(self)


class _MemoryTxn(Txn):
    """Pass-through transaction: every operation applies immediately."""

    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    def root(self) -> Inode:
        return self._store.root()

    def get(self, inode_id: int) -> Inode:
        return self._store.get(inode_id)

    def put(self, inode: Inode) -> None:
        self._store.put(inode)

    def delete(self, inode_id: int) -> None:
        self._store.delete(inode_id)

    def children(self, parent: int) -> list[Inode]:
        return self._store.children(parent)

    def allocate_id(self) -> int:
        return self._store.allocate_id()

    def inc_ref(self, shard_id: str, delta: int) -> int:
        return self._store.inc_ref(shard_id, delta)

    def decide_gc(self, shard_id: str, refs: int) -> None:
        self._store.decide_gc(shard_id, refs)

    def list_zero_ref(self, limit: int) -> list[str]:
        return self._store.list_zero_ref(limit)

    def mark_gc_complete(self, shard_id: str) -> None:
        self._store.mark_gc_complete(shard_id)

    def begin(self) -> Txn:
        return self._store.begin()

    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        pass