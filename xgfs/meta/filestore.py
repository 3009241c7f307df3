"""Metadata store persisted as a JSON snapshot on disk."""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path

from xgfs.meta.types import ROOT_ID, Inode, NotFoundError, Store, Txn, new_root_inode


class FileStore(Store):
    """Keeps metadata in memory and rewrites a JSON snapshot on every change."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._inodes: dict[int, Inode] = {}
        self._shards: dict[str, int] = {}
        self._pending_gc: dict[str, None] = {}
        self._next_id = 2
        self._load_or_init()

    def _load_or_init(self) -> None:
        with self._lock:
            if self._path.exists():
                state = json.loads(self._path.read_text(encoding="utf-8"))
                self._inodes = {
                    int(key): Inode.from_dict(value)
                    for key, value in (state.get("inodes") or {}).items()
                }
                self._shards = dict(state.get("shards") or {})
                self._pending_gc = dict.fromkeys(state.get("pending_gc") or [])
                self._next_id = max(int(state.get("next_id") or 0), 2)
                return
            root = new_root_inode()
            self._inodes = {root.id: root}
            self._shards = {}
            self._pending_gc = {}
            self._next_id = 2
            self._persist()

    def _persist(self) -> None:
        state = {
            "inodes": {str(k): v.to_dict() for k, v in self._inodes.items()},
            "shards": self._shards,
            "pending_gc": list(self._pending_gc),
            "next_id": self._next_id,
        }
        data = json.dumps(state, indent=2).encode("utf-8")
        fd, tmp_name = tempfile.mkstemp(prefix="meta-", dir=self._path.parent)
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(data)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            try:
                os.remove(tmp_name)
            except FileNotFoundError:
                pass
            raise

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
            self._persist()

    def delete(self, inode_id: int) -> None:
        with self._lock:
            self._inodes.pop(inode_id, None)
            self._persist()

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
            self._persist()
            return inode_id

    def inc_ref(self, shard_id: str, delta: int) -> int:
        with self._lock:
            count = self._shards.get(shard_id, 0) + delta
            if count <= 0:
                self._shards.pop(shard_id, None)
                self._persist()
                return 0
            self._shards[shard_id] = count
            self._pending_gc.pop(shard_id, None)
            self._persist()
            return count

    def decide_gc(self, shard_id: str, refs: int) -> None:
        if refs > 0:
            return
        with self._lock:
            self._pending_gc[shard_id] = None
            self._persist()

    def list_zero_ref(self, limit: int) -> list[str]:
        with self._lock:
            pending = list(self._pending_gc)
        return pending[:limit] if limit > 0 else pending

    def mark_gc_complete(self, shard_id: str) -> None:
        with self._lock:
            self._pending_gc.pop(shard_id, None)
            self._persist()

    def begin(self) -> Txn:
        return _FileTxn(self)


class _FileTxn(Txn):
    """Pass-through transaction: every operation is persisted immediately."""

    def __init__(self, store: FileStore) -> None:
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