"""Copy metadata from any store into an SQLite-backed store."""

from __future__ import annotations

from collections import Counter, deque

from xgfs.meta.sqlite_store import SqliteConfig, SqliteStore
from xgfs.meta.types import Store


def migrate_to_sqlite(src: Store, config: SqliteConfig) -> SqliteStore:
    """Copy every inode reachable from the root of ``src`` into a new store.

    Shard refcounts are rebuilt from the copied inodes and the GC queue starts
    empty. The caller owns the returned store and must close it.
    """
    dst = SqliteStore(config)
    try:
        root = src.root()
        queue = deque([root.id])
        visited: set[int] = set()
        max_id = root.id
        shard_refs: Counter[str] = Counter()
        while queue:
            inode_id = queue.popleft()
            if inode_id in visited:
                continue
            inode = src.get(inode_id)
            dst.put(inode)
            visited.add(inode_id)
            max_id = max(max_id, inode.id)
            shard_refs.update(shard.shard_id for shard in inode.shards)
            queue.extend(child.id for child in src.children(inode_id))
        dst.reset_shard_refs(shard_refs)
        dst.set_next_id(max_id + 1)
    except BaseException:
        dst.close()
        raise
    return dst