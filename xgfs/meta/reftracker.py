"""Keeps shard reference counts in sync with metadata."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from xgfs.meta.types import Store


@dataclass
class RefTracker:
    """Adjusts shard refcounts and queues unreferenced shards for collection."""

    store: Store
    blob: Any = None

    def add(self, shard_id: str, delta: int) -> None:
        """Change the refcount of a shard by ``delta``."""
        if not shard_id or delta == 0:
            return
        self.store.inc_ref(shard_id, delta)

    def release(self, shard_id: str) -> None:
        """Drop one reference; a shard left with none is queued for GC."""
        if not shard_id:
            return
        refs = self.store.inc_ref(shard_id, -1)
        if refs == 0:
            self.store.decide_gc(shard_id, refs)

    def release_many(self, shard_ids: Iterable[str]) -> None:
        """Release each shard in turn."""
        for shard_id in shard_ids:
            self.release(shard_id)