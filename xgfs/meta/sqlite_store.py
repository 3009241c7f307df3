"""Metadata store persisted in an SQLite database."""

from __future__ import annotations

import json
import os
import sqlite3
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass

from xgfs.meta.types import (
    ROOT_ID,
    Inode,
    NotFoundError,
    NotSupportedError,
    Store,
    Txn,
    new_root_inode,
)

_NEXT_ID_KEY = "next-id"
_DEFAULT_TIMEOUT = 1.0

_SCHEMA = (
    "CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, value INTEGER NOT NULL)",
    "CREATE TABLE IF NOT EXISTS inodes (id INTEGER PRIMARY KEY, data TEXT NOT NULL)",
    "CREATE TABLE IF NOT EXISTS shards (shard_id TEXT PRIMARY KEY, refs INTEGER NOT NULL)",
    "CREATE TABLE IF NOT EXISTS gc_queue (shard_id TEXT PRIMARY KEY)",
)


@dataclass
class SqliteConfig:
    """Settings for :class:`SqliteStore`; ``timeout`` is in seconds, 0 meaning one second."""

    path: str | os.PathLike[str] = ""
    no_sync: bool = False
    timeout: float = 0.0


def _connect(config: SqliteConfig) -> sqlite3.Connection:
    timeout = config.timeout if config.timeout > 0 else _DEFAULT_TIMEOUT
    conn = sqlite3.connect(
        os.fspath(config.path),
        timeout=timeout,
        isolation_level=None,
        check_same_thread=False,
    )
    if config.no_sync:
        conn.execute("PRAGMA synchronous=OFF")
    return conn


@contextmanager
def _transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def _read_next_id(conn: sqlite3.Connection) -> int | None:
    row = conn.execute("SELECT value FROM meta WHERE key = ?", (_NEXT_ID_KEY,)).fetchone()
    return None if row is None else int(row[0])


def _write_next_id(conn: sqlite3.Connection, value: int) -> None:
    conn.execute(
        "INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)", (_NEXT_ID_KEY, value)
    )


def _allocate_id(conn: sqlite3.Connection) -> int:
    current = _read_next_id(conn) or 0
    _write_next_id(conn, current + 1)
    return current


def _get_inode(conn: sqlite3.Connection, inode_id: int) -> Inode:
    row = conn.execute("SELECT data FROM inodes WHERE id = ?", (inode_id,)).fetchone()
    if row is None:
        raise NotFoundError(f"inode {inode_id} not found")
    return Inode.from_dict(json.loads(row[0]))


def _put_inode(conn: sqlite3.Connection, inode: Inode) -> None:
    conn.execute(
        "INSERT OR REPLACE INTO inodes (id, data) VALUES (?, ?)",
        (inode.id, json.dumps(inode.to_dict())),
    )


def _delete_inode(conn: sqlite3.Connection, inode_id: int) -> None:
    conn.execute("DELETE FROM inodes WHERE id = ?", (inode_id,))


def _children(conn: sqlite3.Connection, parent: int) -> list[Inode]:
    out = []
    for (data,) in conn.execute("SELECT data FROM inodes ORDER BY id"):
        inode = Inode.from_dict(json.loads(data))
        for name in sorted(inode.parents.get(parent, ())):
            child = inode.clone()
            child.parent = parent
            child.name = name
            out.append(child)
    return out


def _read_refs(conn: sqlite3.Connection, shard_id: str) -> int:
    row = conn.execute("SELECT refs FROM shards WHERE shard_id = ?", (shard_id,)).fetchone()
    return 0 if row is None else int(row[0])


def _write_refs(conn: sqlite3.Connection, shard_id: str, refs: int) -> None:
    conn.execute(
        "INSERT OR REPLACE INTO shards (shard_id, refs) VALUES (?, ?)", (shard_id, refs)
    )


def _drop_refs(conn: sqlite3.Connection, shard_id: str) -> None:
    conn.execute("DELETE FROM shards WHERE shard_id = ?", (shard_id,))


def _queue_gc(conn: sqlite3.Connection, shard_id: str) -> None:
    conn.execute("INSERT OR REPLACE INTO gc_queue (shard_id) VALUES (?)", (shard_id,))


def _unqueue_gc(conn: sqlite3.Connection, shard_id: str) -> None:
    conn.execute("DELETE FROM gc_queue WHERE shard_id = ?", (shard_id,))


def _list_zero_ref(conn: sqlite3.Connection, limit: int) -> list[str]:
    if limit > 0:
        rows = conn.execute(
            "SELECT shard_id FROM gc_queue ORDER BY shard_id LIMIT ?", (limit,)
        )
    else:
        rows = conn.execute("SELECT shard_id FROM gc_queue ORDER BY shard_id")
    return [row[0] for row in rows]


class SqliteStore(Store):
    """Persists inodes, shard refcounts and the GC queue in SQLite."""

    def __init__(self, config: SqliteConfig) -> None:
        if not os.fspath(config.path):
            raise ValueError("sqlite store: path is required")
        self._config = config
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = _connect(config)
        try:
            self._init()
        except BaseException:
            self._conn.close()
            self._conn = None
            raise

    def _init(self) -> None:
        with _transaction(self._connection) as conn:
            for statement in _SCHEMA:
                conn.execute(statement)
            current = _read_next_id(conn)
            if current is None or current < 2:
                _write_next_id(conn, 2)
            row = conn.execute("SELECT 1 FROM inodes WHERE id = ?", (ROOT_ID,)).fetchone()
            if row is None:
                _put_inode(conn, new_root_inode())

    @property
    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise sqlite3.ProgrammingError("sqlite store: closed")
        return self._conn

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        with self._lock, _transaction(self._connection) as conn:
            yield conn

    def root(self) -> Inode:
        return self.get(ROOT_ID)

    def get(self, inode_id: int) -> Inode:
        with self._lock:
            return _get_inode(self._connection, inode_id)

    def put(self, inode: Inode) -> None:
        with self._write() as conn:
            _put_inode(conn, inode)

    def delete(self, inode_id: int) -> None:
        with self._write() as conn:
            _delete_inode(conn, inode_id)

    def children(self, parent: int) -> list[Inode]:
        with self._lock:
            return _children(self._connection, parent)

    def allocate_id(self) -> int:
        with self._write() as conn:
            return _allocate_id(conn)

    def inc_ref(self, shard_id: str, delta: int) -> int:
        with self._write() as conn:
            refs = _read_refs(conn, shard_id) + delta
            if refs <= 0:
                _drop_refs(conn, shard_id)
                return 0
            _write_refs(conn, shard_id, refs)
            _unqueue_gc(conn, shard_id)
            return refs

    def decide_gc(self, shard_id: str, refs: int) -> None:
        if refs > 0:
            return
        with self._write() as conn:
            _queue_gc(conn, shard_id)

    def list_zero_ref(self, limit: int) -> list[str]:
        with self._lock:
            return _list_zero_ref(self._connection, limit)

    def mark_gc_complete(self, shard_id: str) -> None:
        with self._write() as conn:
            _unqueue_gc(conn, shard_id)

    def begin(self) -> SqliteTxn:
        if self._conn is None:
            raise sqlite3.ProgrammingError("sqlite store: closed")
        conn = _connect(self._config)
        try:
            conn.execute("BEGIN IMMEDIATE")
        except BaseException:
            conn.close()
            raise
        return SqliteTxn(conn)

    def close(self) -> None:
        """Release the database; closing twice is harmless."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def set_next_id(self, next_id: int) -> None:
        """Set the next id that :meth:`allocate_id` hands out."""
        with self._write() as conn:
            _write_next_id(conn, next_id)

    def reset_shard_refs(self, refs: Mapping[str, int]) -> None:
        """Replace all refcounts with ``refs`` and empty the GC queue."""
        with self._write() as conn:
            conn.execute("DELETE FROM shards")
            conn.execute("DELETE FROM gc_queue")
            for shard_id, count in refs.items():
                if count > 0:
                    _write_refs(conn, shard_id, count)

    def __enter__(self) -> SqliteStore:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class SqliteTxn(Txn):
    """A write transaction on its own connection; holds the database write lock."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def root(self) -> Inode:
        return _get_inode(self._conn, ROOT_ID)

    def get(self, inode_id: int) -> Inode:
        return _get_inode(self._conn, inode_id)

    def put(self, inode: Inode) -> None:
        _put_inode(self._conn, inode)

    def delete(self, inode_id: int) -> None:
        _delete_inode(self._conn, inode_id)

    def children(self, parent: int) -> list[Inode]:
        return _children(self._conn, parent)

    def allocate_id(self) -> int:
        return _allocate_id(self._conn)

    def inc_ref(self, shard_id: str, delta: int) -> int:
        refs = _read_refs(self._conn, shard_id) + delta
        if refs <= 0:
            _drop_refs(self._conn, shard_id)
            _unqueue_gc(self._conn, shard_id)
            return 0
        _write_refs(self._conn, shard_id, refs)
        _unqueue_gc(self._conn, shard_id)
        return refs

    def decide_gc(self, shard_id: str, refs: int) -> None:
        if refs > 0:
            return
        _queue_gc(self._conn, shard_id)

    def list_zero_ref(self, limit: int) -> list[str]:
        return _list_zero_ref(self._conn, limit)

    def mark_gc_complete(self, shard_id: str) -> None:
        _unqueue_gc(self._conn, shard_id)

    def begin(self) -> Txn:
        raise NotSupportedError("sqlite store: nested transactions not supported")

    def commit(self) -> None:
        if self._closed:
            raise sqlite3.ProgrammingError("sqlite store: transaction already closed")
        self._closed = True
        try:
            self._conn.execute("COMMIT")
        finally:
            self._conn.close()

    def rollback(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._conn.execute("ROLLBACK")
        finally:
            self._conn.close()

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._closed:
            return
        super().__exit__(exc_type, exc, tb)