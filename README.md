# xgfs

Building blocks for a virtual filesystem that stores file contents as
checksummed shards in a blob store and keeps inode metadata in a pluggable
store.

The package provides:

- **Inode metadata stores** (`xgfs.meta`): an in-memory store, a store that
  saves a JSON snapshot to disk after every change, and an SQLite-backed
  store with real transactions. All of them keep shard reference counts and
  a queue of shards that are ready for garbage collection.
- **Reference tracking** (`xgfs.meta.reftracker.RefTracker`): adjusts shard
  reference counts and queues shards that are no longer referenced.
- **Migration** (`xgfs.meta.migrate.migrate_to_sqlite`): copies every inode
  reachable from the root of any store into a new SQLite store.
- **Sharding** (`xgfs.sharder`): splits a byte stream into fixed-size chunks,
  stores each one in a blob store along with its SHA-256 checksum, and joins
  them back together, sequentially or with worker threads.
- **WSGI middleware** (`xgfs.middleware`): shared-key authentication and a
  token-bucket rate limiter.
- **Mount helpers** (`xgfs.fuse_helpers`): path normalisation, stable inode
  numbers derived from paths, mapping of exceptions to errno codes, and an
  offset-addressed write buffer.

It uses only the standard library and supports Python 3.10 and later.

## Installation

```
pip install .
```

## Metadata types

`xgfs.meta.types` defines `Inode`, `ShardRef` and `InodeType`, the abstract
`Store` and `Txn` interfaces, `new_root_inode()` and the error classes
`FsError`, `NotFoundError`, `AlreadyExistsError` and `NotSupportedError`.
An inode's `parents` maps each parent ID to the set of names it is linked
under, so one inode can appear in several directories. `Inode.to_dict()` and
`Inode.from_dict()` convert to and from the JSON form the stores save.

## Metadata stores

Every store starts with a root directory inode (ID 1) and hands out new IDs
from 2 upwards.

```python
from xgfs.meta.mem_store import MemoryStore

store = MemoryStore()
root = store.root()
new_id = store.allocate_id()

store.inc_ref("shard-a", 1)
refs = store.inc_ref("shard-a", -1)      # 0: the count is dropped
store.decide_gc("shard-a", refs)         # queue it for collection
print(store.list_zero_ref(10))           # ['shard-a']
store.mark_gc_complete("shard-a")
```

`children(parent)` returns one inode copy per name the inode has under that
parent, with `parent` and `name` set accordingly. Looking up a missing inode
raises `NotFoundError`. A `limit` of 0 or less in `list_zero_ref` returns the
whole queue.

`xgfs.meta.filestore.FileStore(path)` behaves the same but writes an atomic
JSON snapshot after every change, so a store reopened on the same path sees
the same inodes, counters and GC queue.

For both of these, `begin()` returns a transaction that applies every
operation at once; `commit()` and `rollback()` do nothing.

`xgfs.meta.sqlite_store.SqliteStore(SqliteConfig(path=...))` keeps metadata
in an SQLite database. `begin()` returns an `SqliteTxn` on its own
connection whose changes become visible only after `commit()`; `rollback()`
discards them. Used as a context manager, a transaction commits on a clean
exit and rolls back on an exception. Nested transactions raise
`NotSupportedError`. Close the store with `close()` or use it in a `with`
block.

```python
from xgfs.meta.sqlite_store import SqliteConfig, SqliteStore

with SqliteStore(SqliteConfig(path="meta.db")) as store:
    with store.begin() as txn:
        inode_id = txn.allocate_id()
```

### Migrating to SQLite

```python
from xgfs.meta.migrate import migrate_to_sqlite
from xgfs.meta.sqlite_store import SqliteConfig

dst = migrate_to_sqlite(store, SqliteConfig(path="meta.db"))
try:
    ...
finally:
    dst.close()
```

Shard reference counts are rebuilt from the copied inodes, the GC queue
starts empty and the next ID is one past the highest copied ID.

## Reference tracking

```python
from xgfs.meta.reftracker import RefTracker

tracker = RefTracker(store)
tracker.add("shard-b", 2)
tracker.release_many(["shard-b", "shard-b"])   # shard-b is now queued for GC
```

## Sharding

The caller supplies the blob store by subclassing `BlobStore`:

```python
import io

from xgfs.fuse_helpers import WriterAtBuffer
from xgfs.sharder import BlobStore, ReaderOptions, WriterOptions, chunk_and_store, concat


class MemoryBlobs(BlobStore):
    def __init__(self):
        self.blobs = {}

    def put(self, data, encryption, checksum):
        self.blobs[checksum] = data
        return checksum, len(data)

    def get(self, blob_id):
        return self.blobs[blob_id]


blobs = MemoryBlobs()
shards = chunk_and_store(blobs, io.BytesIO(b"payload" * 1000),
                         WriterOptions(chunk_size=1024, concurrency=4))
out = WriterAtBuffer()
written = concat(blobs, shards, out, ReaderOptions(concurrency=4))
```

`WriterOptions.chunk_size` defaults to 4 MiB. A concurrency above 1 spreads
the work over that many threads while keeping the order of shards and of
the output.

Each `Shard` records the encryption method from the writer's
`EncryptionOptions` when it has both a method and a key, and `"none"`
otherwise. The blob store is responsible for encrypting what it stores.

## WSGI middleware

```python
from xgfs.middleware import RateLimitOptions, api_key_auth, rate_limit, wrap

app = wrap(my_app, api_key_auth("secret"), rate_limit(RateLimitOptions(requests=100, window=1.0)))
```

`extract_api_key(environ)` reads the key from `X-API-Key` or from an
`Authorization: Bearer` header. Requests without the right key get
`401 Unauthorized`; requests beyond the shared bucket's capacity get
`429 Too Many Requests`. The bucket refills continuously, `requests` tokens
per `window` seconds; `TokenBucket` can also be used on its own. A blank key
or a non-positive limit yields `None`, and `wrap` skips it. The first
middleware given to `wrap` is the outermost.

## Mount helpers

```python
from xgfs.fuse_helpers import clean_path, errno_for_error, inode_for_path, join_path, parent_path

clean_path("foo//bar/")        # '/foo/bar'
join_path("/", "a")            # '/a'
parent_path("/a/b")            # '/a'
inode_for_path("/a")           # stable 64-bit FNV-1a hash, never 0
errno_for_error(FileNotFoundError())   # errno.ENOENT
```

`WriterAtBuffer` collects bytes written at arbitrary offsets with
`write_at(data, offset)` and returns them with `getvalue()`.

## What the package does not do

- It contains no blob store and no encryption: `BlobStore` is an interface
  to implement, and reading encrypted shards needs a `decrypt` callable in
  `ReaderOptions` together with the key for the method. Without a key
  `concat` raises `ValueError`; without a `decrypt` callable it raises
  `NotSupportedError`.
- It does not mount anything or serve files over a network protocol:
  `xgfs.fuse_helpers` only provides the helpers a mount would use, and
  `xgfs.middleware` only wraps WSGI applications that you provide.
- It has no command-line program.

## Running the tests

```
pip install .[test]
pytest
```