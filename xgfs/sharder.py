"""Split byte streams into shards in a blob store and join them back together."""

from __future__ import annotations

import abc
import hashlib
from collections import deque
from collections.abc import Callable, Iterable, Iterator, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import BinaryIO, Protocol, TypeVar

from xgfs.meta.types import NotSupportedError

DEFAULT_CHUNK_SIZE = 4 << 20
METHOD_NONE = "none"

_T = TypeVar("_T")
_R = TypeVar("_R")


@dataclass
class EncryptionOptions:
    """Encryption method name and key applied to stored shards."""

    method: str = ""
    key: bytes = b""

    def enabled(self) -> bool:
        """True when a real method and a key are both set."""
        return self.method not in ("", METHOD_NONE) and len(self.key) > 0


class BlobStore(abc.ABC):
    """Content storage that shards are written to and read from."""

    @abc.abstractmethod
    def put(self, data: bytes, encryption: EncryptionOptions, checksum: str) -> tuple[str, int]:
        """Store ``data`` and return its blob id and the number of bytes persisted."""

    @abc.abstractmethod
    def get(self, blob_id: str) -> bytes:
        """Return the stored bytes of a blob."""


@dataclass(frozen=True)
class Shard:
    """One stored chunk; ``size`` is plaintext bytes, ``stored_size`` physical bytes."""

    id: str
    size: int
    stored_size: int
    checksum: str
    encryption: str = METHOD_NONE


@dataclass
class WriterOptions:
    """Chunking behaviour; a chunk size of 0 or less means 4 MiB."""

    chunk_size: int = 0
    encryption: EncryptionOptions = field(default_factory=EncryptionOptions)
    concurrency: int = 0


Decryptor = Callable[[bytes, EncryptionOptions], bytes]


@dataclass
class ReaderOptions:
    """Keys per encryption method, worker count and the decryption routine."""

    keys: dict[str, bytes] = field(default_factory=dict)
    concurrency: int = 0
    decrypt: Decryptor | None = None

    def key_for(self, method: str) -> bytes:
        """Return the key configured for ``method``, or empty bytes."""
        if not self.keys:
            return b""
        return self.keys.get(method, b"")


class WriterAt(Protocol):
    def write_at(self, data: bytes, offset: int) -> int: ...


def _read_full(reader: BinaryIO, size: int) -> bytes:
    buf = bytearray()
    while len(buf) < size:
        piece = reader.read(size - len(buf))
        if not piece:
            break
        buf += piece
    return bytes(buf)


def _iter_chunks(reader: BinaryIO, size: int) -> Iterator[bytes]:
    while True:
        chunk = _read_full(reader, size)
        if not chunk:
            return
        yield chunk
        if len(chunk) < size:
            return


def _ordered_map(fn: Callable[[_T], _R], items: Iterable[_T], workers: int) -> Iterator[_R]:
    """Apply ``fn`` on a thread pool, yielding results in input order with bounded lookahead."""
    with ThreadPoolExecutor(max_workers=workers) as pool:
        window: deque[Future[_R]] = deque()
        try:
            for item in items:
                window.append(pool.submit(fn, item))
                if len(window) >= workers * 2:
                    yield window.popleft().result()
            while window:
                yield window.popleft().result()
        finally:
            for future in window:
                future.cancel()


def _persist_chunk(store: BlobStore, chunk: bytes, opts: WriterOptions) -> Shard:
    checksum = hashlib.sha256(chunk).hexdigest()
    blob_id, stored_size = store.put(chunk, opts.encryption, checksum)
    method = opts.encryption.method if opts.encryption.enabled() else METHOD_NONE
    return Shard(
        id=blob_id,
        size=len(chunk),
        stored_size=stored_size,
        checksum=checksum,
        encryption=method,
    )


def chunk_and_store(
    store: BlobStore, reader: BinaryIO, opts: WriterOptions | None = None
) -> list[Shard]:
    """Split ``reader`` into chunks, store each one and return the shards in order."""
    opts = opts or WriterOptions()
    if opts.chunk_size <= 0:
        opts = replace(opts, chunk_size=DEFAULT_CHUNK_SIZE)
    chunks = _iter_chunks(reader, opts.chunk_size)
    if opts.concurrency <= 1:
        return [_persist_chunk(store, chunk, opts) for chunk in chunks]
    return list(
        _ordered_map(lambda chunk: _persist_chunk(store, chunk, opts), chunks, opts.concurrency)
    )


def _fetch_shard(store: BlobStore, shard: Shard, opts: ReaderOptions) -> bytes:
    data = store.get(shard.id)
    method = shard.encryption or METHOD_NONE
    if method == METHOD_NONE:
        return data
    key = opts.key_for(method)
    if not key:
        raise ValueError(f"concat: missing key for {method} shard")
    if opts.decrypt is None:
        raise NotSupportedError(f"concat: no decryptor for {method} shard")
    return opts.decrypt(data, EncryptionOptions(method=method, key=key))


def concat(
    store: BlobStore,
    shards: Sequence[Shard],
    writer: WriterAt,
    opts: ReaderOptions | None = None,
) -> int:
    """Read ``shards`` and write them back to back into ``writer``; return bytes written."""
    opts = opts or ReaderOptions()
    if opts.concurrency <= 1:
        pieces: Iterable[bytes] = (_fetch_shard(store, shard, opts) for shard in shards)
    else:
        pieces = _ordered_map(
            lambda shard: _fetch_shard(store, shard, opts), shards, opts.concurrency
        )
    offset = 0
    for data in pieces:
        writer.write_at(data, offset)
        offset += len(data)
    return offset