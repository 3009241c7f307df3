import hashlib
import io
import threading

import pytest

from xgfs.meta.types import NotSupportedError
from xgfs.sharder import (
    METHOD_NONE,
    BlobStore,
    EncryptionOptions,
    ReaderOptions,
    Shard,
    WriterOptions,
    chunk_and_store,
    concat,
)

TEST_METHOD = "xor-test"


def _xor(data, key):
    return bytes(b ^ key[i % len(key)] for i, b in enumerate(data))


def _decrypt(data, options):
    return _xor(data, options.key)


class _MemoryBlobStore(BlobStore):
    def __init__(self, fail_on_put=None):
        self._lock = threading.Lock()
        self.blobs = {}
        self._puts = 0
        self._fail_on_put = fail_on_put

    def put(self, data, encryption, checksum):
        with self._lock:
            self._puts += 1
            if self._fail_on_put is not None and self._puts == self._fail_on_put:
                raise OSError("disk full")
            blob_id = f"blob-{self._puts}"
            stored = _xor(data, encryption.key) if encryption.enabled() else data
            self.blobs[blob_id] = stored
            return blob_id, len(stored)

    def get(self, blob_id):
        return self.blobs[blob_id]


class _SliceWriter:
    def __init__(self, size=0):
        self.buf = bytearray(size)

    def write_at(self, data, offset):
        end = offset + len(data)
        if end > len(self.buf):
            self.buf.extend(bytes(end - len(self.buf)))
        self.buf[offset:end] = data
        return len(data)


def test_concurrent_round_trip_matches_payload():
    store = _MemoryBlobStore()
    payload = b"concurrent-data" * (1 << 12)
    shards = chunk_and_store(
        store, io.BytesIO(payload), WriterOptions(chunk_size=64 << 10, concurrency=4)
    )
    writer = _SliceWriter(len(payload))
    written = concat(store, shards, writer, ReaderOptions(concurrency=4))
    assert bytes(writer.buf) == payload
    assert written == len(payload)


def test_concurrent_shards_match_sequential():
    payload = b"concurrent-data" * (1 << 12)
    seq = chunk_and_store(_MemoryBlobStore(), io.BytesIO(payload), WriterOptions(chunk_size=4096))
    par = chunk_and_store(
        _MemoryBlobStore(), io.BytesIO(payload), WriterOptions(chunk_size=4096, concurrency=4)
    )
    assert len(seq) == 15
    assert [(s.size, s.checksum) for s in seq] == [(s.size, s.checksum) for s in par]
    assert sum(s.size for s in par) == len(payload)


def test_concurrent_multi_shard_round_trip():
    store = _MemoryBlobStore()
    payload = bytes(range(256)) * 100
    shards = chunk_and_store(store, io.BytesIO(payload), WriterOptions(chunk_size=1000, concurrency=3))
    assert [s.size for s in shards] == [1000] * 25 + [600]
    writer = _SliceWriter()
    assert concat(store, shards, writer, ReaderOptions(concurrency=3)) == len(payload)
    assert bytes(writer.buf) == payload


def test_encrypted_round_trip():
    store = _MemoryBlobStore()
    key = bytes([0x5A]) * 32
    payload = b"encrypted-data"
    shards = chunk_and_store(
        store,
        io.BytesIO(payload),
        WriterOptions(chunk_size=4 << 10, encryption=EncryptionOptions(method=TEST_METHOD, key=key)),
    )
    assert len(shards) == 1
    assert shards[0].encryption == TEST_METHOD
    assert store.blobs[shards[0].id] != payload
    writer = _SliceWriter(len(payload))
    concat(store, shards, writer, ReaderOptions(keys={TEST_METHOD: key}, decrypt=_decrypt))
    assert bytes(writer.buf) == payload


def test_shard_checksum_and_plain_method():
    store = _MemoryBlobStore()
    shards = chunk_and_store(store, io.BytesIO(b"hello"), WriterOptions())
    assert shards == [
        Shard(
            id="blob-1",
            size=5,
            stored_size=5,
            checksum=hashlib.sha256(b"hello").hexdigest(),
            encryption=METHOD_NONE,
        )
    ]


def test_empty_reader_yields_no_shards():
    assert chunk_and_store(_MemoryBlobStore(), io.BytesIO(b""), WriterOptions(concurrency=2)) == []


def test_missing_key_raises():
    store = _MemoryBlobStore()
    key = bytes([0x11]) * 32
    shards = chunk_and_store(
        store,
        io.BytesIO(b"secret data"),
        WriterOptions(encryption=EncryptionOptions(method=TEST_METHOD, key=key)),
    )
    with pytest.raises(ValueError, match="missing key"):
        concat(store, shards, _SliceWriter(), ReaderOptions(decrypt=_decrypt))


def test_missing_decryptor_raises():
    store = _MemoryBlobStore()
    key = bytes([0x11]) * 32
    shards = chunk_and_store(
        store,
        io.BytesIO(b"data"),
        WriterOptions(encryption=EncryptionOptions(method=TEST_METHOD, key=key)),
    )
    with pytest.raises(NotSupportedError):
        concat(store, shards, _SliceWriter(), ReaderOptions(keys={TEST_METHOD: key}))


def test_store_failure_propagates_concurrently():
    store = _MemoryBlobStore(fail_on_put=3)
    with pytest.raises(OSError, match="disk full"):
        chunk_and_store(store, io.BytesIO(b"x" * 10000), WriterOptions(chunk_size=1000, concurrency=2))


def test_encryption_enabled_and_key_for():
    assert EncryptionOptions(method=TEST_METHOD, key=b"k").enabled() is True
    assert EncryptionOptions(method=METHOD_NONE, key=b"k").enabled() is False
    assert EncryptionOptions(method=TEST_METHOD).enabled() is False
    opts = ReaderOptions(keys={TEST_METHOD: b"abc"})
    assert opts.key_for(TEST_METHOD) == b"abc"
    assert opts.key_for("other") == b""