"""Path, buffer, errno and inode-number helpers for exposing a filesystem via FUSE."""

from __future__ import annotations

import asyncio
import concurrent.futures
import errno
import posixpath
import threading

from xgfs.meta.types import AlreadyExistsError, NotFoundError, NotSupportedError

_FNV64_OFFSET = 0xCBF29CE484222325
_FNV64_PRIME = 0x100000001B3
_MASK64 = (1 << 64) - 1

_CANCELLED = (
    asyncio.CancelledError,
    concurrent.futures.CancelledError,
    InterruptedError,
)
_TIMED_OUT = (
    TimeoutError,
    asyncio.TimeoutError,
    concurrent.futures.TimeoutError,
)


def _clean(p: str) -> str:
    """Lexically clean a slash-separated path, collapsing any run of leading slashes."""
    if not p:
        return "."
    cleaned = posixpath.normpath(p)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def clean_path(p: str) -> str:
    """Normalise a mount-relative path to an absolute, cleaned form."""
    if p in ("", "/"):
        return "/"
    if not p.startswith("/"):
        p = "/" + p
    return _clean(p) or "/"


def join_path(base: str, name: str) -> str:
    """Join a directory path and an entry name into a cleaned absolute path."""
    if base == "/":
        return clean_path("/" + name)
    return clean_path(f"{base}/{name}")


def parent_path(p: str) -> str:
    """Return the cleaned parent directory of ``p``; the root is its own parent."""
    if p == "/":
        return "/"
    return clean_path(p.rpartition("/")[0])


def inode_for_path(p: str) -> int:
    """Derive a stable, non-zero 64-bit inode number from a path (FNV-1a)."""
    value = _FNV64_OFFSET
    for byte in p.encode("utf-8"):
        value ^= byte
        value = (value * _FNV64_PRIME) & _MASK64
    return value or 1


class WriterAtBuffer:
    """Collects bytes written at arbitrary offsets, growing as needed."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buf = bytearray()

    def write_at(self, data: bytes, offset: int) -> int:
        """Write ``data`` at ``offset`` and return the number of bytes written."""
        if offset < 0:
            raise ValueError(f"negative offset {offset}")
        end = offset + len(data)
        with self._lock:
            if end > len(self._buf):
                self._buf.extend(bytes(end - len(self._buf)))
            self._buf[offset:end] = data
        return len(data)

    def getvalue(self) -> bytes:
        """Return the buffer contents."""
        with self._lock:
            return bytes(self._buf)


def errno_for_error(err: BaseException | None) -> int:
    """Map an exception to the errno a FUSE reply should carry; 0 for no error."""
    if err is None:
        return 0
    if isinstance(err, _CANCELLED):
        return errno.EINTR
    if isinstance(err, _TIMED_OUT):
        return errno.ETIMEDOUT
    if isinstance(err, NotFoundError):
        return errno.ENOENT
    if isinstance(err, AlreadyExistsError):
        return errno.EEXIST
    if isinstance(err, NotSupportedError):
        return errno.ENOTSUP
    if isinstance(err, FileNotFoundError):
        return errno.ENOENT
    if isinstance(err, PermissionError):
        return errno.EPERM
    return errno.EIO