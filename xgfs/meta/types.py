"""Core metadata types: inodes, shard references and the store interfaces."""

from __future__ import annotations

import abc
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any

ROOT_ID = 1

_ZERO_TIME = "0001-01-01T00:00:00Z"
_FRACTION = re.compile(r"\.(\d+)")


class FsError(Exception):
    """Base class for filesystem metadata errors."""


class NotFoundError(FsError):
    """The requested entry does not exist."""


class AlreadyExistsError(FsError):
    """The entry already exists."""


class NotSupportedError(FsError):
    """The operation is not supported."""


class InodeType(IntEnum):
    """Kinds of filesystem node."""

    UNKNOWN = 0
    FILE = 1
    DIRECTORY = 2
    SYMLINK = 3


def _format_time(value: datetime | None) -> str:
    if value is None:
        return _ZERO_TIME
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_time(text: str | None) -> datetime | None:
    if not text or text.startswith("0001-01-01T00:00:00"):
        return None
    text = text.replace("Z", "+00:00")
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    return datetime.fromisoformat(text)


@dataclass
class ShardRef:
    """Ties an inode to a stored data shard."""

    shard_id: str
    size: int = 0
    stored_size: int = 0
    offset: int = 0
    version: int = 0
    checksum: str = ""
    encryption: str = ""
    encrypted: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "ShardID": self.shard_id,
            "Size": self.size,
            "Offset": self.offset,
            "Version": self.version,
            "Checksum": self.checksum,
        }
        if self.stored_size:
            data["stored_size"] = self.stored_size
        if self.encryption:
            data["encryption"] = self.encryption
        if self.encrypted:
            data["encrypted"] = True
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ShardRef:
        return cls(
            shard_id=data.get("ShardID", ""),
            size=data.get("Size", 0),
            stored_size=data.get("stored_size", 0),
            offset=data.get("Offset", 0),
            version=data.get("Version", 0),
            checksum=data.get("Checksum", ""),
            encryption=data.get("encryption", ""),
            encrypted=data.get("encrypted", False),
        )


@dataclass
class Inode:
    """A filesystem node; ``parents`` maps each parent id to the names it is linked under."""

    id: int = 0
    parent: int = 0
    name: str = ""
    parents: dict[int, set[str]] = field(default_factory=dict)
    type: InodeType = InodeType.UNKNOWN
    size: int = 0
    mode: int = 0
    uid: int = 0
    gid: int = 0
    mtime: datetime | None = None
    ctime: datetime | None = None
    link_count: int = 0
    shards: list[ShardRef] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)
    target: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "ID": self.id,
            "Parent": self.parent,
            "Name": self.name,
            "Parents": {
                str(pid): {name: {} for name in sorted(names)}
                for pid, names in self.parents.items()
            },
            "Type": int(self.type),
            "Size": self.size,
            "Mode": self.mode,
            "UID": self.uid,
            "GID": self.gid,
            "MTime": _format_time(self.mtime),
            "CTime": _format_time(self.ctime),
            "LinkCount": self.link_count,
            "Shards": [shard.to_dict() for shard in self.shards] or None,
            "Metadata": dict(self.metadata),
            "Target": self.target,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Inode:
        parents = {
            int(pid): set(names or {})
            for pid, names in (data.get("Parents") or {}).items()
        }
        return cls(
            id=data.get("ID", 0),
            parent=data.get("Parent", 0),
            name=data.get("Name", ""),
            parents=parents,
            type=InodeType(data.get("Type", 0)),
            size=data.get("Size", 0),
            mode=data.get("Mode", 0),
            uid=data.get("UID", 0),
            gid=data.get("GID", 0),
            mtime=_parse_time(data.get("MTime")),
            ctime=_parse_time(data.get("CTime")),
            link_count=data.get("LinkCount", 0),
            shards=[ShardRef.from_dict(s) for s in data.get("Shards") or []],
            metadata=dict(data.get("Metadata") or {}),
            target=data.get("Target", ""),
        )

    def clone(self) -> Inode:
        """Return a copy that shares no mutable state with this inode."""
        return Inode(
            id=self.id,
            parent=self.parent,
            name=self.name,
            parents={pid: set(names) for pid, names in self.parents.items()},
            type=self.type,
            size=self.size,
            mode=self.mode,
            uid=self.uid,
            gid=self.gid,
            mtime=self.mtime,
            ctime=self.ctime,
            link_count=self.link_count,
            shards=[ShardRef(**vars(s)) for s in self.shards],
            metadata=dict(self.metadata),
            target=self.target,
        )


def new_root_inode() -> Inode:
    """Build a fresh root directory inode."""
    now = datetime.now(timezone.utc)
    return Inode(
        id=ROOT_ID,
        parent=0,
        name="/",
        parents={},
        type=InodeType.DIRECTORY,
        mode=0o755,
        uid=0,
        gid=0,
        mtime=now,
        ctime=now,
        link_count=1,
        metadata={},
    )


class Store(abc.ABC):
    """Persists inode metadata and shard reference counts."""

    @abc.abstractmethod
    def root(self) -> Inode: ...

    @abc.abstractmethod
    def get(self, inode_id: int) -> Inode: ...

    @abc.abstractmethod
    def put(self, inode: Inode) -> None: ...

    @abc.abstractmethod
    def delete(self, inode_id: int) -> None: ...

    @abc.abstractmethod
    def children(self, parent: int) -> list[Inode]: ...

    @abc.abstractmethod
    def allocate_id(self) -> int: ...

    @abc.abstractmethod
    def inc_ref(self, shard_id: str, delta: int) -> int: ...

    @abc.abstractmethod
    def decide_gc(self, shard_id: str, refs: int) -> None: ...

    @abc.abstractmethod
    def list_zero_ref(self, limit: int) -> list[str]: ...

    @abc.abstractmethod
    def mark_gc_complete(self, shard_id: str) -> None: ...

    @abc.abstractmethod
    def begin(self) -> Txn: ...


class Txn(Store):
    """A metadata transaction; commits on clean exit of a ``with`` block."""

    @abc.abstractmethod
    def commit(self) -> None: ...

    @abc.abstractmethod
    def rollback(self) -> None: ...

    def __enter__(self) -> Txn:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.commit()
        else:
            self.rollback()