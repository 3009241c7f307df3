from datetime import datetime, timezone

import pytest

from xgfs.meta.types import (
    ROOT_ID,
    Inode,
    InodeType,
    NotFoundError,
    FsError,
    ShardRef,
    new_root_inode,
)


def _sample_inode():
    return Inode(
        id=7,
        parent=ROOT_ID,
        name="foo.txt",
        parents={ROOT_ID: {"foo.txt", "alias"}},
        type=InodeType.FILE,
        size=11,
        mode=0o644,
        uid=1000,
        gid=1000,
        mtime=datetime(2024, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc),
        ctime=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        link_count=2,
        shards=[ShardRef(shard_id="s-1", size=5, stored_size=21, encryption="aes")],
        metadata={"k": "v"},
    )


def test_root_inode_defaults():
    root = new_root_inode()
    assert root.id == ROOT_ID
    assert root.name == "/"
    assert root.type is InodeType.DIRECTORY
    assert root.mode == 0o755
    assert root.link_count == 1
    assert root.parents == {}


def test_inode_round_trip():
    inode = _sample_inode()
    restored = Inode.from_dict(inode.to_dict())
    assert restored == inode


def test_inode_dict_uses_string_parent_keys():
    data = _sample_inode().to_dict()
    assert data["Parents"] == {"1": {"alias": {}, "foo.txt": {}}}
    assert data["Type"] == int(InodeType.FILE)


def test_zero_time_round_trip():
    inode = Inode(id=3)
    data = inode.to_dict()
    assert data["MTime"] == "0001-01-01T00:00:00Z"
    assert Inode.from_dict(data).mtime is None


def test_parse_nanosecond_fraction():
    data = Inode(id=3).to_dict()
    data["MTime"] = "2024-05-06T07:08:09.123456789Z"
    parsed = Inode.from_dict(data).mtime
    assert parsed == datetime(2024, 5, 6, 7, 8, 9, 123456, tzinfo=timezone.utc)


def test_shard_ref_omits_empty_optional_fields():
    data = ShardRef(shard_id="s-1", size=5).to_dict()
    assert "stored_size" not in data
    assert "encryption" not in data
    assert "encrypted" not in data
    assert ShardRef.from_dict(data) == ShardRef(shard_id="s-1", size=5)


def test_shard_ref_round_trip_with_options():
    ref = ShardRef(shard_id="x", size=4, stored_size=20, encryption="aes", encrypted=True)
    assert ShardRef.from_dict(ref.to_dict()) == ref


def test_clone_is_independent():
    inode = _sample_inode()
    copy = inode.clone()
    copy.parents[ROOT_ID].add("other")
    copy.metadata["k"] = "changed"
    copy.shards[0].size = 99
    assert "other" not in inode.parents[ROOT_ID]
    assert inode.metadata["k"] == "v"
    assert inode.shards[0].size == 5


def test_not_found_is_caught_as_fs_error():
    err = NotFoundError("missing")
    with pytest.raises(FsError) as caught:
        raise err
    assert caught.value is err
    assert str(caught.value) == "missing"
    assert issubclass(NotFoundError, FsError)