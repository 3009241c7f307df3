"""Inode metadata types and stores, shard reference tracking and migration to SQLite."""

__all__ = ["types", "mem_store", "filestore", "reftracker", "sqlite_store", "migrate"]