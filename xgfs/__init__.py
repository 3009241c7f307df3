"""Inode metadata stores, content sharding, WSGI middleware and mount helpers."""

__version__ = "0.1.0"