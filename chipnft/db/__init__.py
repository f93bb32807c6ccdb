"""
chipnft.db — open the ledger's key–value store from a URI.

    sqlite:///path/to/ledger.db    SQLite file (absolute path: sqlite:////abs/ledger.db)
    sqlite:///:memory:             private in-memory database
    memory://                      same as sqlite:///:memory:
    ledger.db                      bare path, SQLite file

>>> kv = open_kv("memory://")
>>> with kv.batch() as b:
...     b.put(b"m:key", b"hello")
>>> kv.get(b"m:key")
b'hello'
"""

from __future__ import annotations

from typing import Tuple

from . import sqlite as _sqlite_backend
from .kv import KV, Batch, Prefix, ReadOnlyKV, be_u32, be_u64, decode_be

_SQLITE = "sqlite:///"
_MEMORY = "memory://"


def _parse_uri(uri: str) -> Tuple[str, str]:
    """Split `uri` into (backend, path); backend is "sqlite" or "memory"."""
    text = uri.strip()
    if text.startswith(_MEMORY):
        return "memory", ""
    if text.startswith(_SQLITE):
        return "sqlite", text[len(_SQLITE):]
    if "://" in text:
        raise ValueError(f"unsupported KV uri scheme: {uri!r}")
    return "sqlite", text or ":memory:"


def open_kv(uri: str, create: bool = True) -> KV:
    """
    Raises ValueError for an unknown scheme, FileNotFoundError when
    `create=False` and the file is missing, StorageError when SQLite refuses it.
    """
    backend, path = _parse_uri(uri)
    if backend == "memory" or not path:
        return _sqlite_backend.open_sqlite_kv(":memory:")
    return _sqlite_backend.open_sqlite_kv(path, create=create)


__all__ = ["KV", "ReadOnlyKV", "Batch", "Prefix", "be_u32", "be_u64", "decode_be", "open_kv"]
