"""
chipnft.db.sqlite — the ledger's SQLite key–value backend.

One table, `kv(k BLOB PRIMARY KEY, v BLOB NOT NULL)`. SQLite compares BLOBs
with memcmp, so key order is byte order and a bucket scan is the half-open
range [prefix, next(prefix)). A prefix made only of 0xFF bytes has no upper
bound; that scan falls back to a `substr` match.

The connection runs in autocommit mode. `SQLiteBatch` wraps its writes in a
`BEGIN IMMEDIATE ... COMMIT` transaction, which is what makes one committed
ledger call land on disk all-or-nothing.

    kv = open_sqlite_kv("ledger.db")
    with kv.batch() as b:
        b.put(b"m:\\x04name", b"Merch")

`":memory:"` opens a private in-process database.
"""

from __future__ import annotations

import os
import sqlite3
from typing import Iterator, Mapping, Optional, Tuple, Union

from chipnft.errors import StorageError

from .kv import KV, Batch

PathLike = Union[str, "os.PathLike[str]"]

DEFAULT_PRAGMAS = {
    "journal_mode": "WAL",
    "synchronous": "NORMAL",
    "temp_store": "MEMORY",
}

_SCHEMA = "CREATE TABLE IF NOT EXISTS kv (k BLOB PRIMARY KEY, v BLOB NOT NULL)"
_UPSERT = "INSERT INTO kv(k, v) VALUES(?, ?) ON CONFLICT(k) DO UPDATE SET v = excluded.v"
_DELETE = "DELETE FROM kv WHERE k = ?"
_SELECT = "SELECT v FROM kv WHERE k = ?"
_SCAN_RANGE = "SELECT k, v FROM kv WHERE k >= ? AND k < ? ORDER BY k"
_SCAN_TAIL = "SELECT k, v FROM kv WHERE substr(k, 1, ?) = ? ORDER BY k"


def _prefix_hi(prefix: bytes) -> Optional[bytes]:
    """
    Exclusive upper bound of the keys starting with `prefix`: drop trailing
    0xFF bytes and increment the last remaining one. None if nothing remains.

        b"ab\\x01" -> b"ab\\x02"      b"a\\xff" -> b"b"      b"\\xff\\xff" -> None
    """
    head = bytes(prefix).rstrip(b"\xff")
    if not head:
        return None
    return head[:-1] + bytes([head[-1] + 1])


class SQLiteBatch(Batch):
    """One write transaction. Not reusable once closed; nesting is an error."""

    __slots__ = ("_conn", "_open")

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._open = False

    def _require_open(self) -> None:
        if not self._open:
            raise RuntimeError("batch not open")

    def __enter__(self) -> "SQLiteBatch":
        if self._open:
            raise RuntimeError("batch already open")
        self._conn.execute("BEGIN IMMEDIATE")
        self._open = True
        return self

    def put(self, key: bytes, value: bytes) -> None:
        self._require_open()
        self._conn.execute(_UPSERT, (bytes(key), bytes(value)))

    def delete(self, key: bytes) -> None:
        self._require_open()
        self._conn.execute(_DELETE, (bytes(key),))

    def commit(self) -> None:
        if self._open:
            self._open = False
            self._conn.execute("COMMIT")

    def rollback(self) -> None:
        if self._open:
            self._open = False
            self._conn.execute("ROLLBACK")

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        return None


class SQLiteKV(KV):
    __slots__ = ("_conn",)

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def _one(self, key: bytes) -> Optional[Tuple]:
        return self._conn.execute(_SELECT, (bytes(key),)).fetchone()

    def get(self, key: bytes) -> Optional[bytes]:
        row = self._one(key)
        return None if row is None else bytes(row[0])

    def has(self, key: bytes) -> bool:
        return self._one(key) is not None

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        prefix = bytes(prefix)
        hi = _prefix_hi(prefix)
        if hi is None:
            cur = self._conn.execute(_SCAN_TAIL, (len(prefix), prefix))
        else:
            cur = self._conn.execute(_SCAN_RANGE, (prefix, hi))
        try:
            for k, v in cur:
                yield bytes(k), bytes(v)
        finally:
            cur.close()

    def put(self, key: bytes, value: bytes) -> None:
        self._conn.execute(_UPSERT, (bytes(key), bytes(value)))

    def delete(self, key: bytes) -> None:
        self._conn.execute(_DELETE, (bytes(key),))

    def batch(self) -> SQLiteBatch:
        return SQLiteBatch(self._conn)

    def close(self) -> None:
        self._conn.close()


def open_sqlite_kv(
    path: PathLike,
    *,
    pragmas: Optional[Mapping[str, str]] = None,
    create: bool = True,
) -> SQLiteKV:
    """
    Open (or create) the store at `path`.

    Raises FileNotFoundError when `create=False` and the file is missing, and
    StorageError when SQLite cannot open or initialize it.
    """
    target = os.fspath(path)
    if target != ":memory:":
        if not create and not os.path.exists(target):
            raise FileNotFoundError(f"SQLite KV not found at {target}")
        parent = os.path.dirname(target)
        if parent:
            os.makedirs(parent, exist_ok=True)

    settings = {**DEFAULT_PRAGMAS, **(pragmas or {})}
    try:
        conn = sqlite3.connect(target, isolation_level=None, check_same_thread=False)
        for name, value in settings.items():
            conn.execute(f"PRAGMA {name}={value}")
        conn.execute(_SCHEMA)
    except sqlite3.Error as e:
        raise StorageError(f"cannot open SQLite KV at {target}: {e}") from e
    return SQLiteKV(conn)


__all__ = ["SQLiteKV", "SQLiteBatch", "open_sqlite_kv", "DEFAULT_PRAGMAS"]
