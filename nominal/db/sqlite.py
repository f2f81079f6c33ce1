from __future__ import annotations

"""
SQLite-backed KV store
======================

A small embedded KV using SQLite (BLOB keys & values), implementing the
`KV` / `ReadOnlyKV` / `Batch` protocols from `nominal.db.kv`.

- Table schema: kv(k BLOB PRIMARY KEY, v BLOB NOT NULL)
- Ordering is lexicographic (memcmp), so prefix scans use a bounded range
  [prefix, prefix_hi) plus a `substr` guard.
- Batches run inside one `BEGIN IMMEDIATE` transaction.

Threading: one connection shared across threads (`check_same_thread=False`),
guarded by a re-entrant lock that an open batch holds until it ends.
"""

import os
import sqlite3
import threading
from typing import Iterator, Optional, Tuple, Union

from .kv import KV, Batch

DEFAULT_PRAGMAS = {
    "journal_mode": "WAL",
    "synchronous": "NORMAL",
    "temp_store": "MEMORY",
    "foreign_keys": "OFF",
}


def _apply_pragmas(conn: sqlite3.Connection, pragmas: Optional[dict] = None) -> None:
    p = dict(DEFAULT_PRAGMAS)
    if pragmas:
        p.update(pragmas)
    cur = conn.cursor()
    cur.execute("PRAGMA journal_mode=%s" % p["journal_mode"])
    cur.execute("PRAGMA synchronous=%s" % p["synchronous"])
    cur.execute("PRAGMA temp_store=%s" % p["temp_store"])
    cur.execute("PRAGMA foreign_keys=%s" % p["foreign_keys"])
    cur.close()


def _migrate(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS kv (
            k BLOB PRIMARY KEY,
            v BLOB NOT NULL
        )
        """
    )


def _prefix_hi(prefix: bytes) -> Optional[bytes]:
    """
    Smallest byte string strictly greater than every key starting with
    `prefix`, or None when no such bound exists (prefix all 0xFF).

    b"ab\\x01" -> b"ab\\x02"; b"\\xff\\xff" -> None
    """
    if not prefix:
        return None
    p = bytearray(prefix)
    for i in range(len(p) - 1, -1, -1):
        if p[i] != 0xFF:
            p[i] += 1
            del p[i + 1:]
            return bytes(p)
    return None


class SQLiteBatch(Batch):
    __slots__ = ("_conn", "_lock", "_open")

    def __init__(self, conn: sqlite3.Connection, lock: threading.RLock) -> None:
        self._conn = conn
        self._lock = lock
        self._open = False

    def __enter__(self) -> "SQLiteBatch":
        if self._open:
            raise RuntimeError("batch already open (nested batches not supported)")
        self._lock.acquire()
        try:
            self._conn.execute("BEGIN IMMEDIATE")
        except BaseException:
            self._lock.release()
            raise
        self._open = True
        return self

    def put(self, key: bytes, value: bytes) -> None:
        if not self._open:
            raise RuntimeError("batch not open")
        self._conn.execute(
            "INSERT INTO kv(k, v) VALUES(?, ?) ON CONFLICT(k) DO UPDATE SET v=excluded.v",
            (memoryview(key), memoryview(value)),
        )

    def delete(self, key: bytes) -> None:
        if not self._open:
            raise RuntimeError("batch not open")
        self._conn.execute("DELETE FROM kv WHERE k = ?", (memoryview(key),))

    def commit(self) -> None:
        if not self._open:
            return
        self._conn.execute("COMMIT")
        self._open = False

    def rollback(self) -> None:
        if not self._open:
            return
        self._conn.execute("ROLLBACK")
        self._open = False

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        try:
            if exc_type is None:
                try:
                    self.commit()
                except BaseException:
                    self.rollback()
                    raise
            else:
                self.rollback()
        finally:
            self._open = False
            self._lock.release()
        return None


def _open_connection(path: Union[str, "os.PathLike[str]"], *, create: bool = True,
                     pragmas: Optional[dict] = None) -> sqlite3.Connection:
    path_str = str(path)
    if path_str != ":memory:" and not create and not os.path.exists(path_str):
        raise FileNotFoundError(f"SQLite KV not found at {path_str}")
    if path_str != ":memory:":
        parent = os.path.dirname(os.path.abspath(path_str))
        os.makedirs(parent, exist_ok=True)

    conn = sqlite3.connect(
        path_str,
        detect_types=0,
        isolation_level=None,      # autocommit; batches BEGIN explicitly
        check_same_thread=False,
    )
    if path_str == ":memory:":
        pragmas = dict(pragmas or {}, journal_mode="MEMORY")
    _apply_pragmas(conn, pragmas)
    _migrate(conn)
    return conn


class SQLiteKV(KV):
    """SQLite-backed KV. Use `open_sqlite_kv(path)` to construct."""

    __slots__ = ("_conn", "_lock")

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._lock = threading.RLock()

    def get(self, key: bytes) -> Optional[bytes]:
        with self._lock:
            row = self._conn.execute("SELECT v FROM kv WHERE k = ?", (memoryview(key),)).fetchone()
        return bytes(row[0]) if row is not None else None

    def has(self, key: bytes) -> bool:
        with self._lock:
            row = self._conn.execute("SELECT 1 FROM kv WHERE k = ? LIMIT 1", (memoryview(key),)).fetchone()
        return row is not None

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        hi = _prefix_hi(prefix)
        if hi is not None:
            sql = (
                "SELECT k, v FROM kv "
                "WHERE k >= ? AND k < ? AND substr(k,1,?) = ? "
                "ORDER BY k"
            )
            args = (memoryview(prefix), memoryview(hi), len(prefix), memoryview(prefix))
        else:
            sql = "SELECT k, v FROM kv WHERE substr(k,1,?) = ? ORDER BY k"
            args = (len(prefix), memoryview(prefix))
        # Materialize so callers may write while iterating.
        with self._lock:
            rows = self._conn.execute(sql, args).fetchall()
        for k, v in rows:
            yield bytes(k), bytes(v)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def put(self, key: bytes, value: bytes) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT INTO kv(k, v) VALUES(?, ?) ON CONFLICT(k) DO UPDATE SET v=excluded.v",
                (memoryview(key), memoryview(value)),
            )

    def delete(self, key: bytes) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM kv WHERE k = ?", (memoryview(key),))

    def batch(self) -> Batch:
        return SQLiteBatch(self._conn, self._lock)


def open_sqlite_kv(path: Union[str, "os.PathLike[str]"], *, create: bool = True,
                   pragmas: Optional[dict] = None) -> SQLiteKV:
    return SQLiteKV(_open_connection(path, create=create, pragmas=pragmas))


__all__ = ["SQLiteKV", "SQLiteBatch", "open_sqlite_kv"]
