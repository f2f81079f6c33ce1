from __future__ import annotations

"""
nominal.db
==========

Backend selection for the registry's persistent store.

URIs
----
- "memory://"                 → process-local dict backend
- "sqlite:///path/to/reg.db"  → SQLite file
- "sqlite:///:memory:"        → in-memory SQLite
- bare path ending in ".db"   → SQLite file

>>> kv = open_kv("memory://")
>>> with kv.batch() as b:
...     b.put(b"r:alice", b"...")
"""

from typing import Tuple

from .kv import KV, Batch, Prefix, ReadOnlyKV
from .memory import MemoryKV
from .sqlite import SQLiteKV, open_sqlite_kv


def _parse_uri(uri: str) -> Tuple[str, str]:
    u = uri.strip()
    if u.startswith("memory://"):
        return ("memory", "")
    if u.startswith("sqlite:///"):
        return ("sqlite", u[len("sqlite:///"):])
    if u.endswith(".db"):
        return ("sqlite", u)
    raise ValueError(f"Unsupported DB URI: {uri!r}")


def open_kv(uri: str, create: bool = True) -> KV:
    """Open a KV store by URI (see module docstring)."""
    backend, spec = _parse_uri(uri)
    if backend == "memory":
        return MemoryKV()
    # sqlite:///relative.db and sqlite:////abs/path.db
    return open_sqlite_kv(spec or ":memory:", create=create)


__all__ = [
    "KV",
    "ReadOnlyKV",
    "Batch",
    "Prefix",
    "MemoryKV",
    "SQLiteKV",
    "open_kv",
    "open_sqlite_kv",
]
