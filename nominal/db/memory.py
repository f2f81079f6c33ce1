from __future__ import annotations

"""
In-memory KV backend for tests and ephemeral registries.

Implements the `KV` / `Batch` protocols from `nominal.db.kv`. Batches buffer
writes and apply them under the store lock on commit, so readers never see a
half-applied batch.
"""

import threading
from typing import Dict, Iterator, List, Optional, Tuple

from .kv import KV, Batch


class MemoryBatch(Batch):
    __slots__ = ("_kv", "_ops", "_open")

    def __init__(self, kv: "MemoryKV") -> None:
        self._kv = kv
        self._ops: List[Tuple[bytes, Optional[bytes]]] = []
        self._open = False

    def __enter__(self) -> "MemoryBatch":
        if self._open:
            raise RuntimeError("batch already open (nested batches not supported)")
        self._open = True
        return self

    def put(self, key: bytes, value: bytes) -> None:
        if not self._open:
            raise RuntimeError("batch not open")
        self._ops.append((bytes(key), bytes(value)))

    def delete(self, key: bytes) -> None:
        if not self._open:
            raise RuntimeError("batch not open")
        self._ops.append((bytes(key), None))

    def commit(self) -> None:
        if not self._open:
            return
        self._kv._apply(self._ops)
        self._ops = []
        self._open = False

    def rollback(self) -> None:
        self._ops = []
        self._open = False

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        return None


class MemoryKV(KV):
    """Dict-backed KV; prefix scans sort keys on demand."""

    def __init__(self) -> None:
        self._m: Dict[bytes, bytes] = {}
        self._lock = threading.RLock()

    def get(self, key: bytes) -> Optional[bytes]:
        with self._lock:
            return self._m.get(key)

    def has(self, key: bytes) -> bool:
        with self._lock:
            return key in self._m

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        with self._lock:
            items = sorted((k, v) for k, v in self._m.items() if k.startswith(prefix))
        yield from items

    def close(self) -> None:
        pass

    def put(self, key: bytes, value: bytes) -> None:
        with self._lock:
            self._m[bytes(key)] = bytes(value)

    def delete(self, key: bytes) -> None:
        with self._lock:
            self._m.pop(key, None)

    def batch(self) -> Batch:
        return MemoryBatch(self)

    def _apply(self, ops: List[Tuple[bytes, Optional[bytes]]]) -> None:
        with self._lock:
            for k, v in ops:
                if v is None:
                    self._m.pop(k, None)
                else:
                    self._m[k] = v

    def __len__(self) -> int:
        with self._lock:
            return len(self._m)


__all__ = ["MemoryKV", "MemoryBatch"]
