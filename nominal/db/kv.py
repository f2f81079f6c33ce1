from __future__ import annotations

"""
KV interface & registry key layout
==================================

Backend-agnostic Key–Value interface used by the registry store, plus the
canonical key prefixes for its logical tables:

- RECORDS   (b"r:") : name            → Record
- CONFIG    (b"c:") : b"registry"     → RegistryConfig
- ASSETFEES (b"f:") : asset           → AssetFeeConfig
- NONCES    (b"n:") : name            → u64 nonce
- RELAYERS  (b"a:") : identity        → b"\x01"
- PRIMARY   (b"p:") : identity        → name
- KEYS      (b"k:") : identity, pubkey → b"\x01"
- LEDGER    (b"l:") : identity, asset → balance (reference payment ledger)

Composite keys are `prefix + Σ(uvarint(len(part)) | part)` so parts never need
delimiter escaping and prefix scans stay unambiguous.

Batching
--------
`KV.batch()` returns a context manager. Leaving it without an exception commits
atomically; an escaping exception rolls everything back.

>>> with kv.batch() as b:
...     b.put(RECORDS.key("alice"), blob)
...     b.delete(NONCES.key("alice"))
"""

from typing import (Iterable, Iterator, Optional, Protocol, Tuple, Union,
                    runtime_checkable)

NS_SEP = b":"


class Prefix:
    """
    A logical namespace prefix (e.g. b"r:" for records).

    .raw gives the raw prefix bytes; .key(*parts) builds a composite key.
    """

    __slots__ = ("_raw",)

    def __init__(self, ns: Union[bytes, str]) -> None:
        ns_b = ns.encode("ascii") if isinstance(ns, str) else bytes(ns)
        if len(ns_b) == 0:
            raise ValueError("namespace must be non-empty")
        self._raw = ns_b.rstrip(NS_SEP) + NS_SEP

    @property
    def raw(self) -> bytes:
        return self._raw

    def key(self, *parts: Union[bytes, str, int]) -> bytes:
        out = bytearray(self._raw)
        for p in parts:
            pb = _part_to_bytes(p)
            out.extend(uvarint(len(pb)))
            out.extend(pb)
        return bytes(out)

    def scan_prefix(self, *parts: Union[bytes, str, int]) -> bytes:
        """Prefix matching every key whose leading parts equal `parts`."""
        return self.key(*parts)


def _part_to_bytes(p: Union[bytes, str, int]) -> bytes:
    if isinstance(p, (bytes, bytearray, memoryview)):
        return bytes(p)
    if isinstance(p, str):
        return p.encode("utf-8")
    if isinstance(p, int):
        if p < 0:
            raise ValueError("negative ints not supported in key parts")
        return be_u64(p)
    raise TypeError(f"unsupported key part type: {type(p)!r}")


def uvarint(n: int) -> bytes:
    """LEB128 unsigned varint."""
    if n < 0:
        raise ValueError("length must be non-negative")
    out = bytearray()
    while True:
        b = n & 0x7F
        n >>= 7
        if n:
            out.append(0x80 | b)
        else:
            out.append(b)
            break
    return bytes(out)


def split_key(prefix: Prefix, key: bytes) -> Tuple[bytes, ...]:
    """Inverse of `Prefix.key`: return the raw parts of `key`."""
    if not key.startswith(prefix.raw):
        raise ValueError("key does not belong to prefix")
    i = len(prefix.raw)
    parts = []
    while i < len(key):
        n = 0
        shift = 0
        while True:
            b = key[i]
            i += 1
            n |= (b & 0x7F) << shift
            if not b & 0x80:
                break
            shift += 7
        parts.append(key[i:i + n])
        i += n
    return tuple(parts)


def be_u64(n: int) -> bytes:
    if not (0 <= n < (1 << 64)):
        raise ValueError("be_u64 out of range")
    return n.to_bytes(8, "big")


def be_u128(n: int) -> bytes:
    if not (0 <= n < (1 << 128)):
        raise ValueError("be_u128 out of range")
    return n.to_bytes(16, "big")


RECORDS = Prefix(b"r")
CONFIG = Prefix(b"c")
ASSETFEES = Prefix(b"f")
NONCES = Prefix(b"n")
RELAYERS = Prefix(b"a")
PRIMARY = Prefix(b"p")
KEYS = Prefix(b"k")
LEDGER = Prefix(b"l")


# ---------------------------------------------------------------------------
# KV protocols & Batch
# ---------------------------------------------------------------------------


@runtime_checkable
class ReadOnlyKV(Protocol):
    def get(self, key: bytes) -> Optional[bytes]:
        """Fetch value or None if missing."""
        ...

    def has(self, key: bytes) -> bool:
        ...

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        """(key, value) pairs whose key starts with `prefix`, in byte order."""
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class Batch(Protocol):
    """
    A write-batch context manager. Atomic on clean exit; rolled back if an
    exception escapes.
    """

    def put(self, key: bytes, value: bytes) -> None: ...
    def delete(self, key: bytes) -> None: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...

    def __enter__(self) -> "Batch": ...
    def __exit__(self, exc_type, exc, tb) -> Optional[bool]: ...


@runtime_checkable
class KV(ReadOnlyKV, Protocol):
    def put(self, key: bytes, value: bytes) -> None:
        ...

    def delete(self, key: bytes) -> None:
        """Remove key if present (idempotent)."""
        ...

    def batch(self) -> Batch:
        ...


def put_many(kv: KV, items: Iterable[Tuple[bytes, bytes]]) -> None:
    with kv.batch() as b:
        for k, v in items:
            b.put(k, v)


__all__ = [
    "ReadOnlyKV",
    "KV",
    "Batch",
    "Prefix",
    "split_key",
    "put_many",
    "uvarint",
    "be_u64",
    "be_u128",
    "RECORDS",
    "CONFIG",
    "ASSETFEES",
    "NONCES",
    "RELAYERS",
    "PRIMARY",
    "KEYS",
    "LEDGER",
]
