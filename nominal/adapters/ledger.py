from __future__ import annotations

"""
Reference payment gateway: a multi-asset balance ledger kept in a KV.

Balances live under the LEDGER prefix keyed by (identity, asset) as CBOR ints.

Standalone (`Ledger(kv)`) every transfer is one atomic KV batch, so a leg
either happens completely or not at all, and is visible as soon as it returns.

Attached to a registry store (`Ledger(store.kv, store=store)`, the wiring used
by `RegistrationService.from_config`) the ledger reads and writes through the
store's transaction. A transfer made while the calling thread has a registry
transaction open is staged in that overlay and reported with `staged=True`:
it commits in the same batch as the record, and is discarded with it. Other
threads only ever see committed balances. Transfers outside a registry
transaction open their own and serialize with registry writers.

Fee-on-transfer assets can be simulated with `skim_bps={asset: bps}`. Such a
transfer would deliver less than requested, so the ledger refuses it and
reports failure instead of silently understating the amount.
"""

import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Dict, Iterator, Mapping, Optional, Tuple

import cbor2

from ..db.kv import KV, LEDGER
from ..fees import BPS_DENOMINATOR, check_bps
from . import TransferResult

if TYPE_CHECKING:
    from ..store import RegistryStore


class Ledger:
    def __init__(
        self,
        kv: KV,
        *,
        store: Optional["RegistryStore"] = None,
        skim_bps: Optional[Mapping[str, int]] = None,
    ) -> None:
        if store is not None and store.kv is not kv:
            raise ValueError("an attached ledger must share the store's KV")
        self._kv = kv
        self._store = store
        self._lock = threading.RLock()
        self._skim: Dict[str, int] = {a: check_bps(b) for a, b in (skim_bps or {}).items()}

    def _reader(self):
        return self._store.view() if self._store is not None else self._kv

    @contextmanager
    def _writer(self) -> Iterator[Tuple[object, bool]]:
        """Yield (write target, staged-in-caller's-transaction)."""
        if self._store is None:
            with self._lock, self._kv.batch() as b:
                yield b, False
            return
        staged = self._store.current() is not None
        with self._store.transaction() as txn:
            yield txn, staged

    def balance(self, identity: str, asset: str) -> int:
        raw = self._reader().get(LEDGER.key(identity, asset))
        return 0 if raw is None else int(cbor2.loads(raw))

    def mint(self, identity: str, asset: str, amount: int) -> int:
        """Credit `amount` out of thin air (faucet / test funding). Returns the new balance."""
        if amount < 0:
            raise ValueError("mint amount must be non-negative")
        with self._writer() as (w, _):
            bal = self.balance(identity, asset) + amount
            w.put(LEDGER.key(identity, asset), cbor2.dumps(bal, canonical=True))
            return bal

    def set_skim(self, asset: str, bps: int) -> None:
        with self._lock:
            if bps:
                self._skim[asset] = check_bps(bps)
            else:
                self._skim.pop(asset, None)

    def transfer(self, src: str, dst: str, asset: str, amount: int) -> TransferResult:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            return TransferResult(ok=False, reason="invalid_amount")
        if amount == 0:
            return TransferResult(ok=True, moved=0)
        if not src or not dst:
            return TransferResult(ok=False, reason="null_identity")

        with self._writer() as (w, staged):
            skim = (amount * self._skim.get(asset, 0)) // BPS_DENOMINATOR
            if skim:
                return TransferResult(ok=False, moved=amount - skim, reason="amount_mismatch")

            have = self.balance(src, asset)
            if have < amount:
                return TransferResult(ok=False, reason="insufficient_funds")
            if src == dst:
                return TransferResult(ok=True, moved=amount, staged=staged)

            dst_bal = self.balance(dst, asset)
            w.put(LEDGER.key(src, asset), cbor2.dumps(have - amount, canonical=True))
            w.put(LEDGER.key(dst, asset), cbor2.dumps(dst_bal + amount, canonical=True))
            return TransferResult(ok=True, moved=amount, staged=staged)


__all__ = ["Ledger"]
