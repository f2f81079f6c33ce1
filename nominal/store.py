from __future__ import annotations

"""
Registry store
==============

Typed access to the registry's logical tables on top of a byte `KV`:

- records        name → Record
- config         singleton RegistryConfig
- asset fees     asset → AssetFeeConfig
- nonces         name → int (implicit 0)
- relayers       allowlisted relayer identities
- primary index  identity → name (see `nominal.primary`)
- keys           (identity, public key) pairs authorized to sign for identity

Values are CBOR (canonical mode) so the on-disk bytes are deterministic.

Transactions
------------
Every mutation runs inside `store.transaction()`. A transaction stages writes
in an overlay (reads see staged values first), collects the events the
operation produces, and on clean exit commits the overlay through a single
`kv.batch()`. An exception discards the overlay and the events; the backend is
untouched.

The store lock is re-entrant and the active transaction is thread-local, so a
store method called while the same thread already holds a transaction simply
joins it. Different threads serialize on the lock (single writer).

    with store.transaction() as txn:
        store.register("alice", "alice.id", now=1_700_000_000)
        ...
    events = txn.events  # committed
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple, Union

import cbor2

from .db.kv import (ASSETFEES, CONFIG, KEYS, KV, NONCES, RECORDS, RELAYERS,
                    ReadOnlyKV, split_key)
from .errors import (AssetNotAllowed, NameNotFound, NameTaken, NotInitialized,
                     Unauthorized, WrongFee, ZeroTreasury)
from .events import (AdminTransferAccepted, AdminTransferInitiated,
                     AssetFeeSet, Event, KeyAuthorized, KeyRevoked,
                     NameTransferred, ReferrerBpsSet, RegistrationFeeSet,
                     RegistryInitialized, RelayerAdded,
                     RelayerAllowlistToggled, RelayerRemoved, ResolvedUpdated,
                     TreasurySet)
from .fees import check_bps
from .names import validate
from .primary import PrimaryNameIndex
from .types import NULL_IDENTITY, AssetFeeConfig, Record, RegistryConfig

_CONFIG_KEY = CONFIG.key("registry")
_PRESENT = True


def _enc(obj) -> bytes:
    return cbor2.dumps(obj, canonical=True)


def _dec(raw: bytes):
    return cbor2.loads(raw)


def _check_amount(amount, *, asset: Optional[str] = None) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise WrongFee(provided=amount, asset=asset, message="fee must be a non-negative int amount")
    return amount


# ---------------------------------------------------------------------------
# Transaction overlay
# ---------------------------------------------------------------------------


class Transaction:
    """Write overlay over a KV plus the events staged by the running operation."""

    def __init__(self, kv: KV) -> None:
        self._kv = kv
        self._writes: Dict[bytes, Optional[bytes]] = {}
        self.events: List[Event] = []
        self.committed = False

    # reads

    def get(self, key: bytes) -> Optional[bytes]:
        if key in self._writes:
            return self._writes[key]
        return self._kv.get(key)

    def has(self, key: bytes) -> bool:
        return self.get(key) is not None

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        merged = dict(self._kv.iter_prefix(prefix))
        for k, v in self._writes.items():
            if not k.startswith(prefix):
                continue
            if v is None:
                merged.pop(k, None)
            else:
                merged[k] = v
        for k in sorted(merged):
            yield k, merged[k]

    # writes

    def put(self, key: bytes, value: bytes) -> None:
        self._writes[bytes(key)] = bytes(value)

    def delete(self, key: bytes) -> None:
        self._writes[bytes(key)] = None

    def emit(self, event: Event) -> None:
        self.events.append(event)

    @property
    def pending_writes(self) -> int:
        return len(self._writes)

    def commit(self) -> None:
        if self._writes:
            with self._kv.batch() as b:
                for k, v in self._writes.items():
                    if v is None:
                        b.delete(k)
                    else:
                        b.put(k, v)
        self._writes = {}
        self.committed = True

    def discard(self) -> None:
        self._writes = {}
        self.events = []


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class RegistryStore:
    def __init__(self, kv: KV, *, native_asset: str = "native") -> None:
        if not native_asset:
            raise ValueError("native_asset must be non-empty")
        self.kv = kv
        self.native_asset = native_asset
        self._lock = threading.RLock()
        self._local = threading.local()
        self.primary = PrimaryNameIndex(self)

    # -- transactions --------------------------------------------------------

    def current(self) -> Optional[Transaction]:
        return getattr(self._local, "txn", None)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        outer = self.current()
        if outer is not None:
            yield outer
            return
        with self._lock:
            txn = Transaction(self.kv)
            self._local.txn = txn
            try:
                yield txn
            except BaseException:
                txn.discard()
                raise
            else:
                txn.commit()
            finally:
                self._local.txn = None

    def view(self) -> Union[Transaction, ReadOnlyKV]:
        """The active transaction (so staged writes are visible), else the backend."""
        return self.current() or self.kv

    def _get(self, key: bytes):
        raw = self.view().get(key)
        return None if raw is None else _dec(raw)

    def close(self) -> None:
        self.kv.close()

    # -- config --------------------------------------------------------------

    def get_config(self) -> Optional[RegistryConfig]:
        d = self._get(_CONFIG_KEY)
        return None if d is None else RegistryConfig.from_dict(d)

    def is_initialized(self) -> bool:
        return self.view().has(_CONFIG_KEY)

    def require_config(self) -> RegistryConfig:
        cfg = self.get_config()
        if cfg is None:
            raise NotInitialized()
        return cfg

    def _require_admin(self, caller: str) -> RegistryConfig:
        cfg = self.require_config()
        if caller != cfg.admin:
            raise Unauthorized(caller=caller, required=cfg.admin, message="caller is not the admin")
        return cfg

    def _put_config(self, txn: Transaction, cfg: RegistryConfig) -> None:
        txn.put(_CONFIG_KEY, _enc(cfg.to_dict()))

    def initialize(
        self,
        caller: str,
        *,
        treasury: str,
        registration_fee: int,
        referrer_bps: int,
        require_allowlisted_relayer: bool = False,
    ) -> RegistryConfig:
        """Create the config singleton with `caller` as admin. Only once."""
        with self.transaction() as txn:
            existing = self.get_config()
            if existing is not None:
                raise Unauthorized(caller=caller, message="registry already initialized")
            if not caller:
                raise Unauthorized(caller=caller, message="admin must be a non-null identity")
            if treasury == NULL_IDENTITY:
                raise ZeroTreasury()
            check_bps(referrer_bps)
            _check_amount(registration_fee, asset=self.native_asset)

            cfg = RegistryConfig(
                admin=caller,
                treasury=treasury,
                registration_fee=registration_fee,
                referrer_bps=referrer_bps,
                require_allowlisted_relayer=bool(require_allowlisted_relayer),
            )
            self._put_config(txn, cfg)
            txn.emit(RegistryInitialized(caller, treasury, registration_fee, referrer_bps))
            return cfg

    def set_fee(self, caller: str, fee: int) -> RegistryConfig:
        with self.transaction() as txn:
            cfg = self._require_admin(caller)
            _check_amount(fee, asset=self.native_asset)
            cfg = cfg.update(registration_fee=fee)
            self._put_config(txn, cfg)
            txn.emit(RegistrationFeeSet(fee))
            return cfg

    def set_treasury(self, caller: str, treasury: str) -> RegistryConfig:
        with self.transaction() as txn:
            cfg = self._require_admin(caller)
            if treasury == NULL_IDENTITY:
                raise ZeroTreasury()
            cfg = cfg.update(treasury=treasury)
            self._put_config(txn, cfg)
            txn.emit(TreasurySet(treasury))
            return cfg

    def set_referrer_bps(self, caller: str, bps: int) -> RegistryConfig:
        with self.transaction() as txn:
            cfg = self._require_admin(caller)
            check_bps(bps)
            cfg = cfg.update(referrer_bps=bps)
            self._put_config(txn, cfg)
            txn.emit(ReferrerBpsSet(bps))
            return cfg

    def set_require_allowlisted_relayer(self, caller: str, required: bool) -> RegistryConfig:
        with self.transaction() as txn:
            cfg = self._require_admin(caller)
            cfg = cfg.update(require_allowlisted_relayer=bool(required))
            self._put_config(txn, cfg)
            txn.emit(RelayerAllowlistToggled(bool(required)))
            return cfg

    def transfer_admin(self, caller: str, candidate: str) -> RegistryConfig:
        with self.transaction() as txn:
            cfg = self._require_admin(caller)
            if not candidate:
                raise Unauthorized(caller=caller, message="pending admin must be a non-null identity")
            cfg = cfg.update(pending_admin=candidate)
            self._put_config(txn, cfg)
            txn.emit(AdminTransferInitiated(cfg.admin, candidate))
            return cfg

    def accept_admin(self, caller: str) -> RegistryConfig:
        with self.transaction() as txn:
            cfg = self.require_config()
            if cfg.pending_admin is None or caller != cfg.pending_admin:
                raise Unauthorized(caller=caller, required=cfg.pending_admin,
                                   message="caller is not the pending admin")
            previous = cfg.admin
            cfg = cfg.update(admin=caller, pending_admin=None)
            self._put_config(txn, cfg)
            txn.emit(AdminTransferAccepted(previous, caller))
            return cfg

    # -- asset fees ----------------------------------------------------------

    def get_asset_fee(self, asset: str) -> Optional[AssetFeeConfig]:
        d = self._get(ASSETFEES.key(asset))
        return None if d is None else AssetFeeConfig.from_dict(d)

    def list_asset_fees(self) -> List[AssetFeeConfig]:
        return [AssetFeeConfig.from_dict(_dec(v)) for _, v in self.view().iter_prefix(ASSETFEES.raw)]

    def set_asset_fee(self, caller: str, asset: str, amount: int, enabled: bool = True) -> AssetFeeConfig:
        with self.transaction() as txn:
            self._require_admin(caller)
            if not asset or asset == self.native_asset:
                raise AssetNotAllowed(asset, message="native asset fee is set with set_fee")
            _check_amount(amount, asset=asset)
            afc = AssetFeeConfig(asset=asset, amount=amount, enabled=bool(enabled))
            txn.put(ASSETFEES.key(asset), _enc(afc.to_dict()))
            txn.emit(AssetFeeSet(asset, amount, bool(enabled)))
            return afc

    def fee_for(self, asset: str) -> int:
        """Registration fee in `asset`; raises AssetNotAllowed if it is not accepted."""
        if asset == self.native_asset:
            return self.require_config().registration_fee
        afc = self.get_asset_fee(asset)
        if afc is None or not afc.enabled:
            raise AssetNotAllowed(asset)
        return afc.amount

    # -- relayers ------------------------------------------------------------

    def is_relayer_allowed(self, relayer: str) -> bool:
        return self.view().has(RELAYERS.key(relayer))

    def list_relayers(self) -> List[str]:
        return [split_key(RELAYERS, k)[0].decode("utf-8") for k, _ in self.view().iter_prefix(RELAYERS.raw)]

    def add_relayer(self, caller: str, relayer: str) -> None:
        with self.transaction() as txn:
            self._require_admin(caller)
            if not relayer:
                raise Unauthorized(caller=caller, message="relayer must be a non-null identity")
            if not self.is_relayer_allowed(relayer):
                txn.put(RELAYERS.key(relayer), _enc(_PRESENT))
                txn.emit(RelayerAdded(relayer))

    def remove_relayer(self, caller: str, relayer: str) -> None:
        with self.transaction() as txn:
            self._require_admin(caller)
            if self.is_relayer_allowed(relayer):
                txn.delete(RELAYERS.key(relayer))
                txn.emit(RelayerRemoved(relayer))

    # -- nonces --------------------------------------------------------------

    def get_nonce(self, name: str) -> int:
        n = self._get(NONCES.key(name))
        return 0 if n is None else int(n)

    def bump_nonce(self, name: str) -> int:
        """Increment the name's nonce inside the current transaction; returns the new value."""
        with self.transaction() as txn:
            nxt = self.get_nonce(name) + 1
            txn.put(NONCES.key(name), _enc(nxt))
            return nxt

    # -- records -------------------------------------------------------------

    def get_record(self, name: str) -> Optional[Record]:
        d = self._get(RECORDS.key(name))
        return None if d is None else Record.from_dict(d)

    def has_record(self, name: str) -> bool:
        return self.view().has(RECORDS.key(name))

    def require_record(self, name: str) -> Record:
        rec = self.get_record(name)
        if rec is None:
            raise NameNotFound(name)
        return rec

    def _put_record(self, txn: Transaction, rec: Record) -> None:
        txn.put(RECORDS.key(rec.name), _enc(rec.to_dict()))

    def register(self, name: str, owner: str, resolved: Optional[str] = None, *, now: int) -> Record:
        """
        Create the record for `name`. `resolved` defaults to the owner. The
        owner's primary name is set if it has none.
        """
        with self.transaction() as txn:
            validate(name)
            if self.has_record(name):
                raise NameTaken(name)
            if not owner:
                raise Unauthorized(caller=owner, message="owner must be a non-null identity")
            rec = Record(name=name, owner=owner, resolved=resolved if resolved is not None else owner,
                         updated_at=int(now))
            self._put_record(txn, rec)
            self.primary.on_register(owner, name)
            return rec

    def set_resolved(self, name: str, caller: str, new_resolved: Optional[str], *, now: int) -> Record:
        with self.transaction() as txn:
            rec = self.require_record(name)
            if caller != rec.owner:
                raise Unauthorized(caller=caller, required=rec.owner, message="caller does not own the name")
            rec = rec.with_resolved(new_resolved, now)
            self._put_record(txn, rec)
            txn.emit(ResolvedUpdated(name, rec.owner, new_resolved))
            return rec

    def transfer_owner(self, name: str, caller: str, new_owner: str, *, now: int) -> Record:
        with self.transaction() as txn:
            rec = self.require_record(name)
            if caller != rec.owner:
                raise Unauthorized(caller=caller, required=rec.owner, message="caller does not own the name")
            if not new_owner:
                raise Unauthorized(caller=caller, message="cannot transfer to the null identity")
            old_owner = rec.owner
            rec = rec.with_owner(new_owner, now)
            self._put_record(txn, rec)
            self.primary.on_transfer(name, old_owner, new_owner)
            txn.emit(NameTransferred(name, old_owner, new_owner))
            return rec

    def list_records(self) -> List[Record]:
        return [Record.from_dict(_dec(v)) for _, v in self.view().iter_prefix(RECORDS.raw)]

    # -- authorized keys -----------------------------------------------------

    def is_key_authorized(self, identity: str, public_key: str) -> bool:
        return self.view().has(KEYS.key(identity, public_key.lower()))

    def keys_of(self, identity: str) -> List[str]:
        out = []
        for k, _ in self.view().iter_prefix(KEYS.scan_prefix(identity)):
            _, pk = split_key(KEYS, k)
            out.append(pk.decode("ascii"))
        return out

    def authorize_key(self, identity: str, public_key: str) -> bool:
        """Authorize `public_key` to sign for `identity`; False if it already was."""
        pk = public_key.lower()
        with self.transaction() as txn:
            if self.is_key_authorized(identity, pk):
                return False
            txn.put(KEYS.key(identity, pk), _enc(_PRESENT))
            txn.emit(KeyAuthorized(identity, pk))
            return True

    def revoke_key(self, identity: str, public_key: str) -> bool:
        pk = public_key.lower()
        with self.transaction() as txn:
            if not self.is_key_authorized(identity, pk):
                return False
            txn.delete(KEYS.key(identity, pk))
            txn.emit(KeyRevoked(identity, pk))
            return True


__all__ = ["RegistryStore", "Transaction"]
