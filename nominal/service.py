from __future__ import annotations

"""
Registration service
====================

Orchestrates one registry operation end to end:

    validate → check uniqueness → (authorize) → compute fee
             → stage record & index → move funds → commit → emit

Everything an operation changes in the registry is staged in one store
transaction. Funds move last, just before the commit:

  1. payer            → settlement account   (fee_provided)
  2. settlement acct  → treasury             (treasury share)
  3. settlement acct  → referrer             (referrer share, sponsored only)
  4. settlement acct  → payer                (change, if overpaid)

If a leg fails, the legs already executed are reversed (newest first), the
transaction is discarded and `TransferFailed` is raised. If the commit itself
fails, the executed legs are reversed and the commit error propagates. A
gateway that stages its legs in the open store transaction (the attached
`Ledger`) needs no reversal: its legs are discarded or committed with the
record. Events reach the sinks only after a successful commit; a failing sink
is logged and counted, and the operation still returns its receipt.

Every call returns a `Receipt` with the operation's result, its settlement (for
registrations) and the events it emitted.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import (Any, Callable, Dict, Iterable, Iterator, List, Optional,
                    Tuple)

from . import logging as nlog
from . import metrics
from .adapters import Clock, PaymentGateway, SignatureVerifier
from .adapters.clock import SystemClock
from .adapters.ledger import Ledger
from .adapters.verifier import Ed25519Verifier, is_public_key_hex
from .auth import AuthorizationGuard
from .config import NominalConfig
from .db import KV, open_kv
from .errors import (BadSignature, NameTaken, NominalError, TransferFailed,
                     WrongFee)
from .events import Event, FeePaid, NameRegistered, dispatch, logging_sink
from .fees import FeeSplit, split_direct, split_sponsored
from .names import validate
from .store import RegistryStore, Transaction
from .types import AssetFeeConfig, Record, RegistryConfig, SponsoredRequest

log = nlog.get_logger(__name__)

EventSinkFn = Callable[[Event], None]


@dataclass(frozen=True)
class Leg:
    src: str
    dst: str
    asset: str
    amount: int


@dataclass(frozen=True)
class Settlement:
    payer: str
    asset: str
    provided: int
    split: FeeSplit
    treasury: str
    referrer: Optional[str] = None
    change: int = 0

    @property
    def required(self) -> int:
        return self.split.total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "payer": self.payer,
            "asset": self.asset,
            "provided": self.provided,
            "required": self.required,
            "treasury": self.treasury,
            "treasury_amount": self.split.treasury_amount,
            "referrer": self.referrer,
            "referrer_amount": self.split.referrer_amount,
            "change": self.change,
        }


@dataclass(frozen=True)
class Receipt:
    op: str
    result: Any = None
    settlement: Optional[Settlement] = None
    events: Tuple[Event, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        res = self.result
        if hasattr(res, "to_dict"):
            res = res.to_dict()
        return {
            "op": self.op,
            "result": res,
            "settlement": self.settlement.to_dict() if self.settlement else None,
            "events": [e.to_dict() for e in self.events],
        }


class RegistrationService:
    def __init__(
        self,
        store: RegistryStore,
        gateway: PaymentGateway,
        verifier: SignatureVerifier,
        clock: Clock,
        *,
        origin: str,
        settlement_account: str = "nominal.registry",
        sinks: Optional[Iterable[EventSinkFn]] = None,
    ) -> None:
        if not settlement_account:
            raise ValueError("settlement_account must be non-empty")
        self.store = store
        self.gateway = gateway
        self.verifier = verifier
        self.clock = clock
        self.settlement_account = settlement_account
        self.guard = AuthorizationGuard(store, verifier, origin=origin)
        self._sinks: List[EventSinkFn] = list(sinks) if sinks is not None else [logging_sink]

    @classmethod
    def from_config(
        cls,
        cfg: NominalConfig,
        *,
        kv: Optional[KV] = None,
        gateway: Optional[PaymentGateway] = None,
        verifier: Optional[SignatureVerifier] = None,
        clock: Optional[Clock] = None,
        sinks: Optional[Iterable[EventSinkFn]] = None,
    ) -> "RegistrationService":
        """
        Wire a service from process config. Missing collaborators default to
        the reference adapters sharing the same KV; the default ledger is
        attached to the store so settlement legs commit with the record.
        """
        kv = kv if kv is not None else open_kv(cfg.deployment.db_uri)
        store = RegistryStore(kv, native_asset=cfg.deployment.native_asset)
        return cls(
            store,
            gateway if gateway is not None else Ledger(kv, store=store),
            verifier if verifier is not None else Ed25519Verifier(store.is_key_authorized),
            clock if clock is not None else SystemClock(),
            origin=cfg.deployment.origin,
            settlement_account=cfg.deployment.settlement_account,
            sinks=sinks,
        )

    @property
    def origin(self) -> str:
        return self.guard.origin

    @property
    def native_asset(self) -> str:
        return self.store.native_asset

    @property
    def sinks(self) -> Tuple[EventSinkFn, ...]:
        return tuple(self._sinks)

    @sinks.setter
    def sinks(self, sinks: Iterable[EventSinkFn]) -> None:
        self._sinks = list(sinks)

    def add_sink(self, sink: EventSinkFn) -> None:
        self._sinks.append(sink)

    # ------------------------------------------------------------------
    # Operation plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _observed(self, op: str, **fields: Any) -> Iterator[None]:
        with nlog.op_scope(op, **fields), metrics.time_op(op):
            try:
                yield
            except NominalError as e:
                metrics.record_failure(op, e.code)
                log.warning("%s aborted: %s", op, e.message, extra={"code": e.code, "details": e.details})
                raise
            except Exception:
                metrics.record_failure(op, "internal")
                log.exception("%s failed", op)
                raise

    def _run(
        self,
        op: str,
        body: Callable[[Transaction, List[Leg]], Tuple[Any, Optional[Settlement]]],
        **fields: Any,
    ) -> Receipt:
        with self._observed(op, **fields):
            executed: List[Leg] = []
            try:
                with self.store.transaction() as txn:
                    result, settlement = body(txn, executed)
            except BaseException:
                self._compensate(executed)
                raise
            events = tuple(txn.events)
            undelivered = dispatch(events, self._sinks)
            log.info("%s ok", op, extra={"events": len(events), "undelivered": undelivered})
            return Receipt(op=op, result=result, settlement=settlement, events=events)

    @staticmethod
    def _record_registration(path: str, receipt: Receipt) -> None:
        st = receipt.settlement
        if st is not None:
            metrics.record_registration(path, st.asset, st.required,
                                        st.split.treasury_amount, st.split.referrer_amount)

    def _compensate(self, executed: List[Leg]) -> None:
        for leg in reversed(executed):
            res = self.gateway.transfer(leg.dst, leg.src, leg.asset, leg.amount)
            ok = res.ok and res.moved == leg.amount
            metrics.record_compensation(ok)
            if not ok:
                log.error(
                    "compensation leg failed",
                    extra={"src": leg.dst, "dst": leg.src, "asset": leg.asset,
                           "amount": leg.amount, "reason": res.reason},
                )
        executed.clear()

    def _move(self, leg: Leg, executed: List[Leg]) -> None:
        if leg.amount == 0:
            return
        res = self.gateway.transfer(leg.src, leg.dst, leg.asset, leg.amount)
        if not res.ok or res.moved != leg.amount:
            raise TransferFailed(src=leg.src, dst=leg.dst, asset=leg.asset, amount=leg.amount,
                                 reason=res.reason or "amount_mismatch")
        if not res.staged:
            executed.append(leg)

    def _settle(
        self,
        executed: List[Leg],
        *,
        payer: str,
        asset: str,
        required: int,
        provided: int,
        referrer: Optional[str],
        referrer_bps: int,
        treasury: str,
    ) -> Settlement:
        shares = split_sponsored(required, referrer_bps, referrer) if referrer else split_direct(required)
        change = provided - required
        acct = self.settlement_account

        self._move(Leg(payer, acct, asset, provided), executed)
        self._move(Leg(acct, treasury, asset, shares.treasury_amount), executed)
        if referrer:
            self._move(Leg(acct, referrer, asset, shares.referrer_amount), executed)
        self._move(Leg(acct, payer, asset, change), executed)

        return Settlement(payer=payer, asset=asset, provided=provided, split=shares,
                          treasury=treasury, referrer=referrer, change=change)

    @staticmethod
    def _check_provided(provided: Optional[int], required: int, asset: str) -> int:
        if provided is None:
            return required
        if isinstance(provided, bool) or not isinstance(provided, int) or provided < 0:
            raise WrongFee(required=required, provided=provided, asset=asset,
                           message="fee must be a non-negative int amount")
        if provided < required:
            raise WrongFee(required=required, provided=provided, asset=asset, message="insufficient fee")
        return provided

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_direct(
        self,
        caller: str,
        name: str,
        asset: Optional[str] = None,
        fee_provided: Optional[int] = None,
    ) -> Receipt:
        """
        Register `name` to `caller`, paying the full fee to the treasury.
        `fee_provided` defaults to the exact fee; any excess is returned.
        """
        asset = asset or self.native_asset

        def body(txn: Transaction, executed: List[Leg]):
            cfg = self.store.require_config()
            validate(name)
            if self.store.has_record(name):
                raise NameTaken(name)
            required = self.store.fee_for(asset)
            provided = self._check_provided(fee_provided, required, asset)

            rec = self.store.register(name, caller, now=self.clock.now())
            txn.emit(NameRegistered(name, rec.owner, rec.resolved, caller, asset, required))
            st = self._settle(executed, payer=caller, asset=asset, required=required, provided=provided,
                              referrer=None, referrer_bps=0, treasury=cfg.treasury)
            txn.emit(FeePaid(name, caller, asset, required, None, 0, st.split.treasury_amount, st.change))
            return rec, st

        receipt = self._run("register_direct", body, name=name, caller=caller)
        self._record_registration("direct", receipt)
        return receipt

    def register_sponsored(
        self,
        caller: str,
        request: SponsoredRequest,
        signature: str,
        fee_provided: Optional[int] = None,
    ) -> Receipt:
        """
        Register `request.name` to `request.owner` on the owner's signed
        request, paid by the sponsor (`caller`), who earns the referrer share.
        """

        def body(txn: Transaction, executed: List[Leg]):
            cfg = self.store.require_config()
            validate(request.name)
            if self.store.has_record(request.name):
                raise NameTaken(request.name)
            now = self.clock.now()
            required = self.guard.authorize(caller, request, signature, now=now)
            provided = self._check_provided(fee_provided, required, request.asset)

            rec = self.store.register(request.name, request.owner, now=now)
            txn.emit(NameRegistered(rec.name, rec.owner, rec.resolved, caller, request.asset, required))
            st = self._settle(executed, payer=caller, asset=request.asset, required=required,
                              provided=provided, referrer=caller, referrer_bps=cfg.referrer_bps,
                              treasury=cfg.treasury)
            txn.emit(FeePaid(rec.name, caller, request.asset, required, caller,
                             st.split.referrer_amount, st.split.treasury_amount, st.change))
            return rec, st

        receipt = self._run("register_sponsored", body, name=request.name, caller=caller)
        self._record_registration("sponsored", receipt)
        return receipt

    def digest_for(self, request: SponsoredRequest) -> bytes:
        """The digest the owner must sign for `request` on this deployment."""
        return self.guard.digest(request)

    def quote(self, asset: Optional[str] = None) -> int:
        """Current registration fee in `asset` (native by default)."""
        return self.store.fee_for(asset or self.native_asset)

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    def set_resolved(self, caller: str, name: str, new_resolved: Optional[str]) -> Receipt:
        def body(txn: Transaction, executed: List[Leg]):
            return self.store.set_resolved(name, caller, new_resolved, now=self.clock.now()), None

        return self._run("set_resolved", body, name=name, caller=caller)

    def transfer_name(self, caller: str, name: str, new_owner: str) -> Receipt:
        def body(txn: Transaction, executed: List[Leg]):
            return self.store.transfer_owner(name, caller, new_owner, now=self.clock.now()), None

        return self._run("transfer_name", body, name=name, caller=caller)

    def set_primary_name(self, caller: str, name: str) -> Receipt:
        def body(txn: Transaction, executed: List[Leg]):
            self.store.primary.set_primary(caller, name)
            return name, None

        return self._run("set_primary_name", body, name=name, caller=caller)

    def authorize_key(self, caller: str, public_key: str) -> Receipt:
        pk = public_key.lower() if isinstance(public_key, str) else public_key

        def body(txn: Transaction, executed: List[Leg]):
            if not is_public_key_hex(pk):
                raise BadSignature(owner=caller, message="public key must be 32 bytes of hex")
            return self.store.authorize_key(caller, pk), None

        return self._run("authorize_key", body, caller=caller)

    def revoke_key(self, caller: str, public_key: str) -> Receipt:
        def body(txn: Transaction, executed: List[Leg]):
            return self.store.revoke_key(caller, public_key), None

        return self._run("revoke_key", body, caller=caller)

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    def initialize(
        self,
        caller: str,
        *,
        treasury: str,
        registration_fee: int,
        referrer_bps: int,
        require_allowlisted_relayer: bool = False,
    ) -> Receipt:
        if treasury == self.settlement_account:
            raise ValueError("treasury must differ from the settlement account")

        def body(txn: Transaction, executed: List[Leg]):
            cfg = self.store.initialize(
                caller,
                treasury=treasury,
                registration_fee=registration_fee,
                referrer_bps=referrer_bps,
                require_allowlisted_relayer=require_allowlisted_relayer,
            )
            return cfg, None

        return self._run("initialize", body, caller=caller)

    def _admin(self, op: str, fn: Callable[[], Any], caller: str) -> Receipt:
        return self._run(op, lambda txn, executed: (fn(), None), caller=caller)

    def set_fee(self, caller: str, fee: int) -> Receipt:
        return self._admin("set_fee", lambda: self.store.set_fee(caller, fee), caller)

    def set_treasury(self, caller: str, treasury: str) -> Receipt:
        return self._admin("set_treasury", lambda: self.store.set_treasury(caller, treasury), caller)

    def set_referrer_bps(self, caller: str, bps: int) -> Receipt:
        return self._admin("set_referrer_bps", lambda: self.store.set_referrer_bps(caller, bps), caller)

    def set_asset_fee(self, caller: str, asset: str, amount: int, enabled: bool = True) -> Receipt:
        return self._admin(
            "set_asset_fee", lambda: self.store.set_asset_fee(caller, asset, amount, enabled), caller
        )

    def add_relayer(self, caller: str, relayer: str) -> Receipt:
        return self._admin("add_relayer", lambda: self.store.add_relayer(caller, relayer), caller)

    def remove_relayer(self, caller: str, relayer: str) -> Receipt:
        return self._admin("remove_relayer", lambda: self.store.remove_relayer(caller, relayer), caller)

    def set_require_allowlisted_relayer(self, caller: str, required: bool) -> Receipt:
        return self._admin(
            "set_require_allowlisted_relayer",
            lambda: self.store.set_require_allowlisted_relayer(caller, required),
            caller,
        )

    def transfer_admin(self, caller: str, candidate: str) -> Receipt:
        return self._admin("transfer_admin", lambda: self.store.transfer_admin(caller, candidate), caller)

    def accept_admin(self, caller: str) -> Receipt:
        return self._admin("accept_admin", lambda: self.store.accept_admin(caller), caller)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def get_record(self, name: str) -> Optional[Record]:
        return self.store.get_record(name)

    def resolve(self, name: str) -> Optional[str]:
        rec = self.store.get_record(name)
        return None if rec is None else rec.resolved

    def name_of(self, identity: str) -> Optional[str]:
        return self.store.primary.name_of(identity)

    def get_config(self) -> Optional[RegistryConfig]:
        return self.store.get_config()

    def get_asset_fee(self, asset: str) -> Optional[AssetFeeConfig]:
        return self.store.get_asset_fee(asset)

    def get_nonce(self, name: str) -> int:
        return self.store.get_nonce(name)

    def is_relayer_allowed(self, relayer: str) -> bool:
        return self.store.is_relayer_allowed(relayer)

    def is_key_authorized(self, identity: str, public_key: str) -> bool:
        return self.store.is_key_authorized(identity, public_key)

    def get_authorized_keys(self, identity: str) -> List[str]:
        return self.store.keys_of(identity)


__all__ = ["Leg", "Settlement", "Receipt", "RegistrationService"]
