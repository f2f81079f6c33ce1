from __future__ import annotations
"""
Registry event types and sinks.

Events are produced while an operation runs, held on the operation's store
transaction, and handed to sinks only after that transaction commits. An
aborted operation therefore never emits anything.

Events:
  - NameRegistered, FeePaid, PrimaryNameSet, PrimaryNameCleared
  - NameTransferred, ResolvedUpdated
  - admin: RegistryInitialized, RegistrationFeeSet, AssetFeeSet, TreasurySet,
    ReferrerBpsSet, RelayerAdded, RelayerRemoved, RelayerAllowlistToggled,
    AdminTransferInitiated, AdminTransferAccepted
  - keys: KeyAuthorized, KeyRevoked

All payloads are JSON-serializable via `to_dict()`.
"""


import threading
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from . import logging as nlog
from . import metrics

log = nlog.get_logger(__name__)


class EventType(str, Enum):
    NAME_REGISTERED = "NameRegistered"
    FEE_PAID = "FeePaid"
    PRIMARY_NAME_SET = "PrimaryNameSet"
    PRIMARY_NAME_CLEARED = "PrimaryNameCleared"
    NAME_TRANSFERRED = "NameTransferred"
    RESOLVED_UPDATED = "ResolvedUpdated"
    REGISTRY_INITIALIZED = "RegistryInitialized"
    REGISTRATION_FEE_SET = "RegistrationFeeSet"
    ASSET_FEE_SET = "AssetFeeSet"
    TREASURY_SET = "TreasurySet"
    REFERRER_BPS_SET = "ReferrerBpsSet"
    RELAYER_ADDED = "RelayerAdded"
    RELAYER_REMOVED = "RelayerRemoved"
    RELAYER_ALLOWLIST_TOGGLED = "RelayerAllowlistToggled"
    ADMIN_TRANSFER_INITIATED = "AdminTransferInitiated"
    ADMIN_TRANSFER_ACCEPTED = "AdminTransferAccepted"
    KEY_AUTHORIZED = "KeyAuthorized"
    KEY_REVOKED = "KeyRevoked"


class Event:
    """Mixin for event dataclasses; subclasses set `etype`."""

    etype: EventType

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)  # type: ignore[call-overload]
        d["event"] = self.etype.value
        return d


# ────────────────────────────────────────────────────────────────────────────────
# Registration & records
# ────────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class NameRegistered(Event):
    name: str
    owner: str
    resolved: Optional[str]
    payer: str
    asset: str
    amount: int

    etype = EventType.NAME_REGISTERED


@dataclass(frozen=True)
class FeePaid(Event):
    name: str
    payer: str
    asset: str
    total: int
    referrer: Optional[str]
    referrer_amount: int
    treasury_amount: int
    change: int = 0

    etype = EventType.FEE_PAID


@dataclass(frozen=True)
class PrimaryNameSet(Event):
    owner: str
    name: str

    etype = EventType.PRIMARY_NAME_SET


@dataclass(frozen=True)
class PrimaryNameCleared(Event):
    owner: str
    name: str

    etype = EventType.PRIMARY_NAME_CLEARED


@dataclass(frozen=True)
class NameTransferred(Event):
    name: str
    old_owner: str
    new_owner: str

    etype = EventType.NAME_TRANSFERRED


@dataclass(frozen=True)
class ResolvedUpdated(Event):
    name: str
    owner: str
    resolved: Optional[str]

    etype = EventType.RESOLVED_UPDATED


# ────────────────────────────────────────────────────────────────────────────────
# Admin
# ────────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RegistryInitialized(Event):
    admin: str
    treasury: str
    registration_fee: int
    referrer_bps: int

    etype = EventType.REGISTRY_INITIALIZED


@dataclass(frozen=True)
class RegistrationFeeSet(Event):
    fee: int

    etype = EventType.REGISTRATION_FEE_SET


@dataclass(frozen=True)
class AssetFeeSet(Event):
    asset: str
    amount: int
    enabled: bool

    etype = EventType.ASSET_FEE_SET


@dataclass(frozen=True)
class TreasurySet(Event):
    treasury: str

    etype = EventType.TREASURY_SET


@dataclass(frozen=True)
class ReferrerBpsSet(Event):
    bps: int

    etype = EventType.REFERRER_BPS_SET


@dataclass(frozen=True)
class RelayerAdded(Event):
    relayer: str

    etype = EventType.RELAYER_ADDED


@dataclass(frozen=True)
class RelayerRemoved(Event):
    relayer: str

    etype = EventType.RELAYER_REMOVED


@dataclass(frozen=True)
class RelayerAllowlistToggled(Event):
    required: bool

    etype = EventType.RELAYER_ALLOWLIST_TOGGLED


@dataclass(frozen=True)
class AdminTransferInitiated(Event):
    admin: str
    pending_admin: str

    etype = EventType.ADMIN_TRANSFER_INITIATED


@dataclass(frozen=True)
class AdminTransferAccepted(Event):
    previous_admin: str
    admin: str

    etype = EventType.ADMIN_TRANSFER_ACCEPTED


@dataclass(frozen=True)
class KeyAuthorized(Event):
    identity: str
    public_key: str

    etype = EventType.KEY_AUTHORIZED


@dataclass(frozen=True)
class KeyRevoked(Event):
    identity: str
    public_key: str

    etype = EventType.KEY_REVOKED


# ────────────────────────────────────────────────────────────────────────────────
# Sinks
# ────────────────────────────────────────────────────────────────────────────────


class EventSink(Protocol):
    def __call__(self, event: Event) -> None: ...


class InMemoryEventSink:
    """Thread-safe in-memory sink for tests and devnets."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._events: List[Event] = []

    def __call__(self, event: Event) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[Event]:
        with self._lock:
            return list(self._events)

    def of_type(self, etype: EventType) -> List[Event]:
        return [e for e in self.events if e.etype == etype]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


def logging_sink(event: Event) -> None:
    """Sink that writes each event as a structured INFO log line."""
    log.info(event.etype.value, extra={"event": event.to_dict()})


def dispatch(events: Iterable[Event], sinks: Iterable[Callable[[Event], None]]) -> int:
    """
    Deliver committed events to every sink, in order.

    The operation that produced the events has already committed, so a sink
    that raises is logged and counted but never propagates. Returns the number
    of failed deliveries.
    """
    sinks = list(sinks)
    failed = 0
    for ev in events:
        for sink in sinks:
            try:
                sink(ev)
            except Exception:
                failed += 1
                metrics.record_sink_failure(ev.etype.value)
                log.exception("event sink failed", extra={"event": ev.etype.value, "sink": _sink_name(sink)})
    return failed


def _sink_name(sink: Callable[[Event], None]) -> str:
    return getattr(sink, "__qualname__", None) or type(sink).__qualname__


__all__ = [
    "EventType",
    "Event",
    "NameRegistered",
    "FeePaid",
    "PrimaryNameSet",
    "PrimaryNameCleared",
    "NameTransferred",
    "ResolvedUpdated",
    "RegistryInitialized",
    "RegistrationFeeSet",
    "AssetFeeSet",
    "TreasurySet",
    "ReferrerBpsSet",
    "RelayerAdded",
    "RelayerRemoved",
    "RelayerAllowlistToggled",
    "AdminTransferInitiated",
    "AdminTransferAccepted",
    "KeyAuthorized",
    "KeyRevoked",
    "EventSink",
    "InMemoryEventSink",
    "logging_sink",
    "dispatch",
]
