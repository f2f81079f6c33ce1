"""
Collaborator interfaces consumed by the registration service, with the
reference implementations that ship alongside them:

- Clock             → SystemClock, ManualClock          (nominal.adapters.clock)
- PaymentGateway    → Ledger                            (nominal.adapters.ledger)
- SignatureVerifier → Ed25519Verifier                   (nominal.adapters.verifier)

Any object with the right shape works; the service never checks concrete types.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class TransferResult:
    """
    Outcome of one payment leg. `moved` is what actually arrived at `dst`.
    `staged` means the leg was written into the caller's open registry
    transaction: it commits or rolls back with it and needs no compensation.
    """

    ok: bool
    moved: int = 0
    reason: Optional[str] = None
    staged: bool = False


@runtime_checkable
class Clock(Protocol):
    def now(self) -> int:
        """Current UNIX time in seconds. Never decreases."""
        ...


@runtime_checkable
class PaymentGateway(Protocol):
    def transfer(self, src: str, dst: str, asset: str, amount: int) -> TransferResult:
        """
        Move exactly `amount` of `asset` from `src` to `dst`, all-or-nothing.
        A gateway that cannot guarantee the exact amount must report failure.
        """
        ...


@runtime_checkable
class SignatureVerifier(Protocol):
    def verify(self, identity: str, digest: bytes, signature: str) -> bool:
        """True iff `signature` over `digest` was produced by a key belonging to `identity`."""
        ...


from .clock import ManualClock, SystemClock  # noqa: E402
from .ledger import Ledger  # noqa: E402
from .verifier import Ed25519Verifier  # noqa: E402

__all__ = [
    "TransferResult",
    "Clock",
    "PaymentGateway",
    "SignatureVerifier",
    "SystemClock",
    "ManualClock",
    "Ledger",
    "Ed25519Verifier",
]
