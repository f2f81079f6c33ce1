from __future__ import annotations
"""
Fee split: divide a registration fee between the treasury and a referrer.

Integer-only arithmetic in the asset's base unit:

    referrer = floor(total * bps / 10_000)
    treasury = total - referrer

Truncation always lands on the treasury side. Direct registrations have no
referrer and settle 100% to the treasury regardless of the configured rate;
sponsored registrations pay the configured rate to the sponsor.

Example
-------
>>> split(1_000, 300)
FeeSplit(total=1000, bps=300, referrer_amount=30, treasury_amount=970)
"""


from dataclasses import dataclass
from typing import Any, Dict, Final, Optional

from .errors import InvalidBps, WrongFee

Amount = int

BPS_DENOMINATOR: Final[int] = 10_000


def check_bps(bps: Any) -> int:
    if isinstance(bps, bool) or not isinstance(bps, int):
        raise InvalidBps(bps)
    if not (0 <= bps <= BPS_DENOMINATOR):
        raise InvalidBps(bps)
    return bps


@dataclass(frozen=True)
class FeeSplit:
    total: Amount
    bps: int
    referrer_amount: Amount
    treasury_amount: Amount

    def __iter__(self):
        # Unpacks as (referrer_amount, treasury_amount).
        yield self.referrer_amount
        yield self.treasury_amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "bps": self.bps,
            "referrer_amount": self.referrer_amount,
            "treasury_amount": self.treasury_amount,
        }


def split(total: Amount, bps: int) -> FeeSplit:
    """Split `total` into (referrer, treasury) shares at `bps`."""
    check_bps(bps)
    if isinstance(total, bool) or not isinstance(total, int):
        raise WrongFee(provided=total, message=f"fee must be an int amount, got {type(total).__name__}")
    if total < 0:
        raise WrongFee(provided=total, message="fee must be non-negative")

    referrer = (total * bps) // BPS_DENOMINATOR
    treasury = total - referrer
    return FeeSplit(total=total, bps=bps, referrer_amount=referrer, treasury_amount=treasury)


def split_direct(total: Amount) -> FeeSplit:
    return split(total, 0)


def split_sponsored(total: Amount, referrer_bps: int, referrer: Optional[str]) -> FeeSplit:
    """Sponsored split; with no referrer identity the whole fee goes to the treasury."""
    if not referrer:
        return split(total, 0)
    return split(total, referrer_bps)


__all__ = [
    "Amount",
    "BPS_DENOMINATOR",
    "FeeSplit",
    "check_bps",
    "split",
    "split_direct",
    "split_sponsored",
]
