from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping


@dataclass(frozen=True)
class SponsoredRequest:
    """
    Registration request signed by `owner` and submitted by `sponsor`.

    `amount` is the fee the owner agreed to for `asset`; `deadline` is a UNIX
    timestamp (inclusive); `nonce` must equal the name's current nonce.
    """

    name: str
    owner: str
    sponsor: str
    asset: str
    amount: int
    deadline: int
    nonce: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "SponsoredRequest":
        return SponsoredRequest(
            name=str(d["name"]),
            owner=str(d["owner"]),
            sponsor=str(d["sponsor"]),
            asset=str(d["asset"]),
            amount=int(d["amount"]),
            deadline=int(d["deadline"]),
            nonce=int(d["nonce"]),
        )


__all__ = ["SponsoredRequest"]
