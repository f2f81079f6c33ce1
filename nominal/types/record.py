from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Mapping, Optional


@dataclass(frozen=True)
class Record:
    """Forward record for one registered name."""

    name: str
    owner: str
    resolved: Optional[str]
    updated_at: int

    def with_owner(self, owner: str, now: int) -> "Record":
        return replace(self, owner=owner, updated_at=int(now))

    def with_resolved(self, resolved: Optional[str], now: int) -> "Record":
        return replace(self, resolved=resolved, updated_at=int(now))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "Record":
        return Record(
            name=str(d["name"]),
            owner=str(d["owner"]),
            resolved=d.get("resolved"),
            updated_at=int(d["updated_at"]),
        )


__all__ = ["Record"]
