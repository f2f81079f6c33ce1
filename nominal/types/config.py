from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Mapping, Optional


@dataclass(frozen=True)
class RegistryConfig:
    """
    On-ledger registry configuration (singleton).

    Distinct from `nominal.config.NominalConfig`, which holds process-level
    settings used to bootstrap this record.
    """

    admin: str
    treasury: str
    registration_fee: int
    referrer_bps: int
    require_allowlisted_relayer: bool = False
    pending_admin: Optional[str] = None

    def update(self, **changes: Any) -> "RegistryConfig":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "RegistryConfig":
        return RegistryConfig(
            admin=str(d["admin"]),
            treasury=str(d["treasury"]),
            registration_fee=int(d["registration_fee"]),
            referrer_bps=int(d["referrer_bps"]),
            require_allowlisted_relayer=bool(d.get("require_allowlisted_relayer", False)),
            pending_admin=d.get("pending_admin"),
        )


@dataclass(frozen=True)
class AssetFeeConfig:
    """Fee for registering with a non-native asset."""

    asset: str
    amount: int
    enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "AssetFeeConfig":
        return AssetFeeConfig(
            asset=str(d["asset"]),
            amount=int(d["amount"]),
            enabled=bool(d.get("enabled", True)),
        )


__all__ = ["RegistryConfig", "AssetFeeConfig"]
