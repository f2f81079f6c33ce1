from __future__ import annotations

"""
Shared value types for the Nominal registry.

Conventions
-----------
- Identities are opaque, non-empty strings (account ids, hex public keys, ...).
  The empty string is the null identity.
- Asset ids are strings; the native asset id comes from configuration.
- Amounts are ints in the asset's smallest unit.
- Timestamps are UNIX seconds.
"""


from typing import Final, NewType

Identity = NewType("Identity", str)
AssetId = NewType("AssetId", str)
Amount = int
Timestamp = int

NULL_IDENTITY: Final[str] = ""

from .record import Record  # noqa: E402
from .config import AssetFeeConfig, RegistryConfig  # noqa: E402
from .request import SponsoredRequest  # noqa: E402

__all__ = [
    "Identity",
    "AssetId",
    "Amount",
    "Timestamp",
    "NULL_IDENTITY",
    "Record",
    "RegistryConfig",
    "AssetFeeConfig",
    "SponsoredRequest",
]
