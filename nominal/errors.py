from __future__ import annotations
# nominal/errors.py
"""
Error types for the Nominal name registry.

Every failure inside the registry core is an operation-level abort: the
operation that raised left no observable state behind, and the caller decides
whether to retry, re-sign or re-quote. Errors carry a stable `code` and a small
`details` mapping so they are safe to surface over logs, RPC or the CLI.

Exports:
- NominalError (base)
- InvalidName, NameTaken, NameNotFound, Unauthorized
- WrongFee, AssetNotAllowed, TransferFailed
- DeadlineExpired, BadNonce, BadSignature, WrongSponsor, RelayerNotAllowed
- InvalidBps, ZeroTreasury, NotInitialized
"""


import json
from typing import Any, Dict, Mapping, Optional


class NominalError(Exception):
    """Base class for registry domain errors."""

    code: str = "NOMINAL_ERROR"

    def __init__(self, message: str = "", *, details: Optional[Mapping[str, Any]] = None) -> None:
        self.message = message or self.__class__.__name__
        self.details = dict(details or {})
        super().__init__(self.__str__())

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.details:
            packed = json.dumps(self.details, sort_keys=True, separators=(",", ":"), default=str)
            return f"{self.code}: {self.message} [{packed}]"
        return f"{self.code}: {self.message}"


def _with(details: Optional[Mapping[str, Any]], **extra: Any) -> Dict[str, Any]:
    d = dict(details or {})
    for k, v in extra.items():
        if v is not None:
            d.setdefault(k, v)
    return d


# ---------------------------------------------------------------------------
# Names & records
# ---------------------------------------------------------------------------


class InvalidName(NominalError):
    """
    Name failed validation. `rule` names the first failing check:
    length | charset | hyphen_placement | consecutive_hyphens | type.
    """
    code = "NOMINAL_INVALID_NAME"

    def __init__(
        self,
        name: Any = None,
        *,
        rule: Optional[str] = None,
        message: str = "invalid name",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.rule = rule
        super().__init__(message, details=_with(details, name=name, rule=rule))


class NameTaken(NominalError):
    code = "NOMINAL_NAME_TAKEN"

    def __init__(self, name: str, *, message: str = "name already registered",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, details=_with(details, name=name))


class NameNotFound(NominalError):
    code = "NOMINAL_NAME_NOT_FOUND"

    def __init__(self, name: str, *, message: str = "name not found",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, details=_with(details, name=name))


class Unauthorized(NominalError):
    """Caller is not the owner / admin / pending admin the operation requires."""
    code = "NOMINAL_UNAUTHORIZED"

    def __init__(
        self,
        *,
        caller: Optional[str] = None,
        required: Optional[str] = None,
        message: str = "unauthorized",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=_with(details, caller=caller, required=required))


class NotInitialized(NominalError):
    code = "NOMINAL_NOT_INITIALIZED"

    def __init__(self, message: str = "registry is not initialized") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Fees & settlement
# ---------------------------------------------------------------------------


class WrongFee(NominalError):
    code = "NOMINAL_WRONG_FEE"

    def __init__(
        self,
        *,
        required: Optional[int] = None,
        provided: Optional[int] = None,
        asset: Optional[str] = None,
        message: str = "wrong fee",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(
            message,
            details=_with(details, required=required, provided=provided, asset=asset),
        )


class AssetNotAllowed(NominalError):
    code = "NOMINAL_ASSET_NOT_ALLOWED"

    def __init__(self, asset: str, *, message: str = "asset not enabled for registration",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, details=_with(details, asset=asset))


class TransferFailed(NominalError):
    """A payment leg failed; the whole operation was rolled back."""
    code = "NOMINAL_TRANSFER_FAILED"

    def __init__(
        self,
        *,
        src: Optional[str] = None,
        dst: Optional[str] = None,
        asset: Optional[str] = None,
        amount: Optional[int] = None,
        reason: Optional[str] = None,
        message: str = "asset transfer failed",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(
            message,
            details=_with(details, src=src, dst=dst, asset=asset, amount=amount, reason=reason),
        )


class InvalidBps(NominalError):
    code = "NOMINAL_INVALID_BPS"

    def __init__(self, bps: Any, *, message: str = "basis points must be within 0..10000") -> None:
        super().__init__(message, details={"bps": bps})


class ZeroTreasury(NominalError):
    code = "NOMINAL_ZERO_TREASURY"

    def __init__(self, message: str = "treasury must be a non-null identity") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Sponsored (meta) authorization
# ---------------------------------------------------------------------------


class WrongSponsor(NominalError):
    """The submitting caller is not the sponsor named in the signed request."""
    code = "NOMINAL_WRONG_SPONSOR"

    def __init__(self, *, caller: str, sponsor: str, message: str = "caller is not the request sponsor") -> None:
        super().__init__(message, details={"caller": caller, "sponsor": sponsor})


class RelayerNotAllowed(NominalError):
    code = "NOMINAL_RELAYER_NOT_ALLOWED"

    def __init__(self, relayer: str, *, message: str = "relayer is not allowlisted") -> None:
        super().__init__(message, details={"relayer": relayer})


class DeadlineExpired(NominalError):
    code = "NOMINAL_DEADLINE_EXPIRED"

    def __init__(self, *, deadline: int, now: int, message: str = "request deadline expired") -> None:
        super().__init__(message, details={"deadline": int(deadline), "now": int(now)})


class BadNonce(NominalError):
    code = "NOMINAL_BAD_NONCE"

    def __init__(self, *, name: str, expected: int, got: int, message: str = "nonce mismatch") -> None:
        super().__init__(message, details={"name": name, "expected": int(expected), "got": int(got)})


class BadSignature(NominalError):
    code = "NOMINAL_BAD_SIGNATURE"

    def __init__(self, *, owner: Optional[str] = None, message: str = "signature does not verify",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, details=_with(details, owner=owner))


__all__ = [
    "NominalError",
    "InvalidName",
    "NameTaken",
    "NameNotFound",
    "Unauthorized",
    "NotInitialized",
    "WrongFee",
    "AssetNotAllowed",
    "TransferFailed",
    "InvalidBps",
    "ZeroTreasury",
    "WrongSponsor",
    "RelayerNotAllowed",
    "DeadlineExpired",
    "BadNonce",
    "BadSignature",
]
