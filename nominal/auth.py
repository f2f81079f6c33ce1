from __future__ import annotations

"""
Authorization of sponsored (relayed) registrations.

A sponsored request is signed by the future owner and submitted by a sponsor.
`AuthorizationGuard.authorize` runs the checks in a fixed order and stops at
the first failure:

  1. caller == request.sponsor                       → WrongSponsor
  2. allowlist gate (when enabled)                   → RelayerNotAllowed
  3. now <= request.deadline                         → DeadlineExpired
  4. request.nonce == stored nonce for the name      → BadNonce
  5. owner's signature over the request digest       → BadSignature
  6. request.amount == fee configured for the asset  → WrongFee / AssetNotAllowed

On success the name's nonce is incremented inside the caller's store
transaction, so it lands (or is discarded) together with every other effect of
the registration.

Digest
------
    sha3_256( b"nominal/register-with-sig/v1"
            || lp(origin) || lp(name) || lp(owner) || lp(sponsor) || lp(asset)
            || u128(amount) || u64(deadline) || u64(nonce) )

`lp` is a LEB128 length prefix; integers are big-endian, fixed width. The
origin binds a signature to one deployment.
"""

import hashlib
from typing import Final

from .db.kv import be_u64, be_u128, uvarint
from .errors import (BadNonce, BadSignature, DeadlineExpired,
                     RelayerNotAllowed, WrongFee, WrongSponsor)
from .store import RegistryStore
from .types import SponsoredRequest
from .adapters import SignatureVerifier

DIGEST_TAG: Final[bytes] = b"nominal/register-with-sig/v1"


def _lp(s: str) -> bytes:
    b = s.encode("utf-8")
    return uvarint(len(b)) + b


def registration_digest(request: SponsoredRequest, origin: str) -> bytes:
    """Domain-separated 32-byte digest the owner signs."""
    h = hashlib.sha3_256()
    h.update(DIGEST_TAG)
    h.update(_lp(origin))
    h.update(_lp(request.name))
    h.update(_lp(request.owner))
    h.update(_lp(request.sponsor))
    h.update(_lp(request.asset))
    h.update(be_u128(request.amount))
    h.update(be_u64(request.deadline))
    h.update(be_u64(request.nonce))
    return h.digest()


class AuthorizationGuard:
    def __init__(self, store: RegistryStore, verifier: SignatureVerifier, *, origin: str) -> None:
        if not origin:
            raise ValueError("origin must be non-empty")
        self.store = store
        self.verifier = verifier
        self.origin = origin

    def digest(self, request: SponsoredRequest) -> bytes:
        return registration_digest(request, self.origin)

    def authorize(self, caller: str, request: SponsoredRequest, signature: str, *, now: int) -> int:
        """
        Run every check against `request`; on success consume its nonce and
        return the fee (== request.amount) to be settled.
        """
        with self.store.transaction():
            cfg = self.store.require_config()

            if caller != request.sponsor:
                raise WrongSponsor(caller=caller, sponsor=request.sponsor)

            if cfg.require_allowlisted_relayer and not self.store.is_relayer_allowed(caller):
                raise RelayerNotAllowed(caller)

            if now > request.deadline:
                raise DeadlineExpired(deadline=request.deadline, now=now)

            expected = self.store.get_nonce(request.name)
            if request.nonce != expected:
                raise BadNonce(name=request.name, expected=expected, got=request.nonce)

            try:
                digest = self.digest(request)
            except ValueError as e:
                # amount / deadline / nonce out of encodable range
                raise BadSignature(owner=request.owner, message=f"request not signable: {e}") from e
            if not self.verifier.verify(request.owner, digest, signature):
                raise BadSignature(owner=request.owner)

            required = self.store.fee_for(request.asset)
            if request.amount != required:
                raise WrongFee(required=required, provided=request.amount, asset=request.asset,
                               message="signed amount does not match the registration fee")

            self.store.bump_nonce(request.name)
            return required


__all__ = ["DIGEST_TAG", "registration_digest", "AuthorizationGuard"]
