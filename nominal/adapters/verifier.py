from __future__ import annotations

"""
Ed25519 signature verifier (via `cryptography`).

Signature wire form: "<pubkey-hex>:<sig-hex>" (32-byte key, 64-byte signature).

A key speaks for an identity when either
  - the identity is *implicit*: it is the 64-hex public key itself, or
  - the key was authorized for the identity (see `RegistrationService.authorize_key`).

Helpers at the bottom generate keys and produce signatures in the same wire
form for the CLI and tests.
"""

import re
from typing import Callable, Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey, Ed25519PublicKey)

KeyLookup = Callable[[str, str], bool]

_HEX64 = re.compile(r"^[0-9a-f]{64}$")


def is_public_key_hex(s: str) -> bool:
    """Lowercase hex of a 32-byte Ed25519 public key."""
    return isinstance(s, str) and bool(_HEX64.match(s))


def is_implicit_identity(identity: str) -> bool:
    return is_public_key_hex(identity)


def parse_signature(signature: str) -> Optional[Tuple[str, bytes, bytes]]:
    """Split the wire form into (pubkey_hex, pubkey, sig); None if malformed."""
    if not isinstance(signature, str) or signature.count(":") != 1:
        return None
    pk_hex, sig_hex = signature.strip().lower().split(":")
    try:
        pk = bytes.fromhex(pk_hex)
        sig = bytes.fromhex(sig_hex)
    except ValueError:
        return None
    if len(pk) != 32 or len(sig) != 64:
        return None
    return pk_hex, pk, sig


class Ed25519Verifier:
    def __init__(self, is_authorized: Optional[KeyLookup] = None) -> None:
        self._is_authorized = is_authorized

    def key_speaks_for(self, identity: str, pubkey_hex: str) -> bool:
        if is_implicit_identity(identity) and identity == pubkey_hex:
            return True
        return bool(self._is_authorized and self._is_authorized(identity, pubkey_hex))

    def verify(self, identity: str, digest: bytes, signature: str) -> bool:
        parsed = parse_signature(signature)
        if parsed is None:
            return False
        pk_hex, pk, sig = parsed
        if not self.key_speaks_for(identity, pk_hex):
            return False
        try:
            Ed25519PublicKey.from_public_bytes(pk).verify(sig, digest)
        except (InvalidSignature, ValueError):
            return False
        return True


# ---------------------------------------------------------------------------
# Signing helpers
# ---------------------------------------------------------------------------


def generate_keypair() -> Tuple[str, str]:
    """Return (secret_key_hex, public_key_hex) for a fresh Ed25519 key."""
    sk = Ed25519PrivateKey.generate()
    sk_bytes = sk.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return sk_bytes.hex(), public_key_hex(sk_bytes.hex())


def public_key_hex(secret_key_hex: str) -> str:
    sk = Ed25519PrivateKey.from_private_bytes(bytes.fromhex(secret_key_hex))
    return sk.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    ).hex()


def sign_digest(secret_key_hex: str, digest: bytes) -> str:
    """Sign `digest` and return the "<pubkey-hex>:<sig-hex>" wire form."""
    sk = Ed25519PrivateKey.from_private_bytes(bytes.fromhex(secret_key_hex))
    return f"{public_key_hex(secret_key_hex)}:{sk.sign(digest).hex()}"


__all__ = [
    "Ed25519Verifier",
    "KeyLookup",
    "is_public_key_hex",
    "is_implicit_identity",
    "parse_signature",
    "generate_keypair",
    "public_key_hex",
    "sign_digest",
]
