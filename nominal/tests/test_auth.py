from __future__ import annotations

from dataclasses import replace

import pytest

from nominal.adapters.verifier import (Ed25519Verifier, generate_keypair,
                                       sign_digest)
from nominal.auth import DIGEST_TAG, AuthorizationGuard, registration_digest
from nominal.errors import (AssetNotAllowed, BadNonce, BadSignature,
                            DeadlineExpired, RelayerNotAllowed, WrongFee,
                            WrongSponsor)
from nominal.tests._support import (ADMIN, BPS, CAROL, FEE, NATIVE, ORIGIN,
                                    START, TREASURY)
from nominal.types import SponsoredRequest


@pytest.fixture
def guard(store) -> AuthorizationGuard:
    store.initialize(ADMIN, treasury=TREASURY, registration_fee=FEE, referrer_bps=BPS)
    return AuthorizationGuard(store, Ed25519Verifier(store.is_key_authorized), origin=ORIGIN)


@pytest.fixture
def keys():
    return generate_keypair()


def _request(owner: str, **over) -> SponsoredRequest:
    base = dict(name="alice", owner=owner, sponsor=CAROL, asset=NATIVE, amount=FEE,
                deadline=START + 3_600, nonce=0)
    base.update(over)
    return SponsoredRequest(**base)


def _sign(guard, sk, req) -> str:
    return sign_digest(sk, guard.digest(req))


def _authorize(guard, caller, req, sig, now=START):
    with guard.store.transaction():
        return guard.authorize(caller, req, sig, now=now)


# ── digest ────────────────────────────────────────────────────────────────────


def test_digest_is_deterministic_and_32_bytes(keys):
    req = _request(keys[1])
    d = registration_digest(req, ORIGIN)
    assert len(d) == 32
    assert d == registration_digest(SponsoredRequest.from_dict(req.to_dict()), ORIGIN)
    assert DIGEST_TAG == b"nominal/register-with-sig/v1"


@pytest.mark.parametrize(
    "field,value",
    [
        ("name", "alicf"),
        ("owner", "bob.id"),
        ("sponsor", "dave.id"),
        ("asset", "usdx"),
        ("amount", FEE + 1),
        ("deadline", START + 1),
        ("nonce", 1),
    ],
)
def test_digest_binds_every_field(keys, field, value):
    req = _request(keys[1])
    assert registration_digest(req, ORIGIN) != registration_digest(replace(req, **{field: value}), ORIGIN)


def test_digest_binds_origin(keys):
    req = _request(keys[1])
    assert registration_digest(req, ORIGIN) != registration_digest(req, "other-deployment")


def test_length_prefix_prevents_field_shifting():
    # "xyz" + "ab" and "xy" + "zab" concatenate to the same bytes
    a = _request("ab", name="xyz")
    b = _request("zab", name="xy")
    assert registration_digest(a, ORIGIN) != registration_digest(b, ORIGIN)


# ── happy path ────────────────────────────────────────────────────────────────


def test_authorize_returns_fee_and_consumes_nonce(guard, keys):
    sk, pk = keys
    req = _request(pk)
    assert _authorize(guard, CAROL, req, _sign(guard, sk, req)) == FEE
    assert guard.store.get_nonce("alice") == 1


def test_deadline_is_inclusive(guard, keys):
    sk, pk = keys
    req = _request(pk, deadline=START)
    assert _authorize(guard, CAROL, req, _sign(guard, sk, req), now=START) == FEE


def test_replay_fails_bad_nonce(guard, keys):
    sk, pk = keys
    req = _request(pk)
    sig = _sign(guard, sk, req)
    _authorize(guard, CAROL, req, sig)
    with pytest.raises(BadNonce) as ei:
        _authorize(guard, CAROL, req, sig)
    assert ei.value.details == {"name": "alice", "expected": 1, "got": 0}
    assert guard.store.get_nonce("alice") == 1


def test_next_nonce_accepted(guard, keys):
    sk, pk = keys
    first = _request(pk)
    _authorize(guard, CAROL, first, _sign(guard, sk, first))
    second = _request(pk, nonce=1)
    _authorize(guard, CAROL, second, _sign(guard, sk, second))
    assert guard.store.get_nonce("alice") == 2


def test_authorized_key_may_sign_for_named_identity(guard, keys):
    sk, pk = keys
    req = _request("alice.id")
    sig = _sign(guard, sk, req)
    with pytest.raises(BadSignature):
        _authorize(guard, CAROL, req, sig)
    guard.store.authorize_key("alice.id", pk)
    assert _authorize(guard, CAROL, req, sig) == FEE


def test_asset_fee_path(guard, keys):
    sk, pk = keys
    guard.store.set_asset_fee(ADMIN, "usdx", 250)
    req = _request(pk, asset="usdx", amount=250)
    assert _authorize(guard, CAROL, req, _sign(guard, sk, req)) == 250


# ── individual checks ─────────────────────────────────────────────────────────


def test_wrong_sponsor(guard, keys):
    sk, pk = keys
    req = _request(pk)
    with pytest.raises(WrongSponsor):
        _authorize(guard, "mallory.id", req, _sign(guard, sk, req))


def test_allowlist_gate(guard, keys):
    sk, pk = keys
    req = _request(pk)
    sig = _sign(guard, sk, req)
    guard.store.set_require_allowlisted_relayer(ADMIN, True)
    with pytest.raises(RelayerNotAllowed):
        _authorize(guard, CAROL, req, sig)
    guard.store.add_relayer(ADMIN, CAROL)
    assert _authorize(guard, CAROL, req, sig) == FEE


def test_allowlist_ignored_when_disabled(guard, keys):
    sk, pk = keys
    req = _request(pk)
    assert not guard.store.is_relayer_allowed(CAROL)
    assert _authorize(guard, CAROL, req, _sign(guard, sk, req)) == FEE


def test_expired_deadline(guard, keys):
    sk, pk = keys
    req = _request(pk, deadline=START - 1)
    with pytest.raises(DeadlineExpired):
        _authorize(guard, CAROL, req, _sign(guard, sk, req))


def test_bad_signature_variants(guard, keys):
    sk, pk = keys
    req = _request(pk)
    other_sk, _ = generate_keypair()
    good = _sign(guard, sk, req)
    for sig in (
        "",
        "not-a-signature",
        good.split(":")[1],
        _sign(guard, other_sk, req),
        _sign(guard, sk, replace(req, amount=FEE + 1)),
        sign_digest(sk, registration_digest(req, "other-deployment")),
    ):
        with pytest.raises(BadSignature):
            _authorize(guard, CAROL, req, sig)
    assert guard.store.get_nonce("alice") == 0


def test_signed_amount_must_match_fee(guard, keys):
    sk, pk = keys
    req = _request(pk, amount=FEE - 1)
    with pytest.raises(WrongFee):
        _authorize(guard, CAROL, req, _sign(guard, sk, req))
    assert guard.store.get_nonce("alice") == 0


def test_unknown_asset(guard, keys):
    sk, pk = keys
    req = _request(pk, asset="usdx")
    with pytest.raises(AssetNotAllowed):
        _authorize(guard, CAROL, req, _sign(guard, sk, req))


# ── ordering ──────────────────────────────────────────────────────────────────


def test_sponsor_checked_before_allowlist_and_deadline(guard, keys):
    _, pk = keys
    guard.store.set_require_allowlisted_relayer(ADMIN, True)
    req = _request(pk, deadline=START - 1)
    with pytest.raises(WrongSponsor):
        _authorize(guard, "mallory.id", req, "")


def test_allowlist_checked_before_deadline(guard, keys):
    _, pk = keys
    guard.store.set_require_allowlisted_relayer(ADMIN, True)
    req = _request(pk, deadline=START - 1)
    with pytest.raises(RelayerNotAllowed):
        _authorize(guard, CAROL, req, "")


def test_deadline_checked_before_nonce(guard, keys):
    _, pk = keys
    req = _request(pk, deadline=START - 1, nonce=7)
    with pytest.raises(DeadlineExpired):
        _authorize(guard, CAROL, req, "")


def test_nonce_checked_before_signature(guard, keys):
    _, pk = keys
    req = _request(pk, nonce=7)
    with pytest.raises(BadNonce):
        _authorize(guard, CAROL, req, "")


def test_signature_checked_before_fee(guard, keys):
    _, pk = keys
    req = _request(pk, amount=1)
    with pytest.raises(BadSignature):
        _authorize(guard, CAROL, req, "")


def test_failed_check_leaves_nonce_untouched_in_outer_transaction(guard, keys):
    sk, pk = keys
    req = _request(pk)
    sig = _sign(guard, sk, req)
    with pytest.raises(RuntimeError):
        with guard.store.transaction():
            guard.authorize(CAROL, req, sig, now=START)
            raise RuntimeError("later step failed")
    assert guard.store.get_nonce("alice") == 0
