from __future__ import annotations

import pytest

from nominal.db import MemoryKV
from nominal.db.kv import RECORDS
from nominal.errors import (AssetNotAllowed, InvalidBps, InvalidName,
                            NameNotFound, NameTaken, NotInitialized,
                            Unauthorized, WrongFee, ZeroTreasury)
from nominal.events import EventType
from nominal.store import RegistryStore
from nominal.tests._support import ADMIN, ALICE, BOB, CAROL, NATIVE, TREASURY

NOW = 1_700_000_000


def _init(store: RegistryStore) -> None:
    store.initialize(ADMIN, treasury=TREASURY, registration_fee=1_000, referrer_bps=300)


def _snapshot(kv: MemoryKV):
    return dict(kv.iter_prefix(b""))


# ── records ───────────────────────────────────────────────────────────────────


def test_register_creates_record_with_owner_as_default_target(store):
    rec = store.register("alice", ALICE, now=NOW)
    assert rec.owner == ALICE
    assert rec.resolved == ALICE
    assert rec.updated_at == NOW
    assert store.get_record("alice") == rec


def test_register_explicit_target(store):
    rec = store.register("alice", ALICE, "0xabc", now=NOW)
    assert rec.resolved == "0xabc"


def test_duplicate_registration_fails_without_mutation(store, kv):
    store.register("alice", ALICE, now=NOW)
    before = _snapshot(kv)
    with pytest.raises(NameTaken):
        store.register("alice", BOB, now=NOW + 10)
    assert _snapshot(kv) == before
    assert store.get_record("alice").owner == ALICE


def test_register_rejects_invalid_names(store, kv):
    with pytest.raises(InvalidName):
        store.register("Alice", ALICE, now=NOW)
    assert len(kv) == 0


def test_set_resolved_owner_only(store):
    store.register("alice", ALICE, now=NOW)
    with pytest.raises(Unauthorized):
        store.set_resolved("alice", BOB, "0xbad", now=NOW + 1)
    rec = store.set_resolved("alice", ALICE, "0xgood", now=NOW + 2)
    assert rec.resolved == "0xgood"
    assert rec.updated_at == NOW + 2


def test_set_resolved_unknown_name(store):
    with pytest.raises(NameNotFound):
        store.set_resolved("nobody", ALICE, "x", now=NOW)


def test_transfer_owner(store):
    store.register("alice", ALICE, now=NOW)
    with pytest.raises(Unauthorized):
        store.transfer_owner("alice", BOB, BOB, now=NOW + 1)
    rec = store.transfer_owner("alice", ALICE, BOB, now=NOW + 5)
    assert rec.owner == BOB
    assert rec.updated_at == NOW + 5
    # the resolution target is left alone
    assert rec.resolved == ALICE


def test_transfer_to_null_identity_rejected(store):
    store.register("alice", ALICE, now=NOW)
    with pytest.raises(Unauthorized):
        store.transfer_owner("alice", ALICE, "", now=NOW)


# ── transactions ──────────────────────────────────────────────────────────────


def test_transaction_discards_on_error(store, kv):
    with pytest.raises(RuntimeError):
        with store.transaction() as txn:
            store.register("alice", ALICE, now=NOW)
            assert txn.pending_writes > 0
            # staged writes are visible inside the transaction
            assert store.get_record("alice") is not None
            raise RuntimeError("boom")
    assert len(kv) == 0
    assert store.get_record("alice") is None


def test_transaction_commits_once_and_collects_events(store, kv):
    with store.transaction() as txn:
        store.register("alice", ALICE, now=NOW)
        store.register("bob", BOB, now=NOW)
        # nothing reaches the backend before commit
        assert not kv.has(RECORDS.key("alice"))
    assert txn.committed
    assert kv.has(RECORDS.key("alice"))
    assert [e.etype for e in txn.events] == [EventType.PRIMARY_NAME_SET, EventType.PRIMARY_NAME_SET]


def test_nested_calls_join_the_outer_transaction(store, kv):
    with pytest.raises(NameTaken):
        with store.transaction():
            store.register("alice", ALICE, now=NOW)
            store.register("alice", BOB, now=NOW)
    assert len(kv) == 0


def test_iter_prefix_merges_overlay(store):
    _init(store)
    store.add_relayer(ADMIN, "r1.id")
    with store.transaction():
        store.add_relayer(ADMIN, "r2.id")
        store.remove_relayer(ADMIN, "r1.id")
        assert store.list_relayers() == ["r2.id"]
    assert store.list_relayers() == ["r2.id"]


# ── config & admin ────────────────────────────────────────────────────────────


def test_uninitialized_registry(store):
    assert not store.is_initialized()
    with pytest.raises(NotInitialized):
        store.require_config()
    with pytest.raises(NotInitialized):
        store.set_fee(ADMIN, 5)


def test_initialize_once(store):
    _init(store)
    cfg = store.get_config()
    assert cfg.admin == ADMIN and cfg.treasury == TREASURY
    assert cfg.registration_fee == 1_000 and cfg.referrer_bps == 300
    assert cfg.require_allowlisted_relayer is False
    with pytest.raises(Unauthorized):
        _init(store)


@pytest.mark.parametrize(
    "kwargs,err",
    [
        (dict(treasury="", registration_fee=1, referrer_bps=0), ZeroTreasury),
        (dict(treasury=TREASURY, registration_fee=1, referrer_bps=10_001), InvalidBps),
        (dict(treasury=TREASURY, registration_fee=-1, referrer_bps=0), WrongFee),
    ],
)
def test_initialize_validation(store, kwargs, err):
    with pytest.raises(err):
        store.initialize(ADMIN, **kwargs)
    assert not store.is_initialized()


def test_admin_setters_require_admin(store):
    _init(store)
    for call in (
        lambda c: store.set_fee(c, 5),
        lambda c: store.set_treasury(c, "t2.id"),
        lambda c: store.set_referrer_bps(c, 100),
        lambda c: store.set_asset_fee(c, "usdx", 5),
        lambda c: store.add_relayer(c, CAROL),
        lambda c: store.remove_relayer(c, CAROL),
        lambda c: store.set_require_allowlisted_relayer(c, True),
        lambda c: store.transfer_admin(c, BOB),
    ):
        with pytest.raises(Unauthorized):
            call(ALICE)


def test_admin_setters(store):
    _init(store)
    assert store.set_fee(ADMIN, 2_000).registration_fee == 2_000
    assert store.set_treasury(ADMIN, "t2.id").treasury == "t2.id"
    assert store.set_referrer_bps(ADMIN, 10_000).referrer_bps == 10_000
    assert store.set_require_allowlisted_relayer(ADMIN, True).require_allowlisted_relayer is True

    with pytest.raises(InvalidBps):
        store.set_referrer_bps(ADMIN, 10_001)
    with pytest.raises(ZeroTreasury):
        store.set_treasury(ADMIN, "")
    assert store.get_config().treasury == "t2.id"


def test_two_step_admin_transfer(store):
    _init(store)
    store.transfer_admin(ADMIN, BOB)
    assert store.get_config().pending_admin == BOB
    with pytest.raises(Unauthorized):
        store.accept_admin(CAROL)
    cfg = store.accept_admin(BOB)
    assert cfg.admin == BOB
    assert cfg.pending_admin is None
    # the old admin lost its rights
    with pytest.raises(Unauthorized):
        store.set_fee(ADMIN, 1)


def test_accept_admin_without_pending(store):
    _init(store)
    with pytest.raises(Unauthorized):
        store.accept_admin(ADMIN)


# ── asset fees, relayers, nonces, keys ────────────────────────────────────────


def test_fee_for_assets(store):
    _init(store)
    assert store.fee_for(NATIVE) == 1_000
    with pytest.raises(AssetNotAllowed):
        store.fee_for("usdx")
    store.set_asset_fee(ADMIN, "usdx", 500)
    assert store.fee_for("usdx") == 500
    store.set_asset_fee(ADMIN, "usdx", 500, enabled=False)
    with pytest.raises(AssetNotAllowed):
        store.fee_for("usdx")
    assert [a.asset for a in store.list_asset_fees()] == ["usdx"]


def test_native_asset_fee_goes_through_set_fee(store):
    _init(store)
    with pytest.raises(AssetNotAllowed):
        store.set_asset_fee(ADMIN, NATIVE, 5)


def test_relayers_idempotent(store):
    _init(store)
    store.add_relayer(ADMIN, CAROL)
    store.add_relayer(ADMIN, CAROL)
    assert store.is_relayer_allowed(CAROL)
    assert store.list_relayers() == [CAROL]
    store.remove_relayer(ADMIN, CAROL)
    store.remove_relayer(ADMIN, CAROL)
    assert not store.is_relayer_allowed(CAROL)


def test_nonces_start_at_zero_and_bump(store):
    assert store.get_nonce("alice") == 0
    assert store.bump_nonce("alice") == 1
    assert store.bump_nonce("alice") == 2
    assert store.get_nonce("alice") == 2
    assert store.get_nonce("bob") == 0


def test_authorized_keys(store):
    pk1, pk2 = "11" * 32, "AA" * 32
    assert store.authorize_key(ALICE, pk1) is True
    assert store.authorize_key(ALICE, pk1) is False
    assert store.authorize_key(ALICE, pk2) is True
    assert store.is_key_authorized(ALICE, pk2.lower())
    assert store.keys_of(ALICE) == sorted([pk1, pk2.lower()])
    assert store.keys_of(BOB) == []
    assert store.revoke_key(ALICE, pk1) is True
    assert store.revoke_key(ALICE, pk1) is False
    assert store.keys_of(ALICE) == [pk2.lower()]
