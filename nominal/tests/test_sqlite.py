from __future__ import annotations

import pytest

from nominal.adapters.clock import ManualClock
from nominal.adapters.ledger import Ledger
from nominal.config import NominalConfig
from nominal.db import MemoryKV, SQLiteKV, _parse_uri, open_kv
from nominal.db.kv import RECORDS, Prefix, split_key
from nominal.db.sqlite import _prefix_hi
from nominal.events import InMemoryEventSink
from nominal.service import RegistrationService
from nominal.store import RegistryStore
from nominal.tests._support import (ADMIN, ALICE, BPS, FEE, NATIVE, START,
                                    TREASURY, make_service)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "registry.db"


def test_parse_uri():
    assert _parse_uri("memory://") == ("memory", "")
    assert _parse_uri("sqlite:///tmp/reg.db") == ("sqlite", "tmp/reg.db")
    assert _parse_uri("sqlite:////abs/reg.db") == ("sqlite", "/abs/reg.db")
    assert _parse_uri("  data/reg.db ") == ("sqlite", "data/reg.db")
    with pytest.raises(ValueError):
        _parse_uri("postgres://nope")


def test_open_kv_backends(db_path):
    assert isinstance(open_kv("memory://"), MemoryKV)
    kv = open_kv(f"sqlite:///{db_path}")
    assert isinstance(kv, SQLiteKV)
    kv.close()
    assert db_path.exists()


def test_open_missing_file_without_create(tmp_path):
    with pytest.raises(FileNotFoundError):
        open_kv(f"sqlite:///{tmp_path / 'missing.db'}", create=False)


def test_prefix_hi():
    assert _prefix_hi(b"ab\x01") == b"ab\x02"
    assert _prefix_hi(b"a\xff") == b"b"
    assert _prefix_hi(b"\xff\xff") is None
    assert _prefix_hi(b"") is None


def test_prefix_scan_is_ordered_and_bounded(db_path):
    kv = open_kv(f"sqlite:///{db_path}")
    other = Prefix(b"s")
    with kv.batch() as b:
        for name in ("carol", "alice", "bob"):
            b.put(RECORDS.key(name), name.encode())
        b.put(other.key("zzz"), b"x")
        b.put(b"\xff\xff\x01", b"edge")
    names = [split_key(RECORDS, k)[0] for k, _ in kv.iter_prefix(RECORDS.raw)]
    # byte order of the encoded key: length prefix first
    assert names == [b"bob", b"alice", b"carol"]
    assert list(kv.iter_prefix(b"\xff\xff")) == [(b"\xff\xff\x01", b"edge")]
    kv.close()


def test_batch_rolls_back_on_error(db_path):
    kv = open_kv(f"sqlite:///{db_path}")
    kv.put(b"k1", b"v1")
    with pytest.raises(RuntimeError):
        with kv.batch() as b:
            b.put(b"k2", b"v2")
            b.delete(b"k1")
            raise RuntimeError("abort")
    assert kv.get(b"k1") == b"v1"
    assert not kv.has(b"k2")
    # the lock is released after a rollback
    with kv.batch() as b:
        b.put(b"k3", b"v3")
    assert kv.get(b"k3") == b"v3"
    kv.close()


def test_put_delete_roundtrip(db_path):
    kv = open_kv(str(db_path))
    kv.put(b"a", b"1")
    kv.put(b"a", b"2")
    assert kv.get(b"a") == b"2"
    kv.delete(b"a")
    kv.delete(b"a")
    assert kv.get(b"a") is None
    kv.close()


def test_registry_state_survives_reopen(db_path):
    uri = f"sqlite:///{db_path}"

    kv = open_kv(uri)
    store = RegistryStore(kv, native_asset=NATIVE)
    ledger = Ledger(kv, store=store)
    svc = make_service(store, ledger, ManualClock(START), InMemoryEventSink())
    svc.initialize(ADMIN, treasury=TREASURY, registration_fee=FEE, referrer_bps=BPS)
    ledger.mint(ALICE, NATIVE, 5_000)
    svc.register_direct(ALICE, "alice")
    svc.set_resolved(ALICE, "alice", "0xabc")
    svc.set_asset_fee(ADMIN, "usdx", 42)
    svc.add_relayer(ADMIN, "relay.id")
    store.close()

    kv = open_kv(uri, create=False)
    store = RegistryStore(kv, native_asset=NATIVE)
    ledger = Ledger(kv, store=store)
    rec = store.get_record("alice")
    assert rec.owner == ALICE and rec.resolved == "0xabc"
    assert store.primary.name_of(ALICE) == "alice"
    assert store.get_config().registration_fee == FEE
    assert store.fee_for("usdx") == 42
    assert store.list_relayers() == ["relay.id"]
    assert ledger.balance(ALICE, NATIVE) == 4_000
    assert ledger.balance(TREASURY, NATIVE) == FEE
    store.close()


def test_service_over_shared_sqlite_kv(db_path):
    """Ledger and registry share one connection; settlement legs commit with the record."""
    cfg = NominalConfig()
    cfg.deployment.db_uri = f"sqlite:///{db_path}"
    svc = RegistrationService.from_config(cfg, clock=ManualClock(START), sinks=[])
    svc.initialize(ADMIN, treasury=TREASURY, registration_fee=FEE, referrer_bps=BPS)
    svc.gateway.mint(ALICE, NATIVE, 2_000)
    svc.register_direct(ALICE, "alice")
    assert svc.gateway.balance(TREASURY, NATIVE) == FEE
    assert svc.get_record("alice").owner == ALICE
    svc.store.close()
