from __future__ import annotations

import os
from typing import Tuple

import pytest

from nominal.adapters.clock import ManualClock
from nominal.adapters.ledger import Ledger
from nominal.adapters.verifier import generate_keypair
from nominal.db import MemoryKV
from nominal.events import InMemoryEventSink
from nominal.service import RegistrationService
from nominal.store import RegistryStore
from nominal.tests._support import (ADMIN, ALICE, BOB, BPS, CAROL, FEE, NATIVE,
                                    START, TREASURY, make_service)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep NOMINAL_* from the developer's shell out of the tests."""
    for k in list(os.environ):
        if k.startswith("NOMINAL_"):
            monkeypatch.delenv(k, raising=False)


@pytest.fixture
def kv() -> MemoryKV:
    return MemoryKV()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture
def store(kv) -> RegistryStore:
    return RegistryStore(kv, native_asset=NATIVE)


@pytest.fixture
def ledger() -> Ledger:
    return Ledger(MemoryKV())


@pytest.fixture
def sink() -> InMemoryEventSink:
    return InMemoryEventSink()


@pytest.fixture
def svc(store, ledger, clock, sink) -> RegistrationService:
    """Initialized registry (fee 1000, 3% referrer) with funded ALICE / BOB / CAROL."""
    s = make_service(store, ledger, clock, sink)
    s.initialize(ADMIN, treasury=TREASURY, registration_fee=FEE, referrer_bps=BPS)
    for who in (ALICE, BOB, CAROL):
        ledger.mint(who, NATIVE, 10_000)
    sink.clear()
    return s


@pytest.fixture
def owner_key() -> Tuple[str, str]:
    """(secret_key_hex, public_key_hex); the public key hex is an implicit identity."""
    return generate_keypair()
