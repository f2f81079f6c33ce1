from __future__ import annotations

import pytest

from nominal.db import MemoryKV
from nominal.errors import InvalidName, NameNotFound, NameTaken, Unauthorized
from nominal.events import EventType
from nominal.store import RegistryStore
from nominal.tests import given, settings, st
from nominal.tests._support import ALICE, BOB, CAROL

NOW = 1_700_000_000


def _owner_invariant_holds(store, identities) -> bool:
    for who in identities:
        name = store.primary.name_of(who)
        if name is not None and store.get_record(name).owner != who:
            return False
    return True


def test_first_registration_becomes_primary(store):
    store.register("alice", ALICE, now=NOW)
    store.register("alice-two", ALICE, now=NOW)
    assert store.primary.name_of(ALICE) == "alice"
    assert store.primary.name_of(BOB) is None


def test_transfer_moves_primary_when_it_pointed_at_the_name(store):
    store.register("alice", ALICE, now=NOW)
    with store.transaction() as txn:
        store.transfer_owner("alice", ALICE, BOB, now=NOW)
    assert store.primary.name_of(ALICE) is None
    assert store.primary.name_of(BOB) == "alice"
    assert [e.etype for e in txn.events] == [
        EventType.PRIMARY_NAME_CLEARED,
        EventType.PRIMARY_NAME_SET,
        EventType.NAME_TRANSFERRED,
    ]


def test_transfer_keeps_recipients_existing_primary(store):
    store.register("alice", ALICE, now=NOW)
    store.register("bob", BOB, now=NOW)
    store.transfer_owner("alice", ALICE, BOB, now=NOW)
    assert store.primary.name_of(BOB) == "bob"
    assert store.primary.name_of(ALICE) is None


def test_transfer_of_non_primary_name_leaves_sender_primary(store):
    store.register("alice", ALICE, now=NOW)
    store.register("spare", ALICE, now=NOW)
    store.transfer_owner("spare", ALICE, BOB, now=NOW)
    assert store.primary.name_of(ALICE) == "alice"
    assert store.primary.name_of(BOB) == "spare"


def test_self_transfer_is_a_primary_noop(store):
    store.register("alice", ALICE, now=NOW)
    with store.transaction() as txn:
        store.transfer_owner("alice", ALICE, ALICE, now=NOW + 1)
    assert store.primary.name_of(ALICE) == "alice"
    assert [e.etype for e in txn.events] == [EventType.NAME_TRANSFERRED]


def test_set_primary_overwrites(store):
    store.register("alice", ALICE, now=NOW)
    store.register("alice-two", ALICE, now=NOW)
    store.primary.set_primary(ALICE, "alice-two")
    assert store.primary.name_of(ALICE) == "alice-two"


def test_set_primary_checks(store):
    store.register("alice", ALICE, now=NOW)
    with pytest.raises(InvalidName):
        store.primary.set_primary(ALICE, "A")
    with pytest.raises(NameNotFound):
        store.primary.set_primary(ALICE, "missing")
    with pytest.raises(Unauthorized):
        store.primary.set_primary(BOB, "alice")
    assert store.primary.name_of(BOB) is None


_PEOPLE = (ALICE, BOB, CAROL)
_NAMES = ("aaa", "bbb", "ccc", "ddd")

_ops = st.lists(
    st.one_of(
        st.tuples(st.just("register"), st.sampled_from(_NAMES), st.sampled_from(_PEOPLE)),
        st.tuples(st.just("transfer"), st.sampled_from(_NAMES), st.sampled_from(_PEOPLE)),
        st.tuples(st.just("primary"), st.sampled_from(_NAMES), st.sampled_from(_PEOPLE)),
    ),
    max_size=25,
)


@settings(max_examples=60)
@given(_ops)
def test_primary_always_points_at_an_owned_name(ops):
    store = RegistryStore(MemoryKV())
    for kind, name, who in ops:
        try:
            if kind == "register":
                store.register(name, who, now=NOW)
            elif kind == "transfer":
                rec = store.get_record(name)
                if rec is not None:
                    store.transfer_owner(name, rec.owner, who, now=NOW)
            else:
                store.primary.set_primary(who, name)
        except (NameTaken, NameNotFound, Unauthorized):
            pass
        assert _owner_invariant_holds(store, _PEOPLE)
