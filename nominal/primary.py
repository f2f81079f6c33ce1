from __future__ import annotations

"""
Primary-name index: identity → its one canonical name.

Rules
-----
- A registration sets the owner's primary only if the owner has none.
- Transferring N from O to P clears O's primary if it was N, then gives P the
  name as primary only if P has none.
- `set_primary` overwrites unconditionally, but only for a valid, existing
  name the caller owns.

Together these keep `name_of(a) == n` ⇒ `record(n).owner == a`.

The index lives in the registry store (PRIMARY table) and all writes go
through the store's active transaction.
"""

from typing import TYPE_CHECKING, Optional

from .db.kv import PRIMARY
from .errors import Unauthorized
from .events import PrimaryNameCleared, PrimaryNameSet
from .names import validate

if TYPE_CHECKING:  # pragma: no cover
    from .store import RegistryStore


class PrimaryNameIndex:
    def __init__(self, store: "RegistryStore") -> None:
        self._store = store

    def name_of(self, identity: str) -> Optional[str]:
        raw = self._store.view().get(PRIMARY.key(identity))
        return None if raw is None else raw.decode("utf-8")

    def _set(self, identity: str, name: str) -> None:
        with self._store.transaction() as txn:
            txn.put(PRIMARY.key(identity), name.encode("utf-8"))
            txn.emit(PrimaryNameSet(identity, name))

    def _clear(self, identity: str, name: str) -> None:
        with self._store.transaction() as txn:
            txn.delete(PRIMARY.key(identity))
            txn.emit(PrimaryNameCleared(identity, name))

    def on_register(self, owner: str, name: str) -> bool:
        """Returns True if `name` became the owner's primary."""
        if self.name_of(owner) is not None:
            return False
        self._set(owner, name)
        return True

    def on_transfer(self, name: str, old_owner: str, new_owner: str) -> None:
        if old_owner == new_owner:
            return
        if self.name_of(old_owner) == name:
            self._clear(old_owner, name)
        if self.name_of(new_owner) is None:
            self._set(new_owner, name)

    def set_primary(self, caller: str, name: str) -> None:
        with self._store.transaction():
            validate(name)
            rec = self._store.require_record(name)
            if rec.owner != caller:
                raise Unauthorized(caller=caller, required=rec.owner, message="caller does not own the name")
            self._set(caller, name)


__all__ = ["PrimaryNameIndex"]
