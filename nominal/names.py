from __future__ import annotations

"""
Name validation.

A name is valid iff:
  • its length is within [3, 63] bytes,
  • every character is one of a–z, 0–9 or '-',
  • it does not start or end with '-',
  • it contains no '--'.

The predicate is pure and total: anything that is not a `str` is simply
invalid. Upper-case input is rejected rather than folded; callers normalize
before submitting.
"""


from typing import Any, Final, Optional

from .errors import InvalidName

MIN_NAME_LEN: Final[int] = 3
MAX_NAME_LEN: Final[int] = 63

_ALLOWED: Final[frozenset] = frozenset("abcdefghijklmnopqrstuvwxyz0123456789-")


def first_violation(name: Any) -> Optional[str]:
    """Return the first failing rule for `name`, or None if it is valid."""
    if not isinstance(name, str):
        return "type"
    if not (MIN_NAME_LEN <= len(name.encode("utf-8")) <= MAX_NAME_LEN):
        return "length"
    if any(c not in _ALLOWED for c in name):
        return "charset"
    if name[0] == "-" or name[-1] == "-":
        return "hyphen_placement"
    if "--" in name:
        return "consecutive_hyphens"
    return None


def is_valid(name: Any) -> bool:
    return first_violation(name) is None


def validate(name: Any) -> str:
    """Return `name` unchanged, or raise InvalidName naming the failing rule."""
    rule = first_violation(name)
    if rule is not None:
        raise InvalidName(name if isinstance(name, str) else repr(name), rule=rule)
    return name


__all__ = ["MIN_NAME_LEN", "MAX_NAME_LEN", "first_violation", "is_valid", "validate"]
