from __future__ import annotations
"""
Nominal - pay-once human-readable name registry.

A party claims a unique name, points it at a resolution target and may later
transfer it. Registration is paid once, either directly or by a sponsor acting
on the owner's signed request; the sponsor earns a configurable referrer share.

Public surface (lazily loaded):
- config, errors, events, logging, metrics
- names, fees, store, primary, auth, service
- adapters, db, types, cli
"""


import importlib
from types import ModuleType
from typing import List

from .version import __version__

__all__: List[str] = [
    "__version__",
    "config",
    "errors",
    "events",
    "logging",
    "metrics",
    "names",
    "fees",
    "store",
    "primary",
    "auth",
    "service",
    "adapters",
    "db",
    "types",
    "cli",
]

# --- Lazy module loader (PEP 562) -------------------------------------------------

_lazy_modules = set(__all__) - {"__version__"}


def __getattr__(name: str) -> ModuleType:
    if name in _lazy_modules:
        mod = importlib.import_module(f".{name}", __name__)
        globals()[name] = mod
        return mod
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> List[str]:
    return sorted(list(globals().keys()) + list(_lazy_modules))
