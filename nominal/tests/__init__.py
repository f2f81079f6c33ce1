"""
nominal.tests package bootstrap.

Registers named Hypothesis profiles and picks one from HYPOTHESIS_PROFILE,
otherwise "ci" when the CI env var is truthy and "dev" locally. Re-exports
`given` / `st` for the property tests:

    from nominal.tests import given, st
"""
from __future__ import annotations

import os

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

settings.register_profile(
    "dev",
    settings(
        max_examples=100,
        deadline=None,
        suppress_health_check=(HealthCheck.too_slow, HealthCheck.filter_too_much),
    ),
)
settings.register_profile(
    "ci",
    settings(
        max_examples=300,
        deadline=None,
        derandomize=True,
        suppress_health_check=(HealthCheck.too_slow, HealthCheck.filter_too_much),
    ),
)
settings.register_profile("fast", settings(max_examples=25, deadline=None))


def _truthy(v: str | None) -> bool:
    return (v or "").strip().lower() in ("1", "true", "yes", "on")


settings.load_profile(os.getenv("HYPOTHESIS_PROFILE") or ("ci" if _truthy(os.getenv("CI")) else "dev"))

__all__ = ["given", "settings", "st"]
