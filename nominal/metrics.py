from __future__ import annotations

"""
Prometheus metrics for the Nominal registry.

We expose counters and histograms covering:
- registrations: successful registrations by path (direct / sponsored) and asset
- failures: aborted operations by operation and error code
- sinks: committed events a sink failed to accept
- fees: settled fee totals and the referrer / treasury shares
- latencies: wall time per service operation

Metrics live on a dedicated registry so embedding apps can merge or expose it
directly. `make_prometheus_asgi_app` serves it without a web framework.
"""


import time
from contextlib import contextmanager
from typing import Iterator, Optional

from prometheus_client import (CONTENT_TYPE_LATEST, CollectorRegistry, Counter,
                               Histogram, generate_latest)

REGISTRY = CollectorRegistry()

# ────────────────────────────────────────────────────────────────────────────────
# Label conventions
#   path: "direct" | "sponsored"
#   op:   service operation name (register_direct, set_resolved, ...)
#   code: NominalError.code, or "internal" for anything else
# ────────────────────────────────────────────────────────────────────────────────

REGISTRATIONS = Counter(
    "nominal_registrations_total",
    "Successful name registrations by path and asset.",
    labelnames=("path", "asset"),
    registry=REGISTRY,
)

FAILURES = Counter(
    "nominal_operation_failures_total",
    "Aborted registry operations by operation and error code.",
    labelnames=("op", "code"),
    registry=REGISTRY,
)

COMPENSATIONS = Counter(
    "nominal_settlement_compensations_total",
    "Payment legs reversed after a later leg or the commit failed.",
    labelnames=("result",),  # "ok" | "failed"
    registry=REGISTRY,
)

SINK_FAILURES = Counter(
    "nominal_event_sink_failures_total",
    "Committed events a sink failed to accept, by event type.",
    labelnames=("event",),
    registry=REGISTRY,
)

_AMOUNT_BUCKETS = (1, 10, 100, 1_000, 10_000, 100_000, 1_000_000, 10_000_000, 100_000_000, 1_000_000_000)

FEE_AMOUNT = Histogram(
    "nominal_fee_amount_units",
    "Settled registration fees in the asset's base unit, by share.",
    labelnames=("share",),  # "total" | "treasury" | "referrer"
    buckets=_AMOUNT_BUCKETS,
    registry=REGISTRY,
)

_LATENCY_BUCKETS = (0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5)

OP_SECONDS = Histogram(
    "nominal_operation_seconds",
    "Wall time of registry service operations.",
    labelnames=("op",),
    buckets=_LATENCY_BUCKETS,
    registry=REGISTRY,
)

# ────────────────────────────────────────────────────────────────────────────────
# Recording helpers
# ────────────────────────────────────────────────────────────────────────────────


def record_registration(path: str, asset: str, total: int, treasury: int, referrer: int) -> None:
    REGISTRATIONS.labels(path=path, asset=asset).inc()
    FEE_AMOUNT.labels(share="total").observe(total)
    FEE_AMOUNT.labels(share="treasury").observe(treasury)
    if referrer:
        FEE_AMOUNT.labels(share="referrer").observe(referrer)


def record_failure(op: str, code: str) -> None:
    FAILURES.labels(op=op, code=code).inc()


def record_compensation(ok: bool) -> None:
    COMPENSATIONS.labels(result="ok" if ok else "failed").inc()


def record_sink_failure(event: str) -> None:
    SINK_FAILURES.labels(event=event).inc()


@contextmanager
def time_op(op: str) -> Iterator[None]:
    """Context manager observing the latency of one service operation."""
    start = time.perf_counter()
    try:
        yield
    finally:
        OP_SECONDS.labels(op=op).observe(time.perf_counter() - start)


# ────────────────────────────────────────────────────────────────────────────────
# ASGI mounting helper
# ────────────────────────────────────────────────────────────────────────────────


def make_prometheus_asgi_app(registry: Optional[CollectorRegistry] = None):
    """
    Return a minimal ASGI app that serves Prometheus metrics at '/'.
    No external web framework required.
    """
    reg = registry or REGISTRY

    async def app(scope, receive, send):
        if scope["type"] != "http" or (scope.get("path") or "/") != "/":
            await send({"type": "http.response.start", "status": 404, "headers": []})
            await send({"type": "http.response.body", "body": b"Not Found"})
            return
        payload = generate_latest(reg)
        headers = [
            (b"content-type", CONTENT_TYPE_LATEST.encode("ascii")),
            (b"cache-control", b"no-cache, no-store, must-revalidate"),
        ]
        await send({"type": "http.response.start", "status": 200, "headers": headers})
        await send({"type": "http.response.body", "body": payload})

    return app


__all__ = [
    "REGISTRY",
    "REGISTRATIONS",
    "FAILURES",
    "COMPENSATIONS",
    "SINK_FAILURES",
    "FEE_AMOUNT",
    "OP_SECONDS",
    "record_registration",
    "record_failure",
    "record_compensation",
    "record_sink_failure",
    "time_op",
    "make_prometheus_asgi_app",
]
