from __future__ import annotations

import asyncio
import io
import json
import logging

import pytest

from nominal import logging as nlog
from nominal import metrics
from nominal.errors import NameTaken
from nominal.events import EventType, InMemoryEventSink, dispatch, logging_sink
from nominal.events import NameRegistered, PrimaryNameSet
from nominal.tests._support import ALICE, BOB


@pytest.fixture
def captured():
    buf = io.StringIO()
    nlog.configure(json=True, level="DEBUG", stream=buf)
    yield buf
    root = logging.getLogger("nominal")
    for h in list(root.handlers):
        root.removeHandler(h)


def _lines(buf: io.StringIO):
    return [json.loads(line) for line in buf.getvalue().splitlines() if line.strip()]


def test_op_scope_binds_and_restores_context(captured):
    log = nlog.get_logger("nominal.test")
    assert "op" not in nlog.context()
    with nlog.op_scope("register_direct", name="alice", caller=None) as trace_id:
        ctx = nlog.context()
        assert ctx["op"] == "register_direct"
        assert ctx["trace_id"] == trace_id
        assert "caller" not in ctx
        log.info("inside", extra={"fee": 1000})
    assert "op" not in nlog.context()

    (line,) = _lines(captured)
    assert line["msg"] == "inside"
    assert line["op"] == "register_direct"
    assert line["name"] == "alice"
    assert line["fee"] == 1000
    assert line["logger"] == "nominal.test"


def test_nested_scopes_share_trace_id():
    with nlog.op_scope("outer") as outer:
        with nlog.op_scope("inner") as inner:
            assert inner == outer
            assert nlog.context()["op"] == "inner"
        assert nlog.context()["op"] == "outer"


def test_bind_and_unbind():
    nlog.bind(caller="alice.id", raw=b"\x01\x02")
    try:
        assert nlog.context()["raw"] == "0102"
    finally:
        nlog.unbind("caller", "raw")
    assert "caller" not in nlog.context()


def test_text_formatter_line():
    rec = logging.LogRecord("nominal.x", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    rec.fee = 5
    with nlog.op_scope("set_fee"):
        line = nlog.TextFormatter().format(rec)
    assert "| INFO  | nominal.x |" in line
    assert "op=set_fee" in line
    assert "fee=5" in line
    assert line.endswith("| hello world")


def test_service_failure_is_logged_with_code(svc, captured):
    svc.register_direct(ALICE, "alice")
    with pytest.raises(NameTaken):
        svc.register_direct(BOB, "alice")
    warn = [ln for ln in _lines(captured) if ln["level"] == "WARNING"]
    assert warn and warn[-1]["code"] == "NOMINAL_NAME_TAKEN"
    assert warn[-1]["op"] == "register_direct"
    assert warn[-1]["caller"] == BOB


def test_logging_sink_and_dispatch(captured):
    mem = InMemoryEventSink()
    events = [PrimaryNameSet(ALICE, "alice"), NameRegistered("alice", ALICE, ALICE, ALICE, "native", 1000)]
    dispatch(events, [mem, logging_sink])
    assert [e.etype for e in mem.events] == [EventType.PRIMARY_NAME_SET, EventType.NAME_REGISTERED]
    lines = _lines(captured)
    assert [ln["msg"] for ln in lines] == ["PrimaryNameSet", "NameRegistered"]
    assert lines[1]["event"]["amount"] == 1000


def test_dispatch_isolates_failing_sinks(captured):
    mem = InMemoryEventSink()

    def broken(event):
        raise RuntimeError("sink down")

    events = [PrimaryNameSet(ALICE, "alice"), PrimaryNameSet(BOB, "bob")]
    assert dispatch(events, [broken, mem]) == 2
    assert len(mem.events) == 2
    errors = [ln for ln in _lines(captured) if ln["level"] == "ERROR"]
    assert [ln["msg"] for ln in errors] == ["event sink failed"] * 2
    assert errors[0]["event"] == "PrimaryNameSet"


def test_record_helpers_update_samples():
    def sample(name, **labels):
        return metrics.REGISTRY.get_sample_value(name, labels) or 0.0

    before = sample("nominal_registrations_total", path="sponsored", asset="probe")
    metrics.record_registration("sponsored", "probe", 1000, 970, 30)
    assert sample("nominal_registrations_total", path="sponsored", asset="probe") == before + 1

    fails = sample("nominal_operation_failures_total", op="probe", code="X")
    metrics.record_failure("probe", "X")
    assert sample("nominal_operation_failures_total", op="probe", code="X") == fails + 1

    count = sample("nominal_operation_seconds_count", op="probe")
    with metrics.time_op("probe"):
        pass
    assert sample("nominal_operation_seconds_count", op="probe") == count + 1


def test_asgi_exposition():
    app = metrics.make_prometheus_asgi_app()
    sent = []

    async def receive():
        return {"type": "http.request"}

    async def send(msg):
        sent.append(msg)

    asyncio.run(app({"type": "http", "path": "/"}, receive, send))
    assert sent[0]["status"] == 200
    assert b"nominal_registrations_total" in sent[1]["body"]

    sent.clear()
    asyncio.run(app({"type": "http", "path": "/other"}, receive, send))
    assert sent[0]["status"] == 404
