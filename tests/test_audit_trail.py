from __future__ import annotations

import json
import os

from privgate.core.audit import AuditTrail, JsonlAuditSink, MemoryAuditSink, NullAuditSink
from privgate.core.audit.models import AuditEvent, AuditSeverity
from privgate.core.audit.redaction import audit_redact
from tests.helpers.log_assertions import read_jsonl


class _BrokenSink(MemoryAuditSink):
    name = "broken"

    def write(self, event):
        raise OSError("disk full")


class _TrackingSink(MemoryAuditSink):
    def __init__(self):
        super().__init__()
        self.closed = False

    def close(self):
        self.closed = True


def test_jsonl_chain_verifies(tmp_path):
    path = os.path.join(str(tmp_path), "logs", "audit.jsonl")
    trail = AuditTrail(JsonlAuditSink(path=path))
    for i in range(3):
        trail.emit("consent.granted", tenant_id="T1", actor_id="U1", meta={"n": i})
    rows = read_jsonl(path)
    assert len(rows) == 3
    assert rows[1]["prev_hash"] == rows[0]["hash"]
    assert trail.sink.verify() == {"ok": True, "checked": 3, "broken_at": None}


def test_jsonl_chain_detects_tampering(tmp_path):
    path = os.path.join(str(tmp_path), "audit.jsonl")
    sink = JsonlAuditSink(path=path)
    trail = AuditTrail(sink)
    trail.emit("a", tenant_id="T1")
    second = trail.emit("b", tenant_id="T1")
    trail.emit("c", tenant_id="T1")

    rows = read_jsonl(path)
    rows[1]["tenant_id"] = "T2"
    with open(path, "w", encoding="utf-8") as f:
        for r in rows:
            f.write(json.dumps(r) + "\n")
    res = JsonlAuditSink(path=path).verify()
    assert res["ok"] is False
    assert res["checked"] == 1
    assert res["broken_at"] == second.event_id


def test_jsonl_chain_continues_across_instances(tmp_path):
    path = os.path.join(str(tmp_path), "audit.jsonl")
    AuditTrail(JsonlAuditSink(path=path)).emit("a")
    AuditTrail(JsonlAuditSink(path=path)).emit("b")
    assert JsonlAuditSink(path=path).verify()["ok"] is True


def test_set_sink_swaps_and_closes_previous():
    first = _TrackingSink()
    second = MemoryAuditSink()
    trail = AuditTrail(first)
    trail.emit("one")
    trail.set_sink(second)
    trail.emit("two")
    assert first.closed is True
    assert [e.event for e in first.events] == ["one"]
    assert [e.event for e in second.events] == ["two"]


def test_close_stops_emission():
    sink = _TrackingSink()
    trail = AuditTrail(sink)
    trail.close()
    assert sink.closed is True
    assert trail.emit("late") is None
    assert sink.events == []
    assert isinstance(trail.sink, NullAuditSink)


def test_failing_sink_never_raises():
    trail = AuditTrail(_BrokenSink())
    assert trail.emit("x", tenant_id="T1") is None
    assert trail.dropped == 1


def test_over_long_ids_are_clipped_not_dropped():
    sink = MemoryAuditSink()
    trail = AuditTrail(sink)
    ev = trail.emit("x", tenant_id="t" * 200, actor_id="a" * 300, trace_id="r" * 100)
    assert ev is not None
    assert ev.tenant_id == "t" * 128
    assert ev.actor_id == "a" * 128
    assert ev.trace_id == "r" * 64
    assert trail.dropped == 0
    assert len(sink.events) == 1


def test_invalid_event_is_counted_and_never_raises():
    sink = MemoryAuditSink()
    trail = AuditTrail(sink)
    assert trail.emit("", tenant_id="T1") is None
    assert trail.emit("e" * 121, tenant_id="T1") is None
    assert trail.dropped == 2
    assert sink.events == []


def test_jsonl_chain_detects_removed_line(tmp_path):
    path = os.path.join(str(tmp_path), "audit.jsonl")
    trail = AuditTrail(JsonlAuditSink(path=path))
    trail.emit("a")
    trail.emit("b")
    third = trail.emit("c")
    rows = read_jsonl(path)
    with open(path, "w", encoding="utf-8") as f:
        for r in (rows[0], rows[2]):
            f.write(json.dumps(r) + "\n")
    assert JsonlAuditSink(path=path).verify() == {"ok": False, "checked": 1, "broken_at": third.event_id}


def test_default_trail_discards():
    trail = AuditTrail()
    ev = trail.emit("x", severity=AuditSeverity.WARN)
    assert ev is not None
    assert ev.severity == AuditSeverity.WARN


def test_meta_is_minimized():
    ev = AuditEvent(
        event="llm.test",
        meta={
            "text": "Jane Doe wrote this",
            "download_token": "tok-123",
            "pii_count": 2,
            "nested": {"prompt": "secret prompt", "ok": "yes"},
            "long": "x" * 500,
        },
    )
    assert "text" not in ev.meta
    assert ev.meta["text_len"] == len("Jane Doe wrote this")
    assert ev.meta["download_token"] == "***REDACTED***"
    assert ev.meta["pii_count"] == 2
    assert ev.meta["nested"] == {"prompt_len": len("secret prompt"), "ok": "yes"}
    assert len(ev.meta["long"]) == 201
    assert "Jane Doe" not in json.dumps(ev.model_dump())


def test_audit_redact_handles_non_string_drop_keys():
    assert audit_redact({"value": 12}) == {"value_present": True}
