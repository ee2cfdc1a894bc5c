from __future__ import annotations

"""
Append-only audit trail.

Core components receive an AuditTrail explicitly; the trail writes to a
settable sink (JSONL with hash chaining, in-memory, or null). Event metadata
is sanitized so that identifiers, counts and type labels are the only things
that ever reach the sink.
"""

from privgate.core.audit.models import AuditEvent, AuditSeverity
from privgate.core.audit.sinks import AuditSink, JsonlAuditSink, MemoryAuditSink, NullAuditSink
from privgate.core.audit.trail import AuditTrail

__all__ = [
    "AuditEvent",
    "AuditSeverity",
    "AuditSink",
    "AuditTrail",
    "JsonlAuditSink",
    "MemoryAuditSink",
    "NullAuditSink",
]
