from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

from privgate.core.audit.models import AuditEvent, AuditSeverity
from privgate.core.audit.sinks import AuditSink, NullAuditSink

_ID_LIMIT = 128
_TRACE_LIMIT = 64


def _clip(value: Optional[str], limit: int) -> Optional[str]:
    # over-long ids are shortened rather than losing the event
    if value is None:
        return None
    s = str(value)
    return s if len(s) <= limit else s[:limit]


class AuditTrail:
    """
    Injected audit collaborator.

    Owns exactly one sink at a time. set_sink() swaps it (closing the old one),
    close() ends the lifecycle. An event that fails validation, or a sink
    that fails to write, is logged and counted in dropped; neither propagates
    into the calling operation.
    """

    def __init__(self, sink: Optional[AuditSink] = None, *, logger: Any = None):
        self._sink: AuditSink = sink or NullAuditSink()
        self._lock = threading.Lock()
        self._closed = False
        self.logger = logger or logging.getLogger(__name__)
        self.dropped = 0

    @property
    def sink(self) -> AuditSink:
        return self._sink

    def set_sink(self, sink: AuditSink) -> None:
        with self._lock:
            old = self._sink
            self._sink = sink
            self._closed = False
        if old is not sink:
            old.close()

    def close(self) -> None:
        with self._lock:
            sink = self._sink
            self._sink = NullAuditSink()
            self._closed = True
        sink.close()

    def emit(
        self,
        event: str,
        *,
        tenant_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        trace_id: Optional[str] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
        meta: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditEvent]:
        with self._lock:
            sink = self._sink
            closed = self._closed
        if closed:
            self._drop()
            return None
        try:
            ev = AuditEvent(
                event=str(event),
                tenant_id=_clip(tenant_id, _ID_LIMIT),
                actor_id=_clip(actor_id, _ID_LIMIT),
                trace_id=_clip(trace_id, _TRACE_LIMIT),
                severity=severity,
                meta=dict(meta or {}),
            )
        except ValueError as e:
            self._drop()
            self.logger.warning(f"Audit event '{str(event)[:120]}' rejected: {type(e).__name__}")
            return None
        try:
            sink.write(ev)
        except Exception as e:  # noqa: BLE001
            self._drop()
            self.logger.warning(f"Audit sink '{sink.name}' failed for {ev.event}: {type(e).__name__}")
            return None
        return ev

    def _drop(self) -> None:
        with self._lock:
            self.dropped += 1
