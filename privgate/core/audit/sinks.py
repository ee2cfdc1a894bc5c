from __future__ import annotations

import hashlib
import json
import os
import threading
from typing import Any, Dict, Iterable, List, Optional

from privgate.core.audit.models import AuditEvent


class AuditSink:
    """
    Append-only destination for audit events.
    """

    name: str = "base"

    def write(self, event: AuditEvent) -> None:
        raise NotImplementedError

    def close(self) -> None:
        return


class NullAuditSink(AuditSink):
    name = "null"

    def write(self, event: AuditEvent) -> None:
        return


class MemoryAuditSink(AuditSink):
    name = "memory"

    def __init__(self, *, max_events: int = 10000):
        self.max_events = max(1, int(max_events))
        self._lock = threading.Lock()
        self._events: List[AuditEvent] = []

    def write(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append(event)
            if len(self._events) > self.max_events:
                del self._events[: len(self._events) - self.max_events]

    @property
    def events(self) -> List[AuditEvent]:
        with self._lock:
            return list(self._events)

    def by_event(self, event: str) -> List[AuditEvent]:
        return [e for e in self.events if e.event == event]


class JsonlAuditSink(AuditSink):
    """
    JSONL file sink with SHA-256 hash chaining.

    Every line carries prev_hash (the hash of the line before it, or GENESIS
    for the first) and hash, the digest of the line's own canonical JSON with
    prev_hash included. Editing, reordering or dropping a line breaks verify().
    """

    name = "jsonl"
    GENESIS = "0" * 64

    def __init__(self, *, path: str):
        self.path = str(path)
        self._lock = threading.Lock()
        self._head: Optional[str] = None
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)

    @staticmethod
    def _digest(body: Dict[str, Any]) -> str:
        canonical = json.dumps(body, ensure_ascii=False, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def _head_hash(self) -> str:
        # resumes an existing file on first write
        if self._head is None:
            self._head = self.GENESIS
            for rec in self.iter_records():
                self._head = str(rec.get("hash") or self._head)
        return self._head

    def write(self, event: AuditEvent) -> None:
        body = event.model_dump(mode="json")
        with self._lock:
            body["prev_hash"] = self._head_hash()
            digest = self._digest(body)
            line = json.dumps(dict(body, hash=digest), ensure_ascii=False)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
            self._head = digest

    def iter_records(self) -> Iterable[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return []

        def _gen():
            with open(self.path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    yield json.loads(line)

        return _gen()

    def verify(self) -> Dict[str, Any]:
        prev = self.GENESIS
        checked = 0
        for rec in self.iter_records():
            body = {k: v for k, v in rec.items() if k != "hash"}
            if body.get("prev_hash") != prev or rec.get("hash") != self._digest(body):
                return {"ok": False, "checked": checked, "broken_at": rec.get("event_id")}
            prev = str(rec["hash"])
            checked += 1
        return {"ok": True, "checked": checked, "broken_at": None}
