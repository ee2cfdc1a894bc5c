from __future__ import annotations

"""
Audit metadata minimization.

Stricter than secret redaction:
- secret-looking keys are masked
- raw-content keys are dropped, only their length survives
- long strings are truncated
"""

from typing import Any, Dict

from privgate.core.events import redact as secret_redact


_DROP_KEYS = {
    "text",
    "message",
    "messages",
    "prompt",
    "content",
    "raw",
    "value",
    "values",
    "original",
    "mapping",
    "mappings",
    "entities",
    "email",
    "phone",
}


def audit_redact(obj: Any) -> Any:
    safe = secret_redact(obj)
    if isinstance(safe, dict):
        out: Dict[str, Any] = {}
        for k, v in list(safe.items())[:100]:
            kk = str(k or "")
            if kk.lower() in _DROP_KEYS:
                if isinstance(v, (str, list, dict)):
                    out[f"{kk}_len"] = len(v)
                else:
                    out[f"{kk}_present"] = True
                continue
            out[kk] = audit_redact(v)
        return out
    if isinstance(safe, list):
        return [audit_redact(x) for x in safe[:50]]
    if isinstance(safe, str):
        return safe if len(safe) <= 200 else safe[:200] + "…"
    return safe
