from __future__ import annotations

"""
Timestamp helpers.

Stored timestamps are compared as text (created_at < cutoff), so every value
that reaches a store is rewritten to one canonical UTC form first.
"""

import time
from datetime import datetime, timezone
from typing import Any, Optional

ISO_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def iso_utc(ts: Optional[float] = None) -> str:
    return time.strftime(ISO_FORMAT, time.gmtime(time.time() if ts is None else ts))


def normalize_iso(value: Any) -> str:
    """
    Parse an ISO-8601 timestamp (any offset, optional fraction, 'Z' suffix)
    or epoch seconds, and return it as '%Y-%m-%dT%H:%M:%SZ' in UTC.
    Naive values are taken as UTC. Anything else raises ValueError.
    """
    if isinstance(value, bool):
        raise ValueError("timestamp must be an ISO-8601 string")
    if isinstance(value, (int, float)):
        return iso_utc(float(value))
    if isinstance(value, datetime):
        dt = value
    else:
        s = str(value or "").strip()
        if not s:
            raise ValueError("timestamp is empty")
        if s[-1] in "zZ":
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            raise ValueError("timestamp is not ISO-8601") from None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(ISO_FORMAT)
