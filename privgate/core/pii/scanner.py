from __future__ import annotations

"""
Log leak scanner.

Runs the PII detector over our own outputs (the rotating text log and the
audit JSONL) to catch anything that slipped past scrubbing. Results carry
line numbers, PII type labels and counts; the matched text never leaves
scan_log_line().
"""

import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from privgate.core.audit.models import AuditSeverity
from privgate.core.logger import FIELD_SEP
from privgate.core.pii.detector import detect_pii
from privgate.core.pii.patterns import PiiPattern, PiiType

CRITICAL_TYPES = frozenset({PiiType.SSN, PiiType.IBAN, PiiType.CREDIT_CARD})
WARNING_TYPES = frozenset({PiiType.EMAIL, PiiType.PHONE, PiiType.PERSON})

# audit fields that are generated, never user supplied
_AUDIT_STRUCTURAL_KEYS = frozenset({"event_id", "ts", "event", "severity", "prev_hash", "hash"})

_SEVERITY_RANK = {AuditSeverity.INFO: 0, AuditSeverity.WARN: 1, AuditSeverity.ERROR: 2, AuditSeverity.CRITICAL: 3}


def leak_severity(types: Iterable[PiiType], count: int) -> AuditSeverity:
    kinds = set(types)
    if kinds & CRITICAL_TYPES or count > 10:
        return AuditSeverity.CRITICAL
    if kinds & WARNING_TYPES or count > 5:
        return AuditSeverity.WARN
    return AuditSeverity.INFO


@dataclass(frozen=True)
class LogLine:
    line_number: int
    content: str = field(repr=False)


@dataclass(frozen=True)
class PiiLeak:
    line_number: int
    pii_types: Tuple[str, ...]
    pii_count: int
    severity: AuditSeverity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line": self.line_number,
            "pii_types": list(self.pii_types),
            "pii_count": self.pii_count,
            "severity": self.severity.value,
        }


@dataclass
class ScanResult:
    source: str
    total_lines: int = 0
    leaks: List[PiiLeak] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def leak_count(self) -> int:
        return len(self.leaks)

    @property
    def severity(self) -> AuditSeverity:
        worst = AuditSeverity.INFO
        for lk in self.leaks:
            if _SEVERITY_RANK[lk.severity] > _SEVERITY_RANK[worst]:
                worst = lk.severity
        return worst

    def type_counts(self) -> Dict[str, int]:
        out: Dict[str, int] = {}
        for lk in self.leaks:
            for t in lk.pii_types:
                out[t] = out.get(t, 0) + 1
        return dict(sorted(out.items()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "total_lines": self.total_lines,
            "leak_count": self.leak_count,
            "severity": self.severity.value,
            "types": self.type_counts(),
            "leaks": [lk.to_dict() for lk in self.leaks],
            "duration_ms": round(self.duration_ms, 3),
        }


def scan_log_line(line: LogLine, *, patterns: Optional[Sequence[PiiPattern]] = None) -> Optional[PiiLeak]:
    ents = detect_pii(line.content, patterns=patterns)
    if not ents:
        return None
    kinds = {e.type for e in ents}
    return PiiLeak(
        line_number=line.line_number,
        pii_types=tuple(sorted(t.value for t in kinds)),
        pii_count=len(ents),
        severity=leak_severity(kinds, len(ents)),
    )


def scan_log_lines(
    lines: Iterable[LogLine], *, source: str = "<memory>", patterns: Optional[Sequence[PiiPattern]] = None
) -> ScanResult:
    t0 = time.perf_counter()
    res = ScanResult(source=source)
    for line in lines:
        res.total_lines += 1
        leak = scan_log_line(line, patterns=patterns)
        if leak is not None:
            res.leaks.append(leak)
    res.duration_ms = (time.perf_counter() - t0) * 1000.0
    return res


def _strings(obj: Any) -> Iterator[str]:
    if isinstance(obj, str):
        yield obj
    elif isinstance(obj, dict):
        for v in obj.values():
            yield from _strings(v)
    elif isinstance(obj, list):
        for v in obj:
            yield from _strings(v)


def _text_content(raw: str) -> str:
    # "asctime | level | message": the timestamp prefix reads like a phone number
    parts = raw.split(FIELD_SEP, 2)
    return parts[2] if len(parts) == 3 else raw


def _jsonl_content(raw: str) -> str:
    try:
        rec = json.loads(raw)
    except ValueError:
        return raw
    if not isinstance(rec, dict):
        return raw
    return "\n".join(_strings({k: v for k, v in rec.items() if k not in _AUDIT_STRUCTURAL_KEYS}))


def parse_log_text(text: str, *, kind: str = "text") -> List[LogLine]:
    """
    Split raw log content into numbered lines (1-based, blanks skipped but
    counted for numbering). kind is 'text' for the rotating log format or
    'jsonl' for audit records, where only user-supplied values are scanned.
    """
    extract = _jsonl_content if kind == "jsonl" else _text_content
    out: List[LogLine] = []
    for i, raw in enumerate(text.splitlines(), start=1):
        raw = raw.strip()
        if not raw:
            continue
        out.append(LogLine(line_number=i, content=extract(raw)))
    return out


def scan_log_file(path: str, *, kind: Optional[str] = None, patterns: Optional[Sequence[PiiPattern]] = None) -> ScanResult:
    """Missing files scan as empty."""
    p = str(path)
    if kind is None:
        kind = "jsonl" if p.endswith(".jsonl") else "text"
    if not os.path.exists(p):
        return ScanResult(source=p)
    with open(p, "r", encoding="utf-8", errors="replace") as f:
        text = f.read()
    return scan_log_lines(parse_log_text(text, kind=kind), source=p, patterns=patterns)


def scan_logs(paths: Sequence[str], *, audit: Any = None, logger: Any = None) -> List[ScanResult]:
    """
    Scan each file, log one warning per leaking file and emit a single
    logs.pii_scan_completed audit event carrying totals only.
    """
    log = logger or logging.getLogger(__name__)
    results = [scan_log_file(p) for p in paths]
    worst = AuditSeverity.INFO
    for r in results:
        if r.leak_count:
            log.warning(f"PII found in {os.path.basename(r.source)}: lines={r.leak_count} types={','.join(r.type_counts())}")
        if _SEVERITY_RANK[r.severity] > _SEVERITY_RANK[worst]:
            worst = r.severity
    if audit is not None:
        audit.emit(
            "logs.pii_scan_completed",
            severity=worst,
            meta={
                "files": len(results),
                "total_lines": sum(r.total_lines for r in results),
                "leak_count": sum(r.leak_count for r in results),
            },
        )
    return results
