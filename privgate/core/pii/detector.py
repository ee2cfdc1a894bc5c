from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from privgate.core.pii.patterns import DEFAULT_PATTERNS, PiiPattern, PiiType


@dataclass(frozen=True)
class PiiEntity:
    """
    One detected span. value is kept out of repr so an entity never leaks
    through logs or tracebacks.
    """

    type: PiiType
    start: int
    end: int
    value: str = field(repr=False)
    priority: int = field(default=0, repr=False, compare=False)


def _candidates(text: str, patterns: Sequence[PiiPattern]) -> List[PiiEntity]:
    out: List[PiiEntity] = []
    for pat in patterns:
        rx = pat.compile()
        pos = 0
        while pos <= len(text):
            m = rx.search(text, pos)
            if m is None:
                break
            raw = m.group(0)
            if not raw:
                pos = m.start() + 1
                continue
            start, end = m.start(), m.end()
            if pat.refine is not None:
                span = pat.refine(raw)
                if span is None:
                    # a valid entity may start inside the rejected match
                    pos = m.start() + 1
                    continue
                start, end = m.start() + span[0], m.start() + span[1]
            out.append(PiiEntity(type=pat.pii_type, start=start, end=end, value=text[start:end], priority=pat.priority))
            pos = m.end()
    return out


def detect_pii(text: str, *, patterns: Optional[Iterable[PiiPattern]] = None) -> List[PiiEntity]:
    """
    Deterministic single pass over each rule; returns non-overlapping entities
    sorted by start. On overlap the earliest span wins, then the longest, then
    the rule with the lowest priority number.
    """
    if not text or not text.strip():
        return []
    pats = tuple(patterns) if patterns is not None else DEFAULT_PATTERNS
    cands = _candidates(text, pats)
    cands.sort(key=lambda e: (e.start, -(e.end - e.start), e.priority))
    out: List[PiiEntity] = []
    last_end = -1
    for e in cands:
        if e.start < last_end:
            continue
        out.append(e)
        last_end = e.end
    return out


def contains_pii(text: str, *, patterns: Optional[Iterable[PiiPattern]] = None) -> bool:
    return bool(detect_pii(text, patterns=patterns))
