from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

from privgate.core.pii.detector import PiiEntity
from privgate.core.pii.patterns import PiiType


class PiiMapping:
    """
    Call-scoped, bidirectional placeholder <-> original value association.

    Tokens look like [EMAIL_1]; the ordinal is per type and starts at 1.
    The same (type, value) always gets the same token within one mapping.
    repr() never shows values. Call clear() once restoration is done.
    """

    def __init__(self) -> None:
        self._by_token: Dict[str, str] = {}
        self._by_value: Dict[Tuple[PiiType, str], str] = {}
        self._counters: Dict[PiiType, int] = {}

    def __len__(self) -> int:
        return len(self._by_token)

    def __contains__(self, token: object) -> bool:
        return token in self._by_token

    def __repr__(self) -> str:
        return f"PiiMapping(tokens={len(self._by_token)})"

    __str__ = __repr__

    def token_for(self, entity: PiiEntity, *, avoid: str = "") -> str:
        key = (entity.type, entity.value)
        tok = self._by_value.get(key)
        if tok is not None:
            return tok
        n = self._counters.get(entity.type, 0)
        while True:
            n += 1
            tok = f"[{entity.type.value}_{n}]"
            # never reuse a literal that already appears in the source text
            if tok not in avoid:
                break
        self._counters[entity.type] = n
        self._by_token[tok] = entity.value
        self._by_value[key] = tok
        return tok

    def original(self, token: str) -> str:
        return self._by_token[token]

    def tokens(self) -> List[str]:
        return list(self._by_token.keys())

    def items(self) -> Iterator[Tuple[str, str]]:
        return iter(list(self._by_token.items()))

    def clear(self) -> None:
        self._by_token.clear()
        self._by_value.clear()
        self._counters.clear()


@dataclass(frozen=True)
class MaskResult:
    masked_text: str
    mapping: PiiMapping


def mask_pii(text: str, entities: Sequence[PiiEntity]) -> MaskResult:
    """
    Replace each entity span with its placeholder. Entities must not overlap
    (detect_pii guarantees this).
    """
    mapping = PiiMapping()
    if not entities:
        return MaskResult(masked_text=text, mapping=mapping)
    parts: List[str] = []
    cursor = 0
    for e in sorted(entities, key=lambda x: x.start):
        if e.start < cursor:
            raise ValueError("overlapping PII entities")
        parts.append(text[cursor:e.start])
        parts.append(mapping.token_for(e, avoid=text))
        cursor = e.end
    parts.append(text[cursor:])
    return MaskResult(masked_text="".join(parts), mapping=mapping)


def restore_output(text: str, mapping: PiiMapping) -> str:
    """
    Put original values back in place of placeholders. Single regex pass, so
    a restored value is never itself re-substituted.
    """
    if not text or mapping is None or len(mapping) == 0:
        return text
    toks = sorted(mapping.tokens(), key=len, reverse=True)
    rx = re.compile("|".join(re.escape(t) for t in toks))
    return rx.sub(lambda m: mapping.original(m.group(0)), text)


def validate_masked_text(masked_text: str, mapping: PiiMapping) -> bool:
    """Leak check: False if any original value is still present."""
    for _tok, value in mapping.items():
        if value and value in masked_text:
            return False
    return True


def pii_summary(entities: Iterable[PiiEntity]) -> Dict[str, object]:
    ents = list(entities)
    return {"types": sorted({e.type.value for e in ents}), "count": len(ents)}
