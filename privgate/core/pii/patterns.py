from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Optional, Pattern, Tuple

# (start, end) relative to the raw match, or None to reject the match.
Refiner = Callable[[str], Optional[Tuple[int, int]]]


class PiiType(str, Enum):
    PERSON = "PERSON"
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    IBAN = "IBAN"
    SSN = "SSN"
    CREDIT_CARD = "CREDIT_CARD"
    IP_ADDRESS = "IP_ADDRESS"


@dataclass(frozen=True)
class PiiPattern:
    """
    One detection rule. Lower priority wins when two rules claim the same span.
    """

    pii_type: PiiType
    regex: str
    priority: int
    refine: Optional[Refiner] = None
    flags: int = 0
    _compiled: List[Pattern[str]] = field(default_factory=list, repr=False, compare=False)

    def compile(self) -> Pattern[str]:
        if not self._compiled:
            self._compiled.append(re.compile(self.regex, self.flags))
        return self._compiled[0]


def _whole_if(pred: Callable[[str], bool]) -> Refiner:
    def _refine(value: str) -> Optional[Tuple[int, int]]:
        return (0, len(value)) if pred(value) else None

    return _refine


def _digits(value: str) -> str:
    return "".join(ch for ch in value if ch.isdigit())


def _phone_ok(value: str) -> bool:
    return 9 <= len(_digits(value)) <= 15


def _luhn_ok(value: str) -> bool:
    ds = [int(c) for c in _digits(value)]
    if not 13 <= len(ds) <= 19:
        return False
    total = 0
    for i, d in enumerate(reversed(ds)):
        if i % 2 == 1:
            d *= 2
            if d > 9:
                d -= 9
        total += d
    return total % 10 == 0


def _iban_ok(value: str) -> bool:
    s = value.replace(" ", "").upper()
    if not 15 <= len(s) <= 34:
        return False
    rearranged = s[4:] + s[:4]
    numeric = "".join(str(int(ch, 36)) for ch in rearranged)
    return int(numeric) % 97 == 1


def _ip_ok(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


# Capitalised words that commonly open or close a sentence fragment but are
# not names. Matched case-sensitively after stripping punctuation.
NON_NAME_WORDS = {
    "Contact", "Reach", "Write", "Dear", "Hello", "Hi", "Hey", "Bonjour", "Bonsoir", "Salut", "Merci", "Thanks", "Thank",
    "Please", "Call", "Email", "Send", "Ask", "Tell", "Meet", "From", "To", "Cc", "Re", "Fwd",
    "Mr", "Mrs", "Ms", "Dr", "Prof", "Sir", "Madam", "Monsieur", "Madame", "Mademoiselle",
    "The", "This", "That", "These", "Those", "A", "An", "And", "Or", "But", "If", "When", "Where", "With",
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
    "January", "February", "March", "April", "May", "June", "July", "August", "September", "October", "November", "December",
    "Best", "Regards", "Kind", "Sincerely", "Cordialement",
}

# Whole capitalised phrases that look like names but are not.
NON_NAME_PHRASES = {
    "New York", "Los Angeles", "San Francisco", "United States", "United Kingdom", "European Union",
    "Machine Learning", "Artificial Intelligence", "Data Protection", "Privacy Policy", "Terms Of Service",
    "Open Source", "Hong Kong", "Saint Louis",
}


def _refine_person(value: str) -> Optional[Tuple[int, int]]:
    words = [(m.start(), m.end(), m.group(0)) for m in re.finditer(r"\S+", value)]
    while words and words[0][2].strip(".,") in NON_NAME_WORDS:
        words.pop(0)
    while words and words[-1][2].strip(".,") in NON_NAME_WORDS:
        words.pop()
    if len(words) < 2:
        return None
    start, end = words[0][0], words[-1][1]
    if value[start:end] in NON_NAME_PHRASES:
        return None
    return start, end


_NAME_WORD = r"[A-Z][a-zà-ÿ]+(?:[-'][A-Z][a-zà-ÿ]+)?"

DEFAULT_PATTERNS: Tuple[PiiPattern, ...] = (
    PiiPattern(PiiType.EMAIL, r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b", priority=0),
    PiiPattern(PiiType.IBAN, r"\b[A-Z]{2}\d{2}(?: ?[A-Z0-9]{4}){2,7}(?: ?[A-Z0-9]{1,4})?\b", priority=1, refine=_whole_if(_iban_ok)),
    PiiPattern(PiiType.CREDIT_CARD, r"\b(?:\d{4}[- ]?){3}\d{1,7}\b", priority=2, refine=_whole_if(_luhn_ok)),
    PiiPattern(PiiType.SSN, r"\b\d{3}-\d{2}-\d{4}\b", priority=3),
    PiiPattern(
        PiiType.IP_ADDRESS,
        r"\b(?:\d{1,3}\.){3}\d{1,3}\b|(?<![\w:])(?:[0-9A-Fa-f]{0,4}:){2,7}[0-9A-Fa-f]{1,4}\b",
        priority=4,
        refine=_whole_if(_ip_ok),
    ),
    PiiPattern(
        PiiType.PHONE,
        r"(?<![\w+])(?:\+\d{1,3}[ .-]?)?(?:\(\d{1,4}\)[ .-]?)?\d{1,4}(?:[ .-]?\d{2,4}){1,5}(?!\w)",
        priority=5,
        refine=_whole_if(_phone_ok),
    ),
    PiiPattern(PiiType.PERSON, rf"\b{_NAME_WORD}(?: {_NAME_WORD}){{1,3}}\b", priority=6, refine=_refine_person),
)


def patterns_for(types: Optional[Iterable[str]] = None) -> Tuple[PiiPattern, ...]:
    if types is None:
        return DEFAULT_PATTERNS
    wanted = {str(t).strip().upper() for t in types}
    unknown = wanted - {t.value for t in PiiType}
    if unknown:
        raise ValueError(f"Unknown PII types: {sorted(unknown)}")
    return tuple(p for p in DEFAULT_PATTERNS if p.pii_type.value in wanted)
