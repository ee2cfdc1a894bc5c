from __future__ import annotations

from privgate.core.consent.gate import ConsentGate
from privgate.core.consent.models import Consent, PurposeIdentifier, PurposeKind
from privgate.core.consent.store import ConsentStore

__all__ = ["Consent", "ConsentGate", "ConsentStore", "PurposeIdentifier", "PurposeKind"]
