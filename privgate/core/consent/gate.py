from __future__ import annotations

from typing import Any

from privgate.core.consent.models import PurposeIdentifier
from privgate.core.consent.store import ConsentStore
from privgate.core.errors import ConsentError, ConsentErrorKind, ParameterError


class ConsentGate:
    """
    Stateless consent check. Reads the store on every call (no cache) and
    has no side effects: returns None on success, raises otherwise.
    """

    def __init__(self, *, store: ConsentStore, logger: Any = None):
        self.store = store
        self.logger = logger

    def check_consent(self, *, tenant_id: str, user_id: str, purpose: PurposeIdentifier) -> None:
        tid = str(tenant_id or "").strip()
        uid = str(user_id or "").strip()
        if not tid or not uid or not isinstance(purpose, PurposeIdentifier) or not purpose.value:
            raise ParameterError("tenant_id, user_id and purpose are required.")

        consent = self.store.find(tenant_id=tid, user_id=uid, purpose=purpose)
        if consent is None:
            raise ConsentError(ConsentErrorKind.NOT_FOUND, purpose_kind=purpose.kind.value)
        # revocation wins over the granted flag
        if consent.is_revoked:
            raise ConsentError(ConsentErrorKind.REVOKED, consent_id=consent.consent_id)
        if not consent.granted:
            raise ConsentError(ConsentErrorKind.DENIED, consent_id=consent.consent_id)
