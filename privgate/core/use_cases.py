from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping

from privgate.core.config.models import UseCaseConfig
from privgate.core.errors import UseCaseError, UseCaseErrorKind


@dataclass(frozen=True)
class UseCaseDecision:
    use_case: str
    allowed: bool
    consent_required: bool
    risk_level: str
    human_validation_required: bool


class UseCasePolicy:
    """
    Allow/forbid table for LLM use cases. Unknown use cases are rejected
    (allowlist semantics).
    """

    def __init__(self, table: Mapping[str, UseCaseConfig]):
        self._table: Dict[str, UseCaseConfig] = {str(k).strip().upper(): v for k, v in dict(table).items()}

    def evaluate(self, use_case: str) -> UseCaseDecision:
        key = str(use_case or "").strip().upper()
        cfg = self._table.get(key)
        if cfg is None:
            return UseCaseDecision(use_case=key, allowed=False, consent_required=True, risk_level="high", human_validation_required=True)
        return UseCaseDecision(
            use_case=key,
            allowed=bool(cfg.allowed),
            consent_required=bool(cfg.consent_required),
            risk_level=cfg.risk_level,
            human_validation_required=bool(cfg.human_validation_required),
        )

    def enforce(self, use_case: str) -> UseCaseDecision:
        d = self.evaluate(use_case)
        if d.use_case not in self._table:
            raise UseCaseError(UseCaseErrorKind.UNKNOWN, "Unknown use case (not in allowlist).", use_case=d.use_case)
        if not d.allowed:
            raise UseCaseError(UseCaseErrorKind.FORBIDDEN, "Forbidden use case.", use_case=d.use_case)
        return d
