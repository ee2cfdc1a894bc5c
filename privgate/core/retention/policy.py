from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from privgate.core.config.models import LegalBounds
from privgate.core.errors import RetentionPolicyError, RetentionPolicyErrorKind
from privgate.core.records.models import DataCategory

_LABELS = {
    DataCategory.AI_JOBS: "AI jobs",
    DataCategory.AUDIT_EVENTS: "Audit events",
    DataCategory.CONSENTS: "Consents",
}


class RetentionPolicy(BaseModel):
    """
    category -> retention days. Keys are kept as plain strings so that
    RetentionRules can report unknown categories with a typed error.
    """

    model_config = ConfigDict(extra="forbid")

    retention_days: Dict[str, int] = Field(default_factory=dict)

    @field_validator("retention_days", mode="before")
    @classmethod
    def _normalize(cls, v: Any) -> Dict[str, int]:
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("retention_days must be a mapping")
        return {str(k).strip().lower(): int(days) for k, days in v.items()}

    def days_for(self, category: DataCategory) -> Optional[int]:
        return self.retention_days.get(DataCategory(category).value)


class RetentionRules:
    """
    Legal bounds: ceilings for ephemeral categories, floors for evidentiary
    ones, and categories that may never be purged automatically.
    """

    def __init__(self, bounds: Optional[LegalBounds] = None):
        self.bounds = bounds or LegalBounds()

    def is_forbidden(self, category: str) -> bool:
        return str(category).strip().lower() in set(self.bounds.forbidden)

    def validate(self, policy: RetentionPolicy) -> RetentionPolicy:
        for raw_cat, days in sorted(policy.retention_days.items()):
            try:
                cat = DataCategory(raw_cat)
            except ValueError:
                raise RetentionPolicyError(RetentionPolicyErrorKind.UNKNOWN_CATEGORY, "Unknown data category in retention policy.", category=raw_cat) from None
            label = _LABELS.get(cat, cat.value)
            if self.is_forbidden(cat.value):
                raise RetentionPolicyError(
                    RetentionPolicyErrorKind.FORBIDDEN_CATEGORY,
                    f"{label} auto-purge forbidden.",
                    category=cat.value,
                )
            if int(days) < 1:
                raise RetentionPolicyError(RetentionPolicyErrorKind.BELOW_FLOOR, f"{label} retention must be at least 1 day.", category=cat.value, days=int(days))
            ceiling = self.bounds.ceilings.get(cat.value)
            if ceiling is not None and int(days) > int(ceiling):
                raise RetentionPolicyError(
                    RetentionPolicyErrorKind.EXCEEDS_CEILING,
                    f"{label} retention exceeds maximum ({ceiling} days).",
                    category=cat.value,
                    days=int(days),
                    ceiling=int(ceiling),
                )
            floor = self.bounds.floors.get(cat.value)
            if floor is not None and int(days) < int(floor):
                raise RetentionPolicyError(
                    RetentionPolicyErrorKind.BELOW_FLOOR,
                    f"{label} retention below legal minimum ({floor} days).",
                    category=cat.value,
                    days=int(days),
                    floor=int(floor),
                )
        return policy
