from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from privgate.core.timefmt import iso_utc, normalize_iso


class PurposeKind(str, Enum):
    BY_ID = "by_id"
    BY_LABEL = "by_label"


class PurposeIdentifier(BaseModel):
    """
    Tagged purpose reference.

    BY_ID is authoritative (matches Consent.purpose_id); BY_LABEL is the
    legacy fallback (matches Consent.purpose).
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: PurposeKind
    value: str = Field(max_length=200)

    @field_validator("value", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> str:
        return str(v or "").strip()

    @classmethod
    def by_id(cls, purpose_id: str) -> "PurposeIdentifier":
        return cls(kind=PurposeKind.BY_ID, value=purpose_id)

    @classmethod
    def by_label(cls, label: str) -> "PurposeIdentifier":
        return cls(kind=PurposeKind.BY_LABEL, value=label)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.value}"


class Consent(BaseModel):
    """
    Evidentiary consent row. Mutated on revoke, never physically removed by
    automated jobs.
    """

    model_config = ConfigDict(extra="forbid")

    consent_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    tenant_id: str = Field(min_length=1, max_length=128)
    user_id: str = Field(min_length=1, max_length=128)
    purpose: str = Field(min_length=1, max_length=200)
    purpose_id: Optional[str] = Field(default=None, max_length=200)
    granted: bool = False
    granted_at: Optional[str] = None
    revoked_at: Optional[str] = None
    created_at: str = Field(default_factory=iso_utc)

    @field_validator("created_at", mode="before")
    @classmethod
    def _canonical_created_at(cls, v: Any) -> str:
        return normalize_iso(v)

    @field_validator("granted_at", "revoked_at", mode="before")
    @classmethod
    def _canonical_optional(cls, v: Any) -> Optional[str]:
        if v is None or v == "":
            return None
        return normalize_iso(v)

    @property
    def is_revoked(self) -> bool:
        return bool(self.revoked_at)
