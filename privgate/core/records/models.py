from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator

from privgate.core.timefmt import iso_utc, normalize_iso


class DataCategory(str, Enum):
    """
    Personal-data categories known to export and retention.
    Keep these stable: they are keys in retention config and export bundles.
    """

    CONSENTS = "consents"
    AI_JOBS = "ai_jobs"
    AUDIT_EVENTS = "audit_events"


class PersonalRecord(BaseModel):
    """
    One tenant-scoped row of personal data.

    payload holds metadata only (job status, event type, ...), never prompt
    or model output text.
    """

    model_config = ConfigDict(extra="forbid")

    record_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    tenant_id: str = Field(min_length=1, max_length=128)
    user_id: str = Field(min_length=1, max_length=128)
    category: DataCategory
    created_at: str = Field(default_factory=iso_utc)
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("created_at", mode="before")
    @classmethod
    def _canonical_created_at(cls, v: Any) -> str:
        return normalize_iso(v)
