from __future__ import annotations

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from privgate.core.consent.models import PurposeIdentifier


class InvokeRequest(BaseModel):
    """
    One gateway invocation. tenant_id/actor_id are explicit: nothing is read
    from ambient request context.
    """

    model_config = ConfigDict(extra="forbid")

    tenant_id: str = Field(default="", max_length=128)
    actor_id: str = Field(default="", max_length=128)
    purpose: Optional[PurposeIdentifier] = None
    policy: str = Field(default="", max_length=80)
    text: str = Field(default="", max_length=100_000)
    provider: Optional[str] = None
    model: Optional[str] = None
    max_tokens: int = Field(default=512, ge=1, le=8192)
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    trace_id: str = Field(default_factory=lambda: uuid.uuid4().hex, max_length=64)


class InvokeResponse(BaseModel):
    """
    Gateway output. Deliberately carries no mapping and no PII metadata
    beyond counts.
    """

    model_config = ConfigDict(extra="forbid")

    text: str
    provider: str
    model: str
    trace_id: str
    pii_count: int = 0
    redaction_degraded: bool = False
    latency_seconds: float = 0.0
