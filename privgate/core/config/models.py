from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FailMode(str, Enum):
    closed = "closed"
    open = "open"


class PiiConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    timeout_ms: int = Field(default=50, ge=1, le=10_000)
    fail_mode: FailMode = FailMode.closed
    enabled_types: List[str] = Field(default_factory=lambda: ["PERSON", "EMAIL", "PHONE", "IBAN", "SSN", "CREDIT_CARD", "IP_ADDRESS"])

    @field_validator("enabled_types", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> List[str]:
        if not isinstance(v, list):
            return []
        return [str(x or "").strip().upper() for x in v if str(x or "").strip()]


class KdfConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # scrypt cost parameters; n must be a power of two
    n: int = Field(default=2**15, ge=2**10, le=2**20)
    r: int = Field(default=8, ge=1, le=32)
    p: int = Field(default=1, ge=1, le=16)


class ExportConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    retention_days: int = Field(default=7, ge=1, le=90)
    max_downloads: int = Field(default=3, ge=1, le=100)
    storage_dir: str = "data/exports"
    audit_events_limit: int = Field(default=1000, ge=1, le=100_000)
    kdf: KdfConfig = Field(default_factory=KdfConfig)


class LegalBounds(BaseModel):
    """
    Regulatory limits on retention configuration.
    ceilings: ephemeral categories may not be kept longer than N days.
    floors: evidentiary categories may not be purged earlier than N days.
    """

    model_config = ConfigDict(extra="forbid")

    ceilings: Dict[str, int] = Field(default_factory=lambda: {"ai_jobs": 90})
    floors: Dict[str, int] = Field(default_factory=lambda: {"audit_events": 365})
    forbidden: List[str] = Field(default_factory=lambda: ["consents"])

    @field_validator("forbidden")
    @classmethod
    def _consents_always_forbidden(cls, v: List[str]) -> List[str]:
        out = [str(x).strip().lower() for x in v if str(x).strip()]
        if "consents" not in out:
            out.append("consents")
        return out


class RetentionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    policy: Dict[str, int] = Field(default_factory=lambda: {"ai_jobs": 90, "audit_events": 365})
    bounds: LegalBounds = Field(default_factory=LegalBounds)


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    db_path: str = "data/privgate.sqlite"


class AuditConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    path: str = "logs/audit.jsonl"


class ProviderConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: str = Field(default="openai_compat", pattern=r"^(openai_compat|ollama)$")
    base_url: str = "http://127.0.0.1:11434"
    model: str = Field(default="llama3", min_length=1, max_length=120)
    timeout_seconds: float = Field(default=30.0, gt=0.0, le=600.0)
    api_key_env: Optional[str] = None


class UseCaseConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    allowed: bool = True
    consent_required: bool = True
    risk_level: str = Field(default="moderate", pattern=r"^(low|moderate|high)$")
    human_validation_required: bool = False


def _default_use_cases() -> Dict[str, Dict[str, Any]]:
    low = {"allowed": True, "consent_required": True, "risk_level": "low"}
    moderate = {"allowed": True, "consent_required": True, "risk_level": "moderate"}
    high = {"allowed": True, "consent_required": True, "risk_level": "high", "human_validation_required": True}
    forbidden = {"allowed": False, "consent_required": False, "risk_level": "high"}
    return {
        "REFORMULATION": dict(low),
        "SUMMARY": dict(low),
        "TEXT_NORMALIZATION": dict(low),
        "PII_ANONYMIZATION": dict(low),
        "PII_REDACTION": dict(low),
        "CATEGORIZATION": dict(moderate),
        "DOCUMENT_TYPE_DETECTION": dict(moderate),
        "NON_DECISIONAL_SCORING": dict(moderate),
        "FIELD_EXTRACTION": dict(moderate),
        "CONTENT_STRUCTURING": dict(moderate),
        "WRITING_ASSISTANCE": dict(high),
        "SUGGESTIONS": dict(high),
        "AUTOMATED_DECISION": dict(forbidden),
        "MEDICAL_DIAGNOSIS": dict(forbidden),
        "LEGAL_ADVICE": dict(forbidden),
        "PROFILING_NO_BASIS": dict(forbidden),
        "TRAINING_ON_USER_DATA": dict(forbidden),
        "LOAN_APPROVAL": dict(forbidden),
        "EMPLOYMENT_DECISION": dict(forbidden),
        "CREDIT_SCORING": dict(forbidden),
    }


class PrivgateConfig(BaseModel):
    """
    config/privgate.json schema (strict).
    """

    model_config = ConfigDict(extra="forbid")

    schema_version: int = Field(default=1, ge=1, le=10)
    pii: PiiConfig = Field(default_factory=PiiConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    providers: Dict[str, ProviderConfig] = Field(default_factory=lambda: {"default": ProviderConfig()})
    default_provider: str = "default"
    use_cases: Dict[str, UseCaseConfig] = Field(default_factory=lambda: {k: UseCaseConfig(**v) for k, v in _default_use_cases().items()})

    @field_validator("use_cases", mode="before")
    @classmethod
    def _upper_use_cases(cls, v: Any) -> Any:
        if not isinstance(v, dict):
            return v
        return {str(k).strip().upper(): val for k, val in v.items()}


def default_config_dict() -> Dict[str, Any]:
    return PrivgateConfig().model_dump(mode="json")
