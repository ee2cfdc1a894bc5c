from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from privgate.core.events import redact


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class PrivgateError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def __str__(self) -> str:
        return f"{self.code}: {self.user_message}"

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": redact(self.context or {}),
        }
        kind = getattr(self, "kind", None)
        if kind is not None:
            out["kind"] = kind.value
        return out


# ---- Kinds (stable, machine-readable) ----
class ConsentErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    REVOKED = "revoked"
    DENIED = "denied"


class ExportErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    NOT_OWNED = "not_owned"
    EXPIRED = "expired"
    LIMIT_REACHED = "limit_reached"


class RetentionPolicyErrorKind(str, Enum):
    EXCEEDS_CEILING = "exceeds_ceiling"
    BELOW_FLOOR = "below_floor"
    FORBIDDEN_CATEGORY = "forbidden_category"
    UNKNOWN_CATEGORY = "unknown_category"


class CryptoErrorKind(str, Enum):
    DECRYPTION_FAILED = "decryption_failed"
    UNSUPPORTED_FORMAT = "unsupported_format"


class ProviderErrorKind(str, Enum):
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    BAD_RESPONSE = "bad_response"
    UNKNOWN_PROVIDER = "unknown_provider"


class RedactionErrorKind(str, Enum):
    TIMEOUT = "timeout"
    FAILED = "failed"


class UseCaseErrorKind(str, Enum):
    FORBIDDEN = "forbidden"
    UNKNOWN = "unknown"


# ---- Core types ----
class ConfigError(PrivgateError):
    def __init__(self, user_message: str = "Configuration error.", **ctx: Any):
        super().__init__("config_error", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)


class ParameterError(PrivgateError):
    def __init__(self, user_message: str = "Missing required parameters.", **ctx: Any):
        super().__init__("parameter_error", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


_CONSENT_MESSAGES = {
    ConsentErrorKind.NOT_FOUND: "Consent required: user has not granted consent for this purpose.",
    ConsentErrorKind.REVOKED: "Consent revoked: user has withdrawn consent for this purpose.",
    ConsentErrorKind.DENIED: "Consent denied: user consent for this purpose is not granted.",
}


class ConsentError(PrivgateError):
    def __init__(self, kind: ConsentErrorKind, user_message: str = "", **ctx: Any):
        self.kind = ConsentErrorKind(kind)
        super().__init__("consent_error", user_message or _CONSENT_MESSAGES[self.kind], severity=Severity.WARN, recoverable=False, context=ctx)


_EXPORT_MESSAGES = {
    ExportErrorKind.NOT_FOUND: "Export not found.",
    ExportErrorKind.NOT_OWNED: "Access denied: you do not own this export.",
    ExportErrorKind.EXPIRED: "Export expired.",
    ExportErrorKind.LIMIT_REACHED: "Download limit reached for this export.",
}


class ExportError(PrivgateError):
    def __init__(self, kind: ExportErrorKind, user_message: str = "", **ctx: Any):
        self.kind = ExportErrorKind(kind)
        super().__init__("export_error", user_message or _EXPORT_MESSAGES[self.kind], severity=Severity.WARN, recoverable=False, context=ctx)


class RetentionPolicyError(PrivgateError):
    def __init__(self, kind: RetentionPolicyErrorKind, user_message: str = "Invalid retention policy.", **ctx: Any):
        self.kind = RetentionPolicyErrorKind(kind)
        super().__init__("retention_policy_error", user_message, severity=Severity.ERROR, recoverable=False, context=ctx)


class CryptoError(PrivgateError):
    def __init__(self, kind: CryptoErrorKind = CryptoErrorKind.DECRYPTION_FAILED, user_message: str = "Decryption failed.", **ctx: Any):
        self.kind = CryptoErrorKind(kind)
        super().__init__("crypto_error", user_message, severity=Severity.ERROR, recoverable=False, context=ctx)


class ProviderError(PrivgateError):
    def __init__(self, kind: ProviderErrorKind = ProviderErrorKind.UNAVAILABLE, user_message: str = "The language model provider is unavailable.", **ctx: Any):
        self.kind = ProviderErrorKind(kind)
        super().__init__("provider_error", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class RedactionError(PrivgateError):
    def __init__(self, kind: RedactionErrorKind = RedactionErrorKind.FAILED, user_message: str = "PII redaction could not complete; request blocked.", **ctx: Any):
        self.kind = RedactionErrorKind(kind)
        super().__init__("redaction_error", user_message, severity=Severity.ERROR, recoverable=False, context=ctx)


class UseCaseError(PrivgateError):
    def __init__(self, kind: UseCaseErrorKind = UseCaseErrorKind.FORBIDDEN, user_message: str = "This use case is not allowed.", **ctx: Any):
        self.kind = UseCaseErrorKind(kind)
        super().__init__("use_case_error", user_message, severity=Severity.WARN, recoverable=False, context=ctx)
