from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional

from privgate.core.audit.models import AuditSeverity
from privgate.core.config.models import FailMode
from privgate.core.errors import RedactionError, RedactionErrorKind
from privgate.core.pii.detector import detect_pii
from privgate.core.pii.masker import PiiMapping, mask_pii, restore_output, validate_masked_text
from privgate.core.pii.patterns import DEFAULT_PATTERNS, PiiPattern

DEFAULT_TIMEOUT_MS = 50


@dataclass
class RedactionResult:
    masked_text: str
    mapping: PiiMapping = field(repr=False)
    pii_count: int = 0
    pii_types: List[str] = field(default_factory=list)
    duration_ms: float = 0.0
    degraded: bool = False


class PiiRedactor:
    """
    Detect + mask outbound text within a latency budget.

    fail_mode decides what happens when the budget is exceeded or detection
    fails:
    - closed (default): raise RedactionError, the caller must not dispatch
    - open: continue (late result, or unmasked text on detector failure)
      and flag the result as degraded
    Audit metadata carries types and counts only.
    """

    def __init__(
        self,
        *,
        audit: Any = None,
        metrics: Any = None,
        logger: Any = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        fail_mode: FailMode = FailMode.closed,
        patterns: Optional[Iterable[PiiPattern]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.audit = audit
        self.metrics = metrics
        self.logger = logger or logging.getLogger(__name__)
        self.timeout_ms = max(1, int(timeout_ms))
        self.fail_mode = FailMode(fail_mode)
        self.patterns = tuple(patterns) if patterns is not None else DEFAULT_PATTERNS
        self._clock = clock or time.perf_counter

    def _emit(self, event: str, *, tenant_id: Optional[str], actor_id: Optional[str], trace_id: Optional[str], meta: dict, severity: AuditSeverity = AuditSeverity.INFO) -> None:
        if self.audit is None:
            return
        self.audit.emit(event, tenant_id=tenant_id, actor_id=actor_id, trace_id=trace_id, meta=meta, severity=severity)

    def _inc(self, name: str, tags: Optional[dict] = None) -> None:
        if self.metrics is not None:
            self.metrics.inc(name, 1, tags=tags)

    def redact(self, text: str, *, tenant_id: Optional[str] = None, actor_id: Optional[str] = None, trace_id: Optional[str] = None) -> RedactionResult:
        ctx = {"tenant_id": tenant_id, "actor_id": actor_id, "trace_id": trace_id}
        t0 = self._clock()
        try:
            entities = detect_pii(text, patterns=self.patterns)
        except Exception as e:  # noqa: BLE001
            elapsed_ms = (self._clock() - t0) * 1000.0
            self._emit(
                "llm.pii_redaction_error",
                meta={"error_type": type(e).__name__, "fail_mode": self.fail_mode.value, "duration_ms": round(elapsed_ms, 3)},
                severity=AuditSeverity.ERROR,
                **ctx,
            )
            self._inc("pii_redaction_errors", tags={"fail_mode": self.fail_mode.value})
            self.logger.error(f"PII detection failed ({type(e).__name__}); fail_mode={self.fail_mode.value}")
            if self.fail_mode == FailMode.closed:
                raise RedactionError(RedactionErrorKind.FAILED, error_type=type(e).__name__) from e
            return RedactionResult(masked_text=text, mapping=PiiMapping(), duration_ms=elapsed_ms, degraded=True)

        elapsed_ms = (self._clock() - t0) * 1000.0
        degraded = False
        if elapsed_ms > self.timeout_ms:
            self._emit(
                "llm.pii_redaction_timeout",
                meta={"duration_ms": round(elapsed_ms, 3), "budget_ms": self.timeout_ms, "fail_mode": self.fail_mode.value},
                severity=AuditSeverity.WARN,
                **ctx,
            )
            self._inc("pii_redaction_timeouts", tags={"fail_mode": self.fail_mode.value})
            self.logger.warning(f"PII detection exceeded budget: {elapsed_ms:.1f}ms > {self.timeout_ms}ms")
            if self.fail_mode == FailMode.closed:
                raise RedactionError(RedactionErrorKind.TIMEOUT, "PII redaction timed out; request blocked.", budget_ms=self.timeout_ms)
            degraded = True

        pii_types = sorted({e.type.value for e in entities})
        if entities:
            self._emit("llm.pii_detected", meta={"pii_types": ",".join(pii_types), "pii_count": len(entities)}, **ctx)

        masked = mask_pii(text, entities)
        if not validate_masked_text(masked.masked_text, masked.mapping):
            masked.mapping.clear()
            self._emit("llm.pii_redaction_error", meta={"error_type": "leak_check_failed", "fail_mode": self.fail_mode.value}, severity=AuditSeverity.ERROR, **ctx)
            raise RedactionError(RedactionErrorKind.FAILED, error_type="leak_check_failed")

        total_ms = (self._clock() - t0) * 1000.0
        self._emit("llm.pii_redaction_completed", meta={"duration_ms": round(total_ms, 3), "pii_count": len(entities)}, **ctx)
        if self.metrics is not None:
            self.metrics.observe("pii_redaction_ms", total_ms)
            self.metrics.inc("pii_entities", len(entities))
        return RedactionResult(
            masked_text=masked.masked_text,
            mapping=masked.mapping,
            pii_count=len(entities),
            pii_types=pii_types,
            duration_ms=total_ms,
            degraded=degraded,
        )

    def restore(self, text: str, mapping: PiiMapping) -> str:
        return restore_output(text, mapping)
