from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from privgate.core.audit.models import AuditSeverity
from privgate.core.consent.gate import ConsentGate
from privgate.core.consent.models import PurposeIdentifier
from privgate.core.errors import ParameterError, PrivgateError, ProviderError, ProviderErrorKind
from privgate.core.llm_backends.base import ProviderAdapter
from privgate.core.llm_contracts import InvokeRequest, InvokeResponse
from privgate.core.pii.redactor import PiiRedactor
from privgate.core.use_cases import UseCasePolicy


@dataclass
class ProviderRoute:
    adapter: ProviderAdapter
    model: str
    timeout_seconds: float = 30.0


class LLMGateway:
    """
    Single entry point for sending user text to a model provider.

    Pipeline (sequential, fail closed):
      validate -> use-case policy -> consent -> redact -> provider -> restore

    The PII mapping lives only inside invoke() and is cleared before return;
    it never appears in the response, logs, audit or metrics.
    """

    def __init__(
        self,
        *,
        consent_gate: ConsentGate,
        redactor: PiiRedactor,
        providers: Dict[str, ProviderRoute],
        use_cases: UseCasePolicy,
        audit: Any = None,
        metrics: Any = None,
        logger: Any = None,
        default_provider: str = "default",
    ):
        self.consent_gate = consent_gate
        self.redactor = redactor
        self.providers = dict(providers)
        self.use_cases = use_cases
        self.audit = audit
        self.metrics = metrics
        self.logger = logger or logging.getLogger(__name__)
        self.default_provider = default_provider

    def _emit(self, event: str, req: InvokeRequest, meta: dict, *, severity: AuditSeverity = AuditSeverity.INFO) -> None:
        if self.audit is None:
            return
        self.audit.emit(event, tenant_id=req.tenant_id or None, actor_id=req.actor_id or None, trace_id=req.trace_id, meta=meta, severity=severity)

    def _fail(self, req: InvokeRequest, stage: str, err: PrivgateError) -> None:
        kind = getattr(err, "kind", None)
        self._emit(
            "llm.invoke_failed",
            req,
            {"stage": stage, "error_code": err.code, "kind": kind.value if kind is not None else None, "policy": req.policy},
            severity=AuditSeverity.WARN,
        )
        if self.metrics is not None:
            self.metrics.inc("llm_invocations", tags={"outcome": "failed", "stage": stage})
        self.logger.warning(f"[{req.trace_id}] llm invoke blocked at {stage}: {err.code}")

    @staticmethod
    def _missing_fields(req: InvokeRequest) -> List[str]:
        missing = []
        if not str(req.tenant_id or "").strip():
            missing.append("tenant_id")
        if not isinstance(req.purpose, PurposeIdentifier) or not req.purpose.value:
            missing.append("purpose")
        if not str(req.policy or "").strip():
            missing.append("policy")
        if not str(req.text or "").strip():
            missing.append("text")
        return missing

    def _route(self, name: Optional[str]) -> ProviderRoute:
        key = str(name or self.default_provider)
        route = self.providers.get(key)
        if route is None:
            raise ProviderError(ProviderErrorKind.UNKNOWN_PROVIDER, "Unknown provider.", provider=key)
        return route

    def invoke(self, req: InvokeRequest) -> InvokeResponse:
        t0 = time.time()
        if not isinstance(req, InvokeRequest):
            req = InvokeRequest.model_validate(req)

        # (1) parameters, before any I/O
        missing = self._missing_fields(req)
        if missing:
            err = ParameterError("tenant_id, purpose, policy and text are required.", missing=missing)
            self._fail(req, "validation", err)
            raise err
        try:
            route = self._route(req.provider)
        except ProviderError as e:
            self._fail(req, "validation", e)
            raise

        # (2) use case + consent; abort before dispatch on any failure
        try:
            decision = self.use_cases.enforce(req.policy)
            if decision.consent_required:
                self.consent_gate.check_consent(tenant_id=req.tenant_id, user_id=req.actor_id, purpose=req.purpose)
        except PrivgateError as e:
            self._fail(req, "consent" if e.code in {"consent_error", "parameter_error"} else "policy", e)
            raise

        # (3) redact
        try:
            red = self.redactor.redact(req.text, tenant_id=req.tenant_id, actor_id=req.actor_id, trace_id=req.trace_id)
        except PrivgateError as e:
            self._fail(req, "redaction", e)
            raise

        model = str(req.model or route.model)
        try:
            # (4) dispatch redacted text only
            raw = self._dispatch(req, route, model, red.masked_text)
            # (5) restore
            restored = self.redactor.restore(raw, red.mapping)
        finally:
            red.mapping.clear()

        latency = time.time() - t0
        self._emit(
            "llm.invoke_completed",
            req,
            {
                "provider": route.adapter.name,
                "model": model,
                "use_case": decision.use_case,
                "pii_count": red.pii_count,
                "redaction_degraded": red.degraded,
                "latency_ms": int(latency * 1000),
            },
        )
        if self.metrics is not None:
            self.metrics.inc("llm_invocations", tags={"outcome": "ok"})
            self.metrics.observe("llm_latency_ms", latency * 1000.0, tags={"provider": route.adapter.name})
        # (6) text + provider + model only
        return InvokeResponse(
            text=restored,
            provider=route.adapter.name,
            model=model,
            trace_id=req.trace_id,
            pii_count=red.pii_count,
            redaction_degraded=red.degraded,
            latency_seconds=latency,
        )

    def _dispatch(self, req: InvokeRequest, route: ProviderRoute, model: str, masked_text: str) -> str:
        messages = [{"role": "user", "content": masked_text}]
        options = {"temperature": float(req.temperature), "max_tokens": int(req.max_tokens)}
        try:
            return route.adapter.chat(
                model=model,
                messages=messages,
                options=options,
                timeout_seconds=float(route.timeout_seconds),
                trace_id=req.trace_id,
            )
        except requests.Timeout as e:
            err = ProviderError(ProviderErrorKind.TIMEOUT, "The language model provider timed out.", provider=route.adapter.name)
            self._fail(req, "provider", err)
            raise err from e
        except (ValueError, KeyError) as e:
            err = ProviderError(ProviderErrorKind.BAD_RESPONSE, "The language model provider returned an invalid response.", provider=route.adapter.name)
            self._fail(req, "provider", err)
            raise err from e
        except Exception as e:  # noqa: BLE001
            # never include the exception text: it may echo request content
            err = ProviderError(ProviderErrorKind.UNAVAILABLE, provider=route.adapter.name, error_type=type(e).__name__)
            self._fail(req, "provider", err)
            raise err from e
