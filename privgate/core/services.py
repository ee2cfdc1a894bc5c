from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from privgate.core.audit import AuditTrail, JsonlAuditSink, NullAuditSink
from privgate.core.config.models import PrivgateConfig
from privgate.core.consent.gate import ConsentGate
from privgate.core.consent.store import ConsentStore
from privgate.core.export.engine import ExportEngine
from privgate.core.export.storage import ExportStorage
from privgate.core.gateway import LLMGateway, ProviderRoute
from privgate.core.llm_backends import build_adapter
from privgate.core.logger import LOG_FILENAME
from privgate.core.pii.patterns import patterns_for
from privgate.core.pii.redactor import PiiRedactor
from privgate.core.pii.scanner import ScanResult, scan_logs
from privgate.core.records.store import RecordStore
from privgate.core.retention.policy import RetentionPolicy, RetentionRules
from privgate.core.retention.purge import PurgeEngine
from privgate.core.telemetry.metrics import RollingMetrics
from privgate.core.use_cases import UseCasePolicy


@dataclass
class PrivacyServices:
    cfg: PrivgateConfig
    audit: AuditTrail
    metrics: RollingMetrics
    records: RecordStore
    consents: ConsentStore
    consent_gate: ConsentGate
    redactor: PiiRedactor
    gateway: LLMGateway
    exports: ExportEngine
    purge: PurgeEngine
    root: str = "."

    def retention_policy(self) -> RetentionPolicy:
        return RetentionPolicy(retention_days=dict(self.cfg.retention.policy))

    def scan_logs(self, *, log_dir: str) -> List[ScanResult]:
        """Scan the rotating text log and, when enabled, the audit JSONL."""
        paths = [os.path.join(log_dir, LOG_FILENAME)]
        if self.cfg.audit.enabled:
            paths.append(_resolve(self.root, self.cfg.audit.path))
        return scan_logs(paths, audit=self.audit, logger=logging.getLogger("privgate"))

    def close(self) -> None:
        self.audit.close()


def _resolve(root: str, path: str) -> str:
    return path if os.path.isabs(path) else os.path.join(root, path)


def build_services(
    cfg: PrivgateConfig,
    *,
    root: str = ".",
    logger: Any = None,
    audit: Optional[AuditTrail] = None,
    providers: Optional[Dict[str, ProviderRoute]] = None,
    clock: Optional[Callable[[], float]] = None,
) -> PrivacyServices:
    """
    Wire every component from config. Collaborators (audit trail, provider
    routes, clock) can be injected; nothing is looked up from globals.
    """
    log = logger or logging.getLogger("privgate")
    db_path = _resolve(root, cfg.storage.db_path)

    if audit is None:
        sink = JsonlAuditSink(path=_resolve(root, cfg.audit.path)) if cfg.audit.enabled else NullAuditSink()
        audit = AuditTrail(sink, logger=log)
    metrics = RollingMetrics()

    records = RecordStore(db_path=db_path, logger=log)
    consents = ConsentStore(db_path=db_path, audit=audit, logger=log, clock=clock)
    gate = ConsentGate(store=consents, logger=log)
    redactor = PiiRedactor(
        audit=audit,
        metrics=metrics,
        logger=log,
        timeout_ms=cfg.pii.timeout_ms,
        fail_mode=cfg.pii.fail_mode,
        patterns=patterns_for(cfg.pii.enabled_types),
    )

    if providers is None:
        providers = {}
        for name, p in cfg.providers.items():
            api_key = os.environ.get(p.api_key_env, "") if p.api_key_env else ""
            providers[name] = ProviderRoute(
                adapter=build_adapter(p.kind, base_url=p.base_url, api_key=api_key),
                model=p.model,
                timeout_seconds=p.timeout_seconds,
            )

    gateway = LLMGateway(
        consent_gate=gate,
        redactor=redactor,
        providers=providers,
        use_cases=UseCasePolicy(cfg.use_cases),
        audit=audit,
        metrics=metrics,
        logger=log,
        default_provider=cfg.default_provider,
    )
    exports = ExportEngine(
        records=records,
        consents=consents,
        storage=ExportStorage(db_path=db_path, storage_dir=_resolve(root, cfg.export.storage_dir), logger=log),
        audit=audit,
        logger=log,
        clock=clock,
        retention_days=cfg.export.retention_days,
        max_downloads=cfg.export.max_downloads,
        audit_events_limit=cfg.export.audit_events_limit,
        kdf_params=cfg.export.kdf.model_dump(),
    )
    purge = PurgeEngine(records=records, rules=RetentionRules(cfg.retention.bounds), audit=audit, logger=log, clock=clock)
    return PrivacyServices(
        cfg=cfg,
        audit=audit,
        metrics=metrics,
        records=records,
        consents=consents,
        consent_gate=gate,
        redactor=redactor,
        gateway=gateway,
        exports=exports,
        purge=purge,
        root=root,
    )
