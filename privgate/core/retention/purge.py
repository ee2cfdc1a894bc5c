from __future__ import annotations

import logging
import threading
import time
import weakref
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from privgate.core.audit.models import AuditSeverity
from privgate.core.errors import ParameterError, RetentionPolicyError, RetentionPolicyErrorKind
from privgate.core.records.models import DataCategory
from privgate.core.records.store import RecordStore
from privgate.core.retention.policy import RetentionPolicy, RetentionRules


def _iso(ts: float) -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(ts))


class PurgeResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tenant_id: Optional[str] = None
    purged: Dict[str, int] = Field(default_factory=dict)
    tenants: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    dry_run: bool = False
    executed_at: str

    @property
    def total(self) -> int:
        return sum(self.purged.values())


class PurgeEngine:
    """
    Policy-driven, tenant-scoped retention purge.

    The deletion predicate is created_at < now - retention_days, nothing
    else, so a second run with no new inserts deletes nothing. Runs for the
    same tenant are serialized by a per-tenant lock.
    """

    def __init__(
        self,
        *,
        records: RecordStore,
        rules: Optional[RetentionRules] = None,
        audit: Any = None,
        logger: Any = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.records = records
        self.rules = rules or RetentionRules()
        self.audit = audit
        self.logger = logger or logging.getLogger(__name__)
        self._clock = clock or time.time
        self._locks_guard = threading.Lock()
        # entries vanish once no run holds the lock
        self._tenant_locks: weakref.WeakValueDictionary[str, threading.RLock] = weakref.WeakValueDictionary()

    def _tenant_lock(self, tenant_id: str) -> threading.RLock:
        with self._locks_guard:
            lk = self._tenant_locks.get(tenant_id)
            if lk is None:
                lk = threading.RLock()
                self._tenant_locks[tenant_id] = lk
            return lk

    @staticmethod
    def _require_tenant(tenant_id: Optional[str]) -> str:
        tid = str(tenant_id or "").strip()
        if not tid:
            raise ParameterError("tenant_id is required for purge operations.")
        return tid

    def cutoff_for(self, days: int) -> str:
        return _iso(self._clock() - int(days) * 86400)

    def purge_category(self, *, tenant_id: str, category: DataCategory, policy: RetentionPolicy, dry_run: bool = False) -> int:
        """
        Count (dry_run) or delete records of one category older than the
        policy cutoff, for one tenant only. Returns the affected count.
        """
        tid = self._require_tenant(tenant_id)
        cat = DataCategory(category)
        self.rules.validate(policy)
        if self.rules.is_forbidden(cat.value):
            raise RetentionPolicyError(RetentionPolicyErrorKind.FORBIDDEN_CATEGORY, "Category may not be purged automatically.", category=cat.value)
        days = policy.days_for(cat)
        if days is None:
            raise ParameterError("Retention policy has no entry for this category.", category=cat.value)
        with self._tenant_lock(tid):
            return self._purge_locked(tid, cat, int(days), bool(dry_run))

    def _purge_locked(self, tenant_id: str, category: DataCategory, days: int, dry_run: bool) -> int:
        cutoff = self.cutoff_for(days)
        if dry_run:
            return self.records.count_older_than(tenant_id=tenant_id, category=category, cutoff_iso=cutoff)
        return self.records.delete_older_than(tenant_id=tenant_id, category=category, cutoff_iso=cutoff)

    def purge_tenant(self, *, tenant_id: str, policy: RetentionPolicy, dry_run: bool = False) -> PurgeResult:
        tid = self._require_tenant(tenant_id)
        self.rules.validate(policy)
        purged: Dict[str, int] = {}
        with self._tenant_lock(tid):
            for raw_cat, days in sorted(policy.retention_days.items()):
                cat = DataCategory(raw_cat)
                purged[cat.value] = self._purge_locked(tid, cat, int(days), bool(dry_run))
        res = PurgeResult(tenant_id=tid, purged=purged, dry_run=bool(dry_run), executed_at=_iso(self._clock()))
        if self.audit is not None:
            self.audit.emit(
                "retention.purge_completed",
                tenant_id=tid,
                actor_id="system",
                meta={"purged": purged, "dry_run": bool(dry_run)},
                severity=AuditSeverity.INFO,
            )
        self.logger.info(f"tenant_purge_completed tenant={tid} dry_run={bool(dry_run)} purged={purged}")
        return res

    def purge_all_tenants(self, *, policy: RetentionPolicy, dry_run: bool = False) -> PurgeResult:
        """Platform-wide run: the tenant-scoped primitive applied to every known tenant."""
        self.rules.validate(policy)
        totals: Dict[str, int] = {}
        per_tenant: Dict[str, Dict[str, int]] = {}
        for tid in self.records.list_tenants():
            r = self.purge_tenant(tenant_id=tid, policy=policy, dry_run=dry_run)
            per_tenant[tid] = dict(r.purged)
            for k, v in r.purged.items():
                totals[k] = totals.get(k, 0) + int(v)
        self.logger.info(f"purge_job_completed tenants={len(per_tenant)} dry_run={bool(dry_run)} purged={totals}")
        return PurgeResult(tenant_id=None, purged=totals, tenants=per_tenant, dry_run=bool(dry_run), executed_at=_iso(self._clock()))
