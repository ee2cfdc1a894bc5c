from __future__ import annotations

import gc
import threading

import pytest
from pydantic import ValidationError

from privgate.core.config.models import LegalBounds
from privgate.core.errors import ParameterError, RetentionPolicyError, RetentionPolicyErrorKind
from privgate.core.records.models import DataCategory, PersonalRecord
from privgate.core.retention.policy import RetentionPolicy, RetentionRules
from privgate.core.retention.purge import PurgeEngine

DAY = 86400
POLICY = RetentionPolicy(retention_days={"ai_jobs": 90, "audit_events": 365})


@pytest.fixture
def engine(records, audit, clock):
    return PurgeEngine(records=records, rules=RetentionRules(), audit=audit, clock=clock.time)


def _job(records, clock, *, tenant="T1", user="U1", age_days=0, category=DataCategory.AI_JOBS):
    return records.insert(PersonalRecord(tenant_id=tenant, user_id=user, category=category, created_at=clock.iso(-age_days * DAY)))


def test_purge_is_idempotent(engine, records, clock):
    _job(records, clock, age_days=120)
    _job(records, clock, age_days=100)
    _job(records, clock, age_days=10)

    first = engine.purge_category(tenant_id="T1", category=DataCategory.AI_JOBS, policy=POLICY)
    second = engine.purge_category(tenant_id="T1", category=DataCategory.AI_JOBS, policy=POLICY)
    assert first == 2
    assert second == 0
    assert records.count(tenant_id="T1", category=DataCategory.AI_JOBS) == 1


def test_purge_never_touches_other_tenants(engine, records, clock):
    _job(records, clock, tenant="T1", age_days=200)
    _job(records, clock, tenant="T2", age_days=200)

    assert engine.purge_category(tenant_id="T1", category=DataCategory.AI_JOBS, policy=POLICY) == 1
    assert records.count(tenant_id="T1") == 0
    assert records.count(tenant_id="T2") == 1


def test_dry_run_counts_without_deleting(engine, records, clock):
    _job(records, clock, age_days=120)
    res = engine.purge_tenant(tenant_id="T1", policy=POLICY, dry_run=True)
    assert res.dry_run is True
    assert res.purged["ai_jobs"] == 1
    assert records.count(tenant_id="T1") == 1


def test_records_at_the_cutoff_are_kept(engine, records, clock):
    _job(records, clock, age_days=90)
    assert engine.purge_category(tenant_id="T1", category=DataCategory.AI_JOBS, policy=POLICY) == 0


def test_audit_events_respect_their_own_window(engine, records, clock):
    _job(records, clock, age_days=200, category=DataCategory.AUDIT_EVENTS)
    _job(records, clock, age_days=400, category=DataCategory.AUDIT_EVENTS)
    res = engine.purge_tenant(tenant_id="T1", policy=POLICY)
    assert res.purged == {"ai_jobs": 0, "audit_events": 1}
    assert res.total == 1


def test_purge_tenant_emits_audit_summary(engine, records, clock, audit_sink):
    _job(records, clock, age_days=120)
    engine.purge_tenant(tenant_id="T1", policy=POLICY)
    ev = audit_sink.by_event("retention.purge_completed")
    assert len(ev) == 1
    assert ev[0].tenant_id == "T1"
    assert ev[0].meta["purged"]["ai_jobs"] == 1


def test_purge_all_tenants_aggregates(engine, records, clock):
    _job(records, clock, tenant="T1", age_days=120)
    _job(records, clock, tenant="T2", age_days=120)
    _job(records, clock, tenant="T2", age_days=5)
    res = engine.purge_all_tenants(policy=POLICY)
    assert res.tenant_id is None
    assert res.purged["ai_jobs"] == 2
    assert res.tenants["T1"]["ai_jobs"] == 1
    assert res.tenants["T2"]["ai_jobs"] == 1
    assert records.count(tenant_id="T2") == 1


@pytest.mark.parametrize("tenant_id", ["", "   ", None])
def test_tenant_is_required(engine, tenant_id):
    with pytest.raises(ParameterError):
        engine.purge_category(tenant_id=tenant_id, category=DataCategory.AI_JOBS, policy=POLICY)
    with pytest.raises(ParameterError):
        engine.purge_tenant(tenant_id=tenant_id, policy=POLICY)


def test_consents_can_never_be_purged(engine):
    with pytest.raises(RetentionPolicyError) as ei:
        engine.purge_category(tenant_id="T1", category=DataCategory.CONSENTS, policy=POLICY)
    assert ei.value.kind == RetentionPolicyErrorKind.FORBIDDEN_CATEGORY


@pytest.mark.parametrize(
    "days, kind, message",
    [
        ({"consents": 30}, RetentionPolicyErrorKind.FORBIDDEN_CATEGORY, "Consents auto-purge forbidden."),
        ({"ai_jobs": 91}, RetentionPolicyErrorKind.EXCEEDS_CEILING, "AI jobs retention exceeds maximum (90 days)."),
        ({"audit_events": 364}, RetentionPolicyErrorKind.BELOW_FLOOR, "Audit events retention below legal minimum (365 days)."),
        ({"ai_jobs": 0}, RetentionPolicyErrorKind.BELOW_FLOOR, "AI jobs retention must be at least 1 day."),
        ({"chat_logs": 10}, RetentionPolicyErrorKind.UNKNOWN_CATEGORY, "Unknown data category in retention policy."),
    ],
)
def test_policy_validation(days, kind, message):
    with pytest.raises(RetentionPolicyError) as ei:
        RetentionRules().validate(RetentionPolicy(retention_days=days))
    assert ei.value.kind == kind
    assert ei.value.user_message == message


def test_invalid_policy_deletes_nothing(engine, records, clock):
    _job(records, clock, age_days=120)
    with pytest.raises(RetentionPolicyError):
        engine.purge_tenant(tenant_id="T1", policy=RetentionPolicy(retention_days={"ai_jobs": 30, "audit_events": 10}))
    assert records.count(tenant_id="T1") == 1


def test_consents_stay_forbidden_even_if_bounds_omit_them():
    rules = RetentionRules(LegalBounds(forbidden=[]))
    assert rules.is_forbidden("consents")


def test_policy_keys_are_normalized():
    p = RetentionPolicy(retention_days={" AI_JOBS ": 30})
    assert p.days_for(DataCategory.AI_JOBS) == 30
    assert p.days_for(DataCategory.AUDIT_EVENTS) is None


def test_concurrent_purges_delete_each_record_once(engine, records, clock):
    for _ in range(20):
        _job(records, clock, age_days=120)
    counts = []
    lock = threading.Lock()

    def worker():
        n = engine.purge_category(tenant_id="T1", category=DataCategory.AI_JOBS, policy=POLICY)
        with lock:
            counts.append(n)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    assert sum(counts) == 20


@pytest.mark.parametrize(
    "created_at",
    [
        "2001-01-01 00:00:00+00:00",
        "2001-01-01T02:00:00.500+02:00",
        "2001-01-01T00:00:00z",
        "2001-01-01",
        978307200,
    ],
)
def test_non_canonical_timestamps_are_normalized_and_purged(engine, records, created_at):
    rec = PersonalRecord(tenant_id="T1", user_id="U1", category=DataCategory.AI_JOBS, created_at=created_at)
    assert rec.created_at == "2001-01-01T00:00:00Z"
    records.insert(rec)
    policy = RetentionPolicy(retention_days={"ai_jobs": 30})
    assert engine.purge_category(tenant_id="T1", category=DataCategory.AI_JOBS, policy=policy) == 1
    assert records.count(tenant_id="T1") == 0


@pytest.mark.parametrize("created_at", ["Jan 1 2001", "", "yesterday", True])
def test_unparseable_timestamps_are_rejected(created_at):
    with pytest.raises(ValidationError):
        PersonalRecord(tenant_id="T1", user_id="U1", category=DataCategory.AI_JOBS, created_at=created_at)


def test_offset_timestamps_sort_by_instant(records):
    # 23:30 at -05:00 is 04:30 UTC the next day, which is newer than 01:00Z
    late = records.insert(PersonalRecord(tenant_id="T1", user_id="U1", category=DataCategory.AI_JOBS, created_at="2001-01-01T23:30:00-05:00"))
    records.insert(PersonalRecord(tenant_id="T1", user_id="U1", category=DataCategory.AI_JOBS, created_at="2001-01-02T01:00:00Z"))
    newest = records.list_for_user(tenant_id="T1", user_id="U1", category=DataCategory.AI_JOBS)[0]
    assert newest.record_id == late
    assert newest.created_at == "2001-01-02T04:30:00Z"


def test_tenant_locks_are_released_after_runs(engine, records, clock):
    for i in range(5):
        _job(records, clock, tenant=f"T{i}", age_days=120)
    engine.purge_all_tenants(policy=POLICY)
    gc.collect()
    assert len(engine._tenant_locks) == 0


def test_tenant_lock_is_shared_while_held(engine):
    held = engine._tenant_lock("T1")
    assert engine._tenant_lock("T1") is held
    assert engine._tenant_lock("T2") is not held
