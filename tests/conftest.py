from __future__ import annotations

import os

import pytest

from privgate.core.audit import AuditTrail, MemoryAuditSink
from privgate.core.consent.gate import ConsentGate
from privgate.core.consent.store import ConsentStore
from privgate.core.records.store import RecordStore
from tests.helpers.fakes import FakeClock

# Cheap scrypt cost for tests only.
TEST_KDF = {"n": 2**10, "r": 8, "p": 1}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_path(tmp_path):
    path = os.path.join(str(tmp_path), "data", "privgate.sqlite")
    os.makedirs(os.path.dirname(path), exist_ok=True)
    return path


@pytest.fixture
def audit_sink():
    return MemoryAuditSink()


@pytest.fixture
def audit(audit_sink):
    trail = AuditTrail(audit_sink)
    yield trail
    trail.close()


@pytest.fixture
def records(db_path):
    return RecordStore(db_path=db_path)


@pytest.fixture
def consents(db_path, audit, clock):
    return ConsentStore(db_path=db_path, audit=audit, clock=clock.time)


@pytest.fixture
def gate(consents):
    return ConsentGate(store=consents)
