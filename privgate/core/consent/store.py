from __future__ import annotations

import os
import sqlite3
import threading
import time
from typing import Any, Callable, List, Optional

from privgate.core.audit.models import AuditSeverity
from privgate.core.consent.models import Consent, PurposeIdentifier, PurposeKind
from privgate.core.errors import ParameterError


def _iso(ts: float) -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(ts))


class ConsentStore:
    """
    Consent registry (SQLite).

    - no caching: every lookup opens a fresh connection and reads committed state
    - grant appends a new row; revoke mutates the latest matching row
    - rows are never deleted here
    """

    def __init__(self, *, db_path: str, audit: Any = None, logger: Any = None, clock: Optional[Callable[[], float]] = None):
        self.db_path = str(db_path)
        self.audit = audit
        self.logger = logger
        self._clock = clock or time.time
        self._lock = threading.Lock()
        os.makedirs(os.path.dirname(self.db_path) or ".", exist_ok=True)
        self._init_db()

    # ---- sqlite helpers ----
    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    def _init_db(self) -> None:
        with self._lock:
            conn = self._conn()
            try:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS consents (
                      consent_id TEXT PRIMARY KEY,
                      tenant_id TEXT NOT NULL,
                      user_id TEXT NOT NULL,
                      purpose TEXT NOT NULL,
                      purpose_id TEXT,
                      granted INTEGER NOT NULL,
                      granted_at TEXT,
                      revoked_at TEXT,
                      created_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_consents_label ON consents(tenant_id, user_id, purpose)")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_consents_pid ON consents(tenant_id, user_id, purpose_id)")
                conn.commit()
            finally:
                conn.close()

    def _emit(self, event: str, *, tenant_id: str, actor_id: str, meta: dict, severity: AuditSeverity = AuditSeverity.INFO) -> None:
        if self.audit is None:
            return
        self.audit.emit(event, tenant_id=tenant_id, actor_id=actor_id, meta=meta, severity=severity)

    @staticmethod
    def _require(tenant_id: str, user_id: str) -> tuple:
        tid = str(tenant_id or "").strip()
        uid = str(user_id or "").strip()
        if not tid or not uid:
            raise ParameterError("tenant_id and user_id are required.")
        return tid, uid

    @staticmethod
    def _row_to_consent(row: sqlite3.Row) -> Consent:
        return Consent(
            consent_id=str(row["consent_id"]),
            tenant_id=str(row["tenant_id"]),
            user_id=str(row["user_id"]),
            purpose=str(row["purpose"]),
            purpose_id=row["purpose_id"],
            granted=bool(row["granted"]),
            granted_at=row["granted_at"],
            revoked_at=row["revoked_at"],
            created_at=str(row["created_at"]),
        )

    # ---- writes ----
    def _record(self, *, tenant_id: str, user_id: str, purpose: str, purpose_id: Optional[str], granted: bool) -> Consent:
        tid, uid = self._require(tenant_id, user_id)
        label = str(purpose or "").strip()
        if not label:
            raise ParameterError("purpose is required.")
        now = _iso(self._clock())
        rec = Consent(
            tenant_id=tid,
            user_id=uid,
            purpose=label,
            purpose_id=(str(purpose_id).strip() or None) if purpose_id else None,
            granted=bool(granted),
            granted_at=now if granted else None,
            created_at=now,
        )
        with self._lock:
            conn = self._conn()
            try:
                conn.execute(
                    "INSERT INTO consents(consent_id, tenant_id, user_id, purpose, purpose_id, granted, granted_at, revoked_at, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, NULL, ?)",
                    (rec.consent_id, rec.tenant_id, rec.user_id, rec.purpose, rec.purpose_id, 1 if rec.granted else 0, rec.granted_at, rec.created_at),
                )
                conn.commit()
            finally:
                conn.close()
        self._emit(
            "consent.granted" if granted else "consent.denied",
            tenant_id=tid,
            actor_id=uid,
            meta={"consent_id": rec.consent_id, "purpose": rec.purpose, "purpose_id": rec.purpose_id},
        )
        return rec

    def grant(self, *, tenant_id: str, user_id: str, purpose: str, purpose_id: Optional[str] = None) -> Consent:
        return self._record(tenant_id=tenant_id, user_id=user_id, purpose=purpose, purpose_id=purpose_id, granted=True)

    def deny(self, *, tenant_id: str, user_id: str, purpose: str, purpose_id: Optional[str] = None) -> Consent:
        """Record an explicit refusal (granted=false, not revoked)."""
        return self._record(tenant_id=tenant_id, user_id=user_id, purpose=purpose, purpose_id=purpose_id, granted=False)

    def revoke(self, *, tenant_id: str, user_id: str, purpose: PurposeIdentifier) -> Optional[Consent]:
        """
        Revoke the current consent for the purpose. Returns the updated row, or
        None when there is nothing to revoke.
        """
        current = self.find(tenant_id=tenant_id, user_id=user_id, purpose=purpose)
        if current is None:
            return None
        now = _iso(self._clock())
        with self._lock:
            conn = self._conn()
            try:
                conn.execute(
                    "UPDATE consents SET granted=0, revoked_at=? WHERE consent_id=? AND tenant_id=?",
                    (now, current.consent_id, current.tenant_id),
                )
                conn.commit()
            finally:
                conn.close()
        self._emit(
            "consent.revoked",
            tenant_id=current.tenant_id,
            actor_id=current.user_id,
            meta={"consent_id": current.consent_id, "purpose": current.purpose, "purpose_id": current.purpose_id},
            severity=AuditSeverity.WARN,
        )
        return current.model_copy(update={"granted": False, "revoked_at": now})

    # ---- reads ----
    def find(self, *, tenant_id: str, user_id: str, purpose: PurposeIdentifier) -> Optional[Consent]:
        """
        The single purpose resolution function: latest row matching either the
        authoritative purpose_id (BY_ID) or the legacy label (BY_LABEL).
        """
        tid, uid = self._require(tenant_id, user_id)
        if not isinstance(purpose, PurposeIdentifier):
            raise ParameterError("purpose must be a PurposeIdentifier.")
        if not purpose.value:
            raise ParameterError("purpose is required.")
        column = "purpose_id" if purpose.kind == PurposeKind.BY_ID else "purpose"
        with self._lock:
            conn = self._conn()
            try:
                row = conn.execute(
                    f"SELECT * FROM consents WHERE tenant_id=? AND user_id=? AND {column}=? ORDER BY created_at DESC, rowid DESC LIMIT 1",
                    (tid, uid, purpose.value),
                ).fetchone()
            finally:
                conn.close()
        return self._row_to_consent(row) if row else None

    def list_for_user(self, *, tenant_id: str, user_id: str) -> List[Consent]:
        tid, uid = self._require(tenant_id, user_id)
        with self._lock:
            conn = self._conn()
            try:
                rows = conn.execute(
                    "SELECT * FROM consents WHERE tenant_id=? AND user_id=? ORDER BY created_at ASC, rowid ASC",
                    (tid, uid),
                ).fetchall()
            finally:
                conn.close()
        return [self._row_to_consent(r) for r in rows]
