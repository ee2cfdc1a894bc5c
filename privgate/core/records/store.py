from __future__ import annotations

import json
import os
import sqlite3
import threading
from typing import Any, List, Optional

from privgate.core.errors import ParameterError
from privgate.core.records.models import DataCategory, PersonalRecord
from privgate.core.timefmt import normalize_iso


def _require_tenant(tenant_id: Optional[str]) -> str:
    tid = str(tenant_id or "").strip()
    if not tid:
        raise ParameterError("tenant_id is required for every data operation.")
    return tid


class RecordStore:
    """
    Tenant-isolated per-category record storage (SQLite).

    Every query carries an explicit tenant_id; filters are applied in SQL,
    never after the fact in Python.
    """

    def __init__(self, *, db_path: str, logger: Any = None):
        self.db_path = str(db_path)
        self.logger = logger
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
                    CREATE TABLE IF NOT EXISTS personal_records (
                      record_id TEXT PRIMARY KEY,
                      tenant_id TEXT NOT NULL,
                      user_id TEXT NOT NULL,
                      category TEXT NOT NULL,
                      created_at TEXT NOT NULL,
                      payload_json TEXT
                    )
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_records_tenant_cat_created ON personal_records(tenant_id, category, created_at)")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_records_tenant_user ON personal_records(tenant_id, user_id)")
                conn.commit()
            finally:
                conn.close()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> PersonalRecord:
        try:
            payload = json.loads(row["payload_json"] or "{}")
        except json.JSONDecodeError:
            payload = {}
        return PersonalRecord(
            record_id=str(row["record_id"]),
            tenant_id=str(row["tenant_id"]),
            user_id=str(row["user_id"]),
            category=DataCategory(str(row["category"])),
            created_at=str(row["created_at"]),
            payload=payload if isinstance(payload, dict) else {},
        )

    # ---- writes ----
    def insert(self, rec: PersonalRecord) -> str:
        if not isinstance(rec, PersonalRecord):
            rec = PersonalRecord.model_validate(rec)
        tid = _require_tenant(rec.tenant_id)
        if rec.category == DataCategory.CONSENTS:
            raise ParameterError("Consents are stored by the consent registry.")
        with self._lock:
            conn = self._conn()
            try:
                conn.execute(
                    "INSERT INTO personal_records(record_id, tenant_id, user_id, category, created_at, payload_json) VALUES (?, ?, ?, ?, ?, ?)",
                    (rec.record_id, tid, rec.user_id, rec.category.value, rec.created_at, json.dumps(dict(rec.payload or {}), ensure_ascii=False)),
                )
                conn.commit()
            finally:
                conn.close()
        return rec.record_id

    # ---- reads ----
    def list_for_user(self, *, tenant_id: str, user_id: str, category: DataCategory, limit: Optional[int] = None) -> List[PersonalRecord]:
        tid = _require_tenant(tenant_id)
        uid = str(user_id or "").strip()
        if not uid:
            raise ParameterError("user_id is required.")
        sql = "SELECT * FROM personal_records WHERE tenant_id=? AND user_id=? AND category=? ORDER BY created_at DESC"
        params: List[Any] = [tid, uid, DataCategory(category).value]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(max(1, int(limit)))
        with self._lock:
            conn = self._conn()
            try:
                rows = conn.execute(sql, tuple(params)).fetchall()
            finally:
                conn.close()
        return [self._row_to_record(r) for r in rows]

    def list_tenants(self) -> List[str]:
        with self._lock:
            conn = self._conn()
            try:
                rows = conn.execute("SELECT DISTINCT tenant_id FROM personal_records ORDER BY tenant_id").fetchall()
            finally:
                conn.close()
        return [str(r["tenant_id"]) for r in rows]

    def count(self, *, tenant_id: str, category: Optional[DataCategory] = None) -> int:
        tid = _require_tenant(tenant_id)
        sql = "SELECT COUNT(*) AS n FROM personal_records WHERE tenant_id=?"
        params: List[Any] = [tid]
        if category is not None:
            sql += " AND category=?"
            params.append(DataCategory(category).value)
        with self._lock:
            conn = self._conn()
            try:
                row = conn.execute(sql, tuple(params)).fetchone()
            finally:
                conn.close()
        return int(row["n"] if row else 0)

    # ---- retention primitives (timestamp predicate only) ----
    def count_older_than(self, *, tenant_id: str, category: DataCategory, cutoff_iso: str) -> int:
        tid = _require_tenant(tenant_id)
        with self._lock:
            conn = self._conn()
            try:
                row = conn.execute(
                    "SELECT COUNT(*) AS n FROM personal_records WHERE tenant_id=? AND category=? AND created_at < ?",
                    (tid, DataCategory(category).value, normalize_iso(cutoff_iso)),
                ).fetchone()
            finally:
                conn.close()
        return int(row["n"] if row else 0)

    def delete_older_than(self, *, tenant_id: str, category: DataCategory, cutoff_iso: str) -> int:
        tid = _require_tenant(tenant_id)
        with self._lock:
            conn = self._conn()
            try:
                cur = conn.execute(
                    "DELETE FROM personal_records WHERE tenant_id=? AND category=? AND created_at < ?",
                    (tid, DataCategory(category).value, normalize_iso(cutoff_iso)),
                )
                conn.commit()
                return int(cur.rowcount or 0)
            finally:
                conn.close()
