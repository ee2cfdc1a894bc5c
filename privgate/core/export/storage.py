from __future__ import annotations

import hashlib
import json
import os
import sqlite3
import threading
from typing import Any, Dict, List, Optional

from privgate.core.export.models import ExportMetadata


def token_hash(token: str) -> str:
    return hashlib.sha256(str(token or "").encode("utf-8")).hexdigest()


class ExportStorage:
    """
    Ciphertext files + SQLite metadata.

    - the download token is stored as a SHA-256 hash only
    - consume_download() is a single conditional UPDATE, so two concurrent
      downloads can never both pass the remaining-count check
    - delete() removes ciphertext and metadata together (crypto-shredding)
    """

    def __init__(self, *, db_path: str, storage_dir: str, logger: Any = None):
        self.db_path = str(db_path)
        self.storage_dir = str(storage_dir)
        self.logger = logger
        self._lock = threading.Lock()
        os.makedirs(os.path.dirname(self.db_path) or ".", exist_ok=True)
        os.makedirs(self.storage_dir, exist_ok=True)
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
                    CREATE TABLE IF NOT EXISTS exports (
                      export_id TEXT PRIMARY KEY,
                      owner_tenant_id TEXT NOT NULL,
                      owner_user_id TEXT NOT NULL,
                      token_hash TEXT NOT NULL UNIQUE,
                      created_at TEXT NOT NULL,
                      expires_at TEXT NOT NULL,
                      downloads_remaining INTEGER NOT NULL,
                      file_path TEXT NOT NULL
                    )
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_exports_owner ON exports(owner_tenant_id, owner_user_id)")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_exports_expires ON exports(expires_at)")
                conn.commit()
            finally:
                conn.close()

    @staticmethod
    def _row_to_meta(row: sqlite3.Row) -> ExportMetadata:
        return ExportMetadata(
            export_id=str(row["export_id"]),
            owner_tenant_id=str(row["owner_tenant_id"]),
            owner_user_id=str(row["owner_user_id"]),
            created_at=str(row["created_at"]),
            expires_at=str(row["expires_at"]),
            downloads_remaining=int(row["downloads_remaining"]),
            file_path=str(row["file_path"]),
        )

    def path_for(self, export_id: str) -> str:
        return os.path.join(self.storage_dir, f"{export_id}.enc.json")

    # ---- writes ----
    def save(self, *, meta: ExportMetadata, download_token: str, blob: Dict[str, Any]) -> None:
        tmp = meta.file_path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(blob, f, ensure_ascii=False, sort_keys=True)
        os.replace(tmp, meta.file_path)
        with self._lock:
            conn = self._conn()
            try:
                conn.execute(
                    "INSERT INTO exports(export_id, owner_tenant_id, owner_user_id, token_hash, created_at, expires_at, downloads_remaining, file_path) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        meta.export_id,
                        meta.owner_tenant_id,
                        meta.owner_user_id,
                        token_hash(download_token),
                        meta.created_at,
                        meta.expires_at,
                        int(meta.downloads_remaining),
                        meta.file_path,
                    ),
                )
                conn.commit()
            finally:
                conn.close()

    def consume_download(self, *, export_id: str, tenant_id: str, user_id: str, now_iso: str) -> Optional[int]:
        """
        Atomic check-and-decrement. Returns the remaining count after this
        download, or None when any guard (owner, expiry, count) fails.
        """
        with self._lock:
            conn = self._conn()
            try:
                conn.execute("BEGIN IMMEDIATE")
                cur = conn.execute(
                    """
                    UPDATE exports SET downloads_remaining = downloads_remaining - 1
                    WHERE export_id=? AND owner_tenant_id=? AND owner_user_id=?
                      AND expires_at >= ? AND downloads_remaining > 0
                    """,
                    (export_id, tenant_id, user_id, now_iso),
                )
                if int(cur.rowcount or 0) != 1:
                    conn.rollback()
                    return None
                row = conn.execute("SELECT downloads_remaining FROM exports WHERE export_id=?", (export_id,)).fetchone()
                conn.commit()
            finally:
                conn.close()
        return int(row["downloads_remaining"]) if row else 0

    def delete(self, export_id: str) -> bool:
        meta = self.get(export_id)
        path = meta.file_path if meta is not None else self.path_for(export_id)
        removed_file = False
        if os.path.exists(path):
            os.remove(path)
            removed_file = True
        with self._lock:
            conn = self._conn()
            try:
                cur = conn.execute("DELETE FROM exports WHERE export_id=?", (export_id,))
                conn.commit()
                removed_row = int(cur.rowcount or 0) > 0
            finally:
                conn.close()
        return removed_file or removed_row

    # ---- reads ----
    def get(self, export_id: str) -> Optional[ExportMetadata]:
        with self._lock:
            conn = self._conn()
            try:
                row = conn.execute("SELECT * FROM exports WHERE export_id=?", (str(export_id),)).fetchone()
            finally:
                conn.close()
        return self._row_to_meta(row) if row else None

    def get_by_token(self, download_token: str) -> Optional[ExportMetadata]:
        with self._lock:
            conn = self._conn()
            try:
                row = conn.execute("SELECT * FROM exports WHERE token_hash=?", (token_hash(download_token),)).fetchone()
            finally:
                conn.close()
        return self._row_to_meta(row) if row else None

    def read_blob(self, meta: ExportMetadata) -> Dict[str, Any]:
        with open(meta.file_path, "r", encoding="utf-8") as f:
            return json.load(f)

    def list_for_user(self, *, tenant_id: str, user_id: str) -> List[ExportMetadata]:
        with self._lock:
            conn = self._conn()
            try:
                rows = conn.execute(
                    "SELECT * FROM exports WHERE owner_tenant_id=? AND owner_user_id=? ORDER BY created_at DESC",
                    (tenant_id, user_id),
                ).fetchall()
            finally:
                conn.close()
        return [self._row_to_meta(r) for r in rows]

    def list_expired(self, *, now_iso: str) -> List[ExportMetadata]:
        with self._lock:
            conn = self._conn()
            try:
                rows = conn.execute("SELECT * FROM exports WHERE expires_at < ? ORDER BY expires_at ASC", (now_iso,)).fetchall()
            finally:
                conn.close()
        return [self._row_to_meta(r) for r in rows]
