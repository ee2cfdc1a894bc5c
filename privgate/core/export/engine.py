from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from privgate.core.audit.models import AuditSeverity
from privgate.core.consent.store import ConsentStore
from privgate.core.crypto import decrypt_with_password, encrypt_with_password, generate_password, generate_token
from privgate.core.errors import ExportError, ExportErrorKind, ParameterError
from privgate.core.export.models import EXPORT_VERSION, DownloadResult, ExportBundle, ExportMetadata, ExportReceipt
from privgate.core.export.storage import ExportStorage
from privgate.core.records.models import DataCategory
from privgate.core.records.store import RecordStore


def _iso(ts: float) -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(ts))


def _aad(export_id: str) -> bytes:
    return f"privgate.export.v1:{export_id}".encode("utf-8")


def open_bundle(blob: Dict[str, Any], password: str) -> ExportBundle:
    """
    Caller-side decryption of a downloaded export. Raises CryptoError on a
    wrong password or tampered ciphertext.
    """
    export_id = str((blob or {}).get("export_id") or "")
    pt = decrypt_with_password(blob, password, aad=_aad(export_id))
    return ExportBundle.model_validate(json.loads(pt.decode("utf-8")))


class ExportEngine:
    """
    Personal-data export lifecycle: build -> encrypt -> store -> gated download
    -> crypto-shred.

    The one-time password only ever exists in the ExportReceipt returned by
    request_export(); the server keeps ciphertext, metadata and a token hash.
    """

    def __init__(
        self,
        *,
        records: RecordStore,
        consents: ConsentStore,
        storage: ExportStorage,
        audit: Any = None,
        logger: Any = None,
        clock: Optional[Callable[[], float]] = None,
        retention_days: int = 7,
        max_downloads: int = 3,
        audit_events_limit: int = 1000,
        kdf_params: Optional[Dict[str, int]] = None,
    ):
        self.records = records
        self.consents = consents
        self.storage = storage
        self.audit = audit
        self.logger = logger or logging.getLogger(__name__)
        self._clock = clock or time.time
        self.retention_days = max(1, int(retention_days))
        self.max_downloads = max(1, int(max_downloads))
        self.audit_events_limit = max(1, int(audit_events_limit))
        self.kdf_params = dict(kdf_params or {})

    def _emit(self, event: str, *, tenant_id: str, actor_id: Optional[str], meta: dict, trace_id: Optional[str] = None, severity: AuditSeverity = AuditSeverity.INFO) -> None:
        if self.audit is None:
            return
        self.audit.emit(event, tenant_id=tenant_id, actor_id=actor_id, trace_id=trace_id, meta=meta, severity=severity)

    # ---- build ----
    def _collect(self, *, tenant_id: str, user_id: str) -> Dict[str, List[Dict[str, Any]]]:
        # every source filters by (tenant_id, user_id) in its own query
        consents = self.consents.list_for_user(tenant_id=tenant_id, user_id=user_id)
        jobs = self.records.list_for_user(tenant_id=tenant_id, user_id=user_id, category=DataCategory.AI_JOBS)
        events = self.records.list_for_user(
            tenant_id=tenant_id, user_id=user_id, category=DataCategory.AUDIT_EVENTS, limit=self.audit_events_limit
        )
        return {
            DataCategory.CONSENTS.value: [c.model_dump(mode="json") for c in consents],
            DataCategory.AI_JOBS.value: [r.model_dump(mode="json") for r in jobs],
            DataCategory.AUDIT_EVENTS.value: [r.model_dump(mode="json") for r in events],
        }

    def request_export(self, *, tenant_id: str, user_id: str, trace_id: Optional[str] = None) -> ExportReceipt:
        tid = str(tenant_id or "").strip()
        uid = str(user_id or "").strip()
        if not tid or not uid:
            raise ParameterError("tenant_id and user_id are required.")

        now = self._clock()
        export_id = uuid.uuid4().hex
        expires_at = _iso(now + self.retention_days * 86400)
        bundle = ExportBundle(
            export_id=export_id,
            tenant_id=tid,
            user_id=uid,
            generated_at=_iso(now),
            expires_at=expires_at,
            version=EXPORT_VERSION,
            data=self._collect(tenant_id=tid, user_id=uid),
        )

        password = generate_password()
        download_token = generate_token()
        plaintext = json.dumps(bundle.model_dump(mode="json"), ensure_ascii=False, sort_keys=True).encode("utf-8")
        blob = encrypt_with_password(plaintext, password, aad=_aad(export_id), **self.kdf_params)
        blob["export_id"] = export_id

        meta = ExportMetadata(
            export_id=export_id,
            owner_tenant_id=tid,
            owner_user_id=uid,
            created_at=_iso(now),
            expires_at=expires_at,
            downloads_remaining=self.max_downloads,
            file_path=self.storage.path_for(export_id),
        )
        self.storage.save(meta=meta, download_token=download_token, blob=blob)

        counts = {k: len(v) for k, v in bundle.data.items()}
        self._emit(
            "rgpd.export.created",
            tenant_id=tid,
            actor_id=uid,
            trace_id=trace_id,
            meta={"export_id": export_id, "expires_at": expires_at, "record_counts": counts, "max_downloads": self.max_downloads},
        )
        self.logger.info(f"export created export_id={export_id} tenant={tid}")
        return ExportReceipt(export_id=export_id, download_token=download_token, password=password, expires_at=expires_at)

    # ---- download ----
    def _deny(self, kind: ExportErrorKind, *, meta: Optional[ExportMetadata], tenant_id: str, user_id: str) -> ExportError:
        self._emit(
            "rgpd.export.denied",
            tenant_id=tenant_id or (meta.owner_tenant_id if meta else ""),
            actor_id=user_id or None,
            meta={"export_id": meta.export_id if meta else None, "reason": kind.value},
            severity=AuditSeverity.WARN,
        )
        return ExportError(kind, export_id=meta.export_id if meta else None)

    def _classify(self, meta: ExportMetadata, *, tenant_id: str, user_id: str, now_iso: str) -> Optional[ExportErrorKind]:
        if meta.owner_tenant_id != tenant_id or meta.owner_user_id != user_id:
            return ExportErrorKind.NOT_OWNED
        if now_iso > meta.expires_at:
            return ExportErrorKind.EXPIRED
        if meta.downloads_remaining <= 0:
            return ExportErrorKind.LIMIT_REACHED
        return None

    def download_export(self, *, download_token: str, requesting_user_id: str, requesting_tenant_id: str) -> DownloadResult:
        tid = str(requesting_tenant_id or "").strip()
        uid = str(requesting_user_id or "").strip()
        if not download_token or not tid or not uid:
            raise ParameterError("download_token, user_id and tenant_id are required.")

        meta = self.storage.get_by_token(download_token)
        if meta is None:
            raise self._deny(ExportErrorKind.NOT_FOUND, meta=None, tenant_id=tid, user_id=uid)

        now_iso = _iso(self._clock())
        kind = self._classify(meta, tenant_id=tid, user_id=uid, now_iso=now_iso)
        if kind is not None:
            raise self._deny(kind, meta=meta, tenant_id=tid, user_id=uid)

        remaining = self.storage.consume_download(export_id=meta.export_id, tenant_id=tid, user_id=uid, now_iso=now_iso)
        if remaining is None:
            # lost a race: re-read to report the guard that actually failed
            fresh = self.storage.get(meta.export_id)
            if fresh is None:
                raise self._deny(ExportErrorKind.NOT_FOUND, meta=meta, tenant_id=tid, user_id=uid)
            kind = self._classify(fresh, tenant_id=tid, user_id=uid, now_iso=now_iso) or ExportErrorKind.LIMIT_REACHED
            raise self._deny(kind, meta=fresh, tenant_id=tid, user_id=uid)

        try:
            blob = self.storage.read_blob(meta)
        except OSError:
            # shredded between the guard update and the read
            raise self._deny(ExportErrorKind.NOT_FOUND, meta=meta, tenant_id=tid, user_id=uid) from None
        self._emit(
            "rgpd.export.downloaded",
            tenant_id=tid,
            actor_id=uid,
            meta={"export_id": meta.export_id, "remaining_downloads": remaining},
        )
        return DownloadResult(export_id=meta.export_id, ciphertext=blob, remaining_downloads=remaining, expires_at=meta.expires_at)

    # ---- listing / shredding ----
    def list_exports(self, *, tenant_id: str, user_id: str) -> List[ExportMetadata]:
        tid = str(tenant_id or "").strip()
        uid = str(user_id or "").strip()
        if not tid or not uid:
            raise ParameterError("tenant_id and user_id are required.")
        return self.storage.list_for_user(tenant_id=tid, user_id=uid)

    def _shred(self, meta: ExportMetadata, *, reason: str) -> bool:
        ok = self.storage.delete(meta.export_id)
        if ok:
            self._emit(
                "rgpd.export.shredded",
                tenant_id=meta.owner_tenant_id,
                actor_id=meta.owner_user_id,
                meta={"export_id": meta.export_id, "reason": reason},
            )
        return ok

    def cleanup_expired_exports(self) -> int:
        """Crypto-shred every bundle past its expiry. Returns the number removed."""
        now_iso = _iso(self._clock())
        removed = 0
        for meta in self.storage.list_expired(now_iso=now_iso):
            if self._shred(meta, reason="expired"):
                removed += 1
        if removed:
            self.logger.info(f"export cleanup removed={removed}")
        return removed

    def shred_user_exports(self, *, tenant_id: str, user_id: str) -> int:
        """Crypto-shred all bundles of one user (erasure flow)."""
        removed = 0
        for meta in self.list_exports(tenant_id=tenant_id, user_id=user_id):
            if self._shred(meta, reason="erasure"):
                removed += 1
        return removed
