from __future__ import annotations

import json
import os

import app
from privgate.core.config import PrivgateConfig, save_config
from privgate.core.config.io import atomic_write_json
from privgate.core.records.models import DataCategory, PersonalRecord
from privgate.core.records.store import RecordStore
from tests.helpers.log_assertions import read_jsonl


def _args(tmp_path, *rest):
    root = str(tmp_path)
    return ["--config", os.path.join(root, "config", "privgate.json"), "--root", root, "--log-dir", os.path.join(root, "logs"), *rest]


def _out(capsys):
    return json.loads(capsys.readouterr().out)


def test_print_config_defaults(tmp_path, capsys):
    assert app.main(_args(tmp_path, "print-config")) == 0
    out = _out(capsys)
    assert out["export"]["max_downloads"] == 3


def test_validate_policy_ok(tmp_path, capsys):
    assert app.main(_args(tmp_path, "validate-policy")) == 0
    assert _out(capsys)["ok"] is True


def test_validate_policy_rejects_ceiling_breach(tmp_path, capsys):
    cfg = PrivgateConfig.model_validate({"retention": {"policy": {"ai_jobs": 120, "audit_events": 365}}})
    save_config(os.path.join(str(tmp_path), "config", "privgate.json"), cfg)
    assert app.main(_args(tmp_path, "validate-policy")) == 2
    out = _out(capsys)
    assert out["ok"] is False
    assert out["error"]["kind"] == "exceeds_ceiling"


def test_invalid_config_file_exits_with_error(tmp_path, capsys):
    atomic_write_json(os.path.join(str(tmp_path), "config", "privgate.json"), {"nope": 1})
    assert app.main(_args(tmp_path, "print-config")) == 2
    assert _out(capsys)["error"]["code"] == "config_error"


def test_purge_dry_run_and_real_run(tmp_path, capsys):
    store = RecordStore(db_path=os.path.join(str(tmp_path), "data", "privgate.sqlite"))
    store.insert(PersonalRecord(tenant_id="T1", user_id="U1", category=DataCategory.AI_JOBS, created_at="2000-01-01T00:00:00Z"))
    store.insert(PersonalRecord(tenant_id="T2", user_id="U1", category=DataCategory.AI_JOBS, created_at="2000-01-01T00:00:00Z"))

    assert app.main(_args(tmp_path, "purge", "--dry-run")) == 0
    out = _out(capsys)
    assert out["dry_run"] is True
    assert out["purged"]["ai_jobs"] == 2
    assert store.count(tenant_id="T1") == 1

    assert app.main(_args(tmp_path, "purge", "--tenant", "T1")) == 0
    out = _out(capsys)
    assert out["tenant_id"] == "T1"
    assert out["purged"]["ai_jobs"] == 1
    assert store.count(tenant_id="T1") == 0
    assert store.count(tenant_id="T2") == 1


def test_export_cleanup_on_empty_store(tmp_path, capsys):
    assert app.main(_args(tmp_path, "export-cleanup")) == 0
    assert _out(capsys) == {"ok": True, "shredded": 0}


def test_scan_logs_reports_leaks_without_values(tmp_path, capsys):
    log_dir = os.path.join(str(tmp_path), "logs")
    os.makedirs(log_dir, exist_ok=True)
    with open(os.path.join(log_dir, "privgate.log"), "w", encoding="utf-8") as f:
        f.write("2024-01-15 10:30:00,123 | INFO | purge done\n")
        f.write("2024-01-15 10:30:01,456 | INFO | user jane@example.com logged in\n")

    assert app.main(_args(tmp_path, "scan-logs")) == 1
    captured = capsys.readouterr()
    out = json.loads(captured.out)
    assert out["ok"] is False
    assert out["leak_count"] == 1
    assert out["files"][0]["leaks"] == [{"line": 2, "pii_types": ["EMAIL"], "pii_count": 1, "severity": "WARN"}]
    assert "jane@example.com" not in captured.out + captured.err

    audit_rows = read_jsonl(os.path.join(log_dir, "audit.jsonl"))
    assert audit_rows[-1]["event"] == "logs.pii_scan_completed"
    assert audit_rows[-1]["meta"]["leak_count"] == 1


def test_scan_logs_clean_tree_exits_zero(tmp_path, capsys):
    assert app.main(_args(tmp_path, "scan-logs")) == 0
    out = _out(capsys)
    assert out["ok"] is True
    assert out["leak_count"] == 0
