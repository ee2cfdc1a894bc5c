from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, List, Optional

from privgate.core.config import load_config
from privgate.core.errors import PrivgateError
from privgate.core.logger import setup_logging
from privgate.core.services import build_services


def _print(obj: Dict[str, Any]) -> None:
    print(json.dumps(obj, indent=2, sort_keys=True))


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="privgate: consent, PII redaction, export and retention maintenance")
    ap.add_argument("--config", default="config/privgate.json", help="Path to config JSON (defaults apply when missing).")
    ap.add_argument("--root", default=".", help="Base directory for relative data/log paths.")
    ap.add_argument("--log-dir", default="logs", help="Directory for rotating text logs.")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("purge", help="Apply the retention policy (one tenant or all tenants).")
    p.add_argument("--tenant", default=None, help="Restrict to one tenant.")
    p.add_argument("--dry-run", action="store_true", help="Count only, delete nothing.")

    sub.add_parser("export-cleanup", help="Crypto-shred expired export bundles.")
    sub.add_parser("scan-logs", help="Scan the text log and audit trail for leaked PII (exit 1 when found).")
    sub.add_parser("validate-policy", help="Check the configured retention policy against legal bounds.")
    sub.add_parser("print-config", help="Print the effective configuration.")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logger = setup_logging(args.log_dir)

    try:
        cfg = load_config(args.config)
        if args.command == "print-config":
            _print(cfg.model_dump(mode="json"))
            return 0

        services = build_services(cfg, root=args.root, logger=logger)
        try:
            policy = services.retention_policy()
            if args.command == "validate-policy":
                services.purge.rules.validate(policy)
                _print({"ok": True, "policy": policy.retention_days})
            elif args.command == "purge":
                if args.tenant:
                    res = services.purge.purge_tenant(tenant_id=args.tenant, policy=policy, dry_run=args.dry_run)
                else:
                    res = services.purge.purge_all_tenants(policy=policy, dry_run=args.dry_run)
                _print(res.model_dump(mode="json"))
            elif args.command == "export-cleanup":
                _print({"ok": True, "shredded": services.exports.cleanup_expired_exports()})
            elif args.command == "scan-logs":
                results = services.scan_logs(log_dir=args.log_dir)
                leaks = sum(r.leak_count for r in results)
                _print({"ok": leaks == 0, "leak_count": leaks, "files": [r.to_dict() for r in results]})
                if leaks:
                    return 1
        finally:
            services.close()
    except PrivgateError as e:
        logger.error(f"{args.command} failed: {e.code}")
        _print({"ok": False, "error": e.to_dict()})
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
