#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Health Check: verifies OppDesk components are operational.

Usage:
    python -m oppdesk.testing.health_check
    python -m oppdesk.testing.health_check --json
"""

import argparse
import json
import os
import sqlite3
from pathlib import Path

from oppdesk.core.config import config_path, db_path, sam_api_key

REQUIRED_TABLES = (
    "opportunities", "nsn_catalog", "award_records", "government_orders",
    "order_opportunity_links", "opportunity_responses", "audit_trail",
)


def check_health(path=None) -> dict:
    """Run health checks on the database, catalog, config, and feed key."""
    checks = {}

    database = Path(path) if path else db_path()
    checks["database"] = {
        "status": "ok" if database.exists() else "missing",
        "path": str(database),
    }
    if database.exists():
        try:
            conn = sqlite3.connect(str(database))
            try:
                tables = {
                    r[0] for r in conn.execute(
                        "SELECT name FROM sqlite_master WHERE type='table'"
                    ).fetchall()
                }
                missing = [t for t in REQUIRED_TABLES if t not in tables]
                checks["database"]["tables"] = len(tables)
                if missing:
                    checks["database"]["status"] = "incomplete"
                    checks["database"]["missing"] = missing
                else:
                    catalog = conn.execute(
                        "SELECT COUNT(*) FROM nsn_catalog WHERE active = 1"
                    ).fetchone()[0]
                    checks["catalog"] = {
                        "status": "ok" if catalog else "empty",
                        "active_nsns": catalog,
                    }
            finally:
                conn.close()
        except sqlite3.Error as e:
            checks["database"]["status"] = "error"
            checks["database"]["error"] = str(e)

    cfg = config_path()
    checks["config"] = {
        "status": "ok" if cfg.exists() else "defaults",
        "path": str(cfg),
    }

    checks["sam_gov"] = {
        "status": "ok" if sam_api_key() else "unconfigured",
    }

    checks["api_auth"] = {
        "status": "ok",
        "enabled": bool(os.environ.get("OPPDESK_API_KEY", "").strip()),
    }

    # Config defaults and an unconfigured feed key degrade nothing essential
    essential = ("database", "catalog")
    overall = all(checks.get(k, {}).get("status") == "ok" for k in essential)
    return {
        "overall": "healthy" if overall else "degraded",
        "checks": checks,
    }


def main():
    parser = argparse.ArgumentParser(description="OppDesk Health Check")
    parser.add_argument("--json", action="store_true")
    args = parser.parse_args()

    result = check_health()

    if args.json:
        print(json.dumps(result, indent=2))
    else:
        print(f"Overall: {result['overall'].upper()}")
        for name, check in result["checks"].items():
            print(f"  {name}: {check['status']}")


if __name__ == "__main__":
    main()
