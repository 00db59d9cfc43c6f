#!/usr/bin/env python3
# CUI // SP-PROPIN
# Controlled by: OppDesk Portal
# CUI Category: PROPIN
# Distribution: D
# POC: OppDesk System Administrator
"""Initialize the OppDesk database with all required tables.

Creates tables for:
  - Opportunity Intelligence (feed ingest, catalog matches, relevance, lifecycle)
  - NSN Catalog (vendor stock numbers, FSC prefixes, keywords)
  - Pricing Intelligence (historical award lines)
  - Orders (government orders and their originating opportunities)
  - Responses (quote responses per opportunity)
  - System (audit trail, sync runs)

Timestamps are stored as fixed-width UTC strings (YYYY-MM-DDTHH:MM:SS.mmmZ)
so range filters can compare them as text.

Usage:
    python -m oppdesk.db.init_db [--json] [--db-path PATH]
"""

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from oppdesk.core.config import db_path as _default_db_path


SCHEMA_SQL = """
-- ============================================================
-- OPPORTUNITY INTELLIGENCE
-- ============================================================

-- Solicitations ingested from the procurement feed
CREATE TABLE IF NOT EXISTS opportunities (
    id TEXT PRIMARY KEY,
    solicitation_number TEXT NOT NULL UNIQUE,
    notice_id TEXT,
    title TEXT NOT NULL DEFAULT '',
    description TEXT DEFAULT '',
    agency TEXT,
    naics_code TEXT,
    classification_code TEXT,
    set_aside_type TEXT,
    response_deadline TEXT,
    relevance_score INTEGER NOT NULL DEFAULT 0
        CHECK(relevance_score BETWEEN 0 AND 100),
    matched_nsns TEXT,
    matched_fsc TEXT,
    matched_keyword TEXT,
    status TEXT NOT NULL DEFAULT 'new'
        CHECK(status IN ('new', 'reviewed', 'imported', 'dismissed')),
    dismissed_reason TEXT,
    ui_link TEXT,
    is_sentinel INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_opp_deadline ON opportunities(response_deadline);
CREATE INDEX IF NOT EXISTS idx_opp_score ON opportunities(relevance_score);
CREATE INDEX IF NOT EXISTS idx_opp_status ON opportunities(status);

-- Quote responses prepared against an opportunity
CREATE TABLE IF NOT EXISTS opportunity_responses (
    id TEXT PRIMARY KEY,
    opportunity_id TEXT NOT NULL REFERENCES opportunities(id),
    status TEXT NOT NULL DEFAULT 'draft'
        CHECK(status IN ('draft', 'submitted', 'completed', 'cancelled')),
    quoted_total REAL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_resp_opp ON opportunity_responses(opportunity_id);

-- ============================================================
-- NSN CATALOG
-- ============================================================

CREATE TABLE IF NOT EXISTS nsn_catalog (
    nsn TEXT PRIMARY KEY,
    fsc TEXT NOT NULL,
    niin TEXT NOT NULL,
    description TEXT DEFAULT '',
    keywords TEXT,
    active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_catalog_fsc ON nsn_catalog(fsc);

-- ============================================================
-- PRICING INTELLIGENCE
-- ============================================================

-- Historical award lines (from order ingestion and FPDS)
CREATE TABLE IF NOT EXISTS award_records (
    id TEXT PRIMARY KEY,
    contract_number TEXT,
    nsn TEXT,
    psc TEXT,
    naics_code TEXT,
    keywords TEXT,
    description TEXT DEFAULT '',
    unit_price REAL,
    quantity INTEGER,
    total_value REAL,
    award_date TEXT NOT NULL,
    vendor TEXT,
    vendor_cage TEXT,
    agency TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_award_nsn ON award_records(nsn);
CREATE INDEX IF NOT EXISTS idx_award_psc ON award_records(psc);
CREATE INDEX IF NOT EXISTS idx_award_date ON award_records(award_date);

-- ============================================================
-- ORDERS
-- ============================================================

CREATE TABLE IF NOT EXISTS government_orders (
    id TEXT PRIMARY KEY,
    order_number TEXT,
    contract_number TEXT,
    total_value REAL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_orders_created ON government_orders(created_at);

-- Order -> originating opportunity; never mutated
CREATE TABLE IF NOT EXISTS order_opportunity_links (
    order_id TEXT NOT NULL REFERENCES government_orders(id),
    opportunity_id TEXT NOT NULL REFERENCES opportunities(id),
    created_at TEXT NOT NULL,
    PRIMARY KEY (order_id, opportunity_id)
);

-- ============================================================
-- SYSTEM
-- ============================================================

-- Append-only audit trail (no UPDATE/DELETE)
CREATE TABLE IF NOT EXISTS audit_trail (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_type TEXT NOT NULL,
    actor TEXT,
    action TEXT NOT NULL,
    entity_type TEXT,
    entity_id TEXT,
    details TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_audit_event ON audit_trail(event_type);
CREATE INDEX IF NOT EXISTS idx_audit_entity ON audit_trail(entity_type, entity_id);
CREATE INDEX IF NOT EXISTS idx_audit_time ON audit_trail(created_at);

-- Feed sync runs
CREATE TABLE IF NOT EXISTS sync_runs (
    id TEXT PRIMARY KEY,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    synced INTEGER DEFAULT 0,
    saved INTEGER DEFAULT 0,
    updated INTEGER DEFAULT 0,
    nsn_matches INTEGER DEFAULT 0,
    errors TEXT
);
"""


def init_db(db_path=None):
    """Initialize the OppDesk database."""
    path = db_path or str(_default_db_path())
    db_dir = Path(path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(path))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")

    conn.executescript(SCHEMA_SQL)
    conn.commit()

    cursor = conn.execute(
        "SELECT COUNT(*) FROM sqlite_master WHERE type='table'"
    )
    table_count = cursor.fetchone()[0]

    cursor = conn.execute(
        "SELECT COUNT(*) FROM sqlite_master WHERE type='index' "
        "AND name NOT LIKE 'sqlite_%'"
    )
    index_count = cursor.fetchone()[0]

    conn.close()

    return {
        "status": "initialized",
        "db_path": str(path),
        "tables": table_count,
        "indexes": index_count,
        "initialized_at": datetime.now(timezone.utc).isoformat(),
    }


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Initialize OppDesk database")
    parser.add_argument("--json", action="store_true", help="JSON output")
    parser.add_argument("--db-path", help="Override database path")
    args = parser.parse_args()

    result = init_db(db_path=args.db_path)

    if args.json:
        print(json.dumps(result, indent=2))
    else:
        print("OppDesk database initialized:")
        print(f"  Path:    {result['db_path']}")
        print(f"  Tables:  {result['tables']}")
        print(f"  Indexes: {result['indexes']}")
        print(f"  Time:    {result['initialized_at']}")
