#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Shared test fixtures for the OppDesk test suite."""

import json
import sqlite3
import sys
import time
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add project root to path
BASE_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(BASE_DIR))

from oppdesk.core.errors import PersistenceFailure, UpstreamDegraded  # noqa: E402
from oppdesk.core.interfaces import FeedClient, OpportunityRepository  # noqa: E402
from oppdesk.core.models import to_iso  # noqa: E402

CATALOG_NSNS = [
    ("6810-01-234-5678", "Isopropyl alcohol, technical grade", ["isopropyl", "alcohol", "solvent"]),
    ("6810-00-983-8551", "Acetone, ACS reagent", ["acetone", "reagent"]),
    ("9150-00-045-4317", "Grease, aircraft and instrument", ["grease", "aircraft", "instrument"]),
]


@pytest.fixture
def tmp_db(tmp_path, monkeypatch):
    """Create a temporary OppDesk database with full schema."""
    db_path = tmp_path / "test_oppdesk.db"

    from oppdesk.db.init_db import init_db
    init_db(str(db_path))

    monkeypatch.setenv("OPPDESK_DB_PATH", str(db_path))
    monkeypatch.delenv("OPPDESK_API_KEY", raising=False)
    monkeypatch.delenv("SAM_GOV_API_KEY", raising=False)
    yield db_path


@pytest.fixture
def db_conn(tmp_db):
    """Get a connection to the test database."""
    conn = sqlite3.connect(str(tmp_db))
    conn.row_factory = sqlite3.Row
    yield conn
    conn.close()


@pytest.fixture
def now():
    """Local noon today, so every day-boundary case sits on the same day."""
    return datetime.now().astimezone().replace(hour=12, minute=0, second=0, microsecond=0)


@pytest.fixture
def repository(tmp_db):
    from oppdesk.db.sqlite_store import SqliteOpportunityRepository
    return SqliteOpportunityRepository(db_path=tmp_db)


@pytest.fixture
def pricing_store(tmp_db):
    from oppdesk.db.sqlite_store import SqlitePricingStore
    return SqlitePricingStore(db_path=tmp_db)


@pytest.fixture
def catalog_store(tmp_db):
    from oppdesk.db.sqlite_store import SqliteCatalogStore
    return SqliteCatalogStore(db_path=tmp_db)


@pytest.fixture
def sample_catalog(db_conn):
    """Insert the three-NSN sample catalog."""
    stamp = to_iso(datetime.now(timezone.utc))
    for nsn, desc, keywords in CATALOG_NSNS:
        digits = nsn.replace("-", "")
        db_conn.execute(
            """INSERT INTO nsn_catalog
               (nsn, fsc, niin, description, keywords, active, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, 1, ?, ?)""",
            (nsn, digits[:4], digits[4:], desc, json.dumps(keywords), stamp, stamp),
        )
    db_conn.commit()
    return [n for n, _, _ in CATALOG_NSNS]


@pytest.fixture
def make_opportunity(db_conn):
    """Return a helper that inserts an opportunity row and returns its ID."""
    counter = {"n": 0}

    def _make(opp_id=None, deadline=None, score=0, nsns=None, fsc=None,
              status="new", sentinel=False, title="Sample solicitation",
              description="", classification_code=None, naics_code=None,
              notice_id=None, ui_link=None, dismissed_reason=None,
              set_aside=None, raw_nsns=None):
        counter["n"] += 1
        opp_id = opp_id or f"OPP-test{counter['n']:08d}"
        stamp = to_iso(datetime.now(timezone.utc))
        matched = raw_nsns if raw_nsns is not None else (json.dumps(nsns) if nsns else None)
        db_conn.execute(
            """INSERT INTO opportunities
               (id, solicitation_number, notice_id, title, description,
                naics_code, classification_code, set_aside_type,
                response_deadline, relevance_score, matched_nsns, matched_fsc,
                status, dismissed_reason, ui_link, is_sentinel,
                created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (opp_id, f"SPE-{opp_id}", notice_id, title, description,
             naics_code, classification_code, set_aside,
             to_iso(deadline), score, matched, fsc,
             status, dismissed_reason, ui_link, 1 if sentinel else 0,
             stamp, stamp),
        )
        db_conn.commit()
        return opp_id

    return _make


@pytest.fixture
def make_award(db_conn):
    """Return a helper that inserts an award_records row."""
    counter = {"n": 0}

    def _make(award_date, unit_price, nsn=None, psc=None, naics_code=None,
              keywords=None, description="", quantity=1, vendor="Acme Supply"):
        counter["n"] += 1
        db_conn.execute(
            """INSERT INTO award_records
               (id, contract_number, nsn, psc, naics_code, keywords, description,
                unit_price, quantity, total_value, award_date, vendor, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (f"AWD-{counter['n']:04d}", f"SPE4A1-24-C-{counter['n']:04d}",
             nsn, psc, naics_code, json.dumps(keywords) if keywords else None,
             description, unit_price, quantity,
             None if unit_price is None else unit_price * quantity,
             to_iso(award_date), vendor, to_iso(datetime.now(timezone.utc))),
        )
        db_conn.commit()

    return _make


@pytest.fixture
def link_order(db_conn):
    """Return a helper that creates an order linked to opportunities."""
    counter = {"n": 0}

    def _link(created_at, *opp_ids):
        counter["n"] += 1
        order_id = f"ORD-{counter['n']:04d}"
        db_conn.execute(
            "INSERT INTO government_orders (id, order_number, created_at) VALUES (?, ?, ?)",
            (order_id, f"PO-{counter['n']:04d}", to_iso(created_at)),
        )
        for opp_id in opp_ids:
            db_conn.execute(
                "INSERT INTO order_opportunity_links (order_id, opportunity_id, created_at) "
                "VALUES (?, ?, ?)",
                (order_id, opp_id, to_iso(created_at)),
            )
        db_conn.commit()
        return order_id

    return _link


# =========================================================================
# FAKES
# =========================================================================
class FakeFeed(FeedClient):
    """In-memory feed: notices keyed by search parameter value."""

    configured = True

    def __init__(self, by_fsc=None, by_naics=None, by_keyword=None,
                 details=None, fail_details=False, fail_search=False):
        self.by_fsc = by_fsc or {}
        self.by_naics = by_naics or {}
        self.by_keyword = by_keyword or {}
        self.details = details or {}
        self.fail_details = fail_details
        self.fail_search = fail_search
        self.searches = []

    def search_opportunities(self, posted_from, posted_to, naics_code=None,
                             classification_code=None, keywords=None, limit=50,
                             ptype=None):
        self.searches.append({"naics_code": naics_code,
                              "classification_code": classification_code,
                              "keywords": keywords})
        if self.fail_search:
            raise UpstreamDegraded("SAM.gov request timed out after 30s")
        if classification_code:
            return list(self.by_fsc.get(classification_code, []))
        if naics_code:
            return list(self.by_naics.get(naics_code, []))
        if keywords:
            return list(self.by_keyword.get(keywords, []))
        return []

    def get_opportunity_details(self, notice_id):
        if self.fail_details:
            raise UpstreamDegraded("Connection error: feed unreachable")
        return self.details.get(notice_id)


class FailingRepository(OpportunityRepository):
    """Every call fails as if the database were unreachable."""

    def _fail(self, *args, **kwargs):
        raise PersistenceFailure("Database unavailable: unable to open database file")

    query_opportunities = _fail
    get_opportunity = _fail
    update_status = _fail
    count_opportunities = _fail
    count_recent_wins = _fail
    upsert_opportunity = _fail
    save_evaluation = _fail


class SlowRepository(FailingRepository):
    """Counting queries hang for ``delay`` seconds; everything else fails."""

    def __init__(self, delay=2.0):
        self.delay = delay

    def count_opportunities(self, filter):
        time.sleep(self.delay)
        return 1

    def count_recent_wins(self, since):
        time.sleep(self.delay)
        return 1


def notice(sol, title="", description="", deadline=None, naics="", ccode="",
           notice_id="", set_aside=None):
    """Build a feed notice dict the way SamGovClient.parse_notice shapes them."""
    return {
        "noticeId": notice_id,
        "solicitationNumber": sol,
        "title": title,
        "postedDate": "",
        "responseDeadline": to_iso(deadline) if deadline else "",
        "naicsCode": naics,
        "classificationCode": ccode,
        "setAsideType": set_aside,
        "agency": "DEPT OF DEFENSE",
        "office": "DLA TROOP SUPPORT",
        "description": description,
        "uiLink": f"https://sam.gov/opp/{notice_id}/view" if notice_id else "",
    }
