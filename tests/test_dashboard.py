# CUI // SP-PROPIN
"""OppDesk JSON API tests (Flask test client)."""

import json
import time
from datetime import datetime, timedelta, timezone

import pytest

from conftest import FakeFeed, SlowRepository, notice


def _data(resp):
    return json.loads(resp.data)


@pytest.fixture
def feed():
    return FakeFeed()


@pytest.fixture
def app(tmp_db, feed):
    from oppdesk.dashboard.app import create_app
    app = create_app(feed=feed, api_key="")
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


# =========================================================================
# OPPORTUNITIES
# =========================================================================
class TestOpportunitiesApi:

    def test_list_with_stats(self, client, make_opportunity, now):
        make_opportunity(score=60, nsns=["6810-01-234-5678"], deadline=now + timedelta(days=2))
        make_opportunity(score=20, fsc="9150", deadline=now + timedelta(days=9))
        make_opportunity(score=90, nsns=["6810-00-983-8551"], deadline=now - timedelta(days=1))
        resp = client.get("/api/opportunities")
        assert resp.status_code == 200
        data = _data(resp)
        assert [o["relevanceScore"] for o in data["opportunities"]] == [60, 20]
        assert data["stats"] == {"total": 2, "high": 1, "nsnMatch": 1, "fscMatch": 1}

    def test_show_expired(self, client, make_opportunity, now):
        make_opportunity(score=90, deadline=now - timedelta(days=1))
        data = _data(client.get("/api/opportunities?showExpired=true"))
        assert len(data["opportunities"]) == 1
        assert data["stats"]["total"] == 0

    def test_match_filters(self, client, make_opportunity):
        make_opportunity(nsns=["6810-01-234-5678"], fsc="6810")
        make_opportunity(fsc="9150")
        nsn_only = _data(client.get("/api/opportunities?nsnOnly=true"))["opportunities"]
        assert [o["matchedStockNumbers"] for o in nsn_only] == [["6810-01-234-5678"]]
        assert nsn_only[0]["matchedClassCode"] is None
        fsc_only = _data(client.get("/api/opportunities?fscOnly=1"))["opportunities"]
        assert [o["matchedClassCode"] for o in fsc_only] == ["9150"]

    def test_min_score(self, client, make_opportunity):
        make_opportunity(score=70)
        make_opportunity(score=30)
        data = _data(client.get("/api/opportunities?minScore=50"))
        assert [o["relevanceScore"] for o in data["opportunities"]] == [70]

    def test_min_score_not_integer(self, client):
        resp = client.get("/api/opportunities?minScore=abc")
        assert resp.status_code == 400
        assert _data(resp)["error"] == "minScore must be an integer"

    def test_sentinel_hidden(self, client, make_opportunity):
        make_opportunity(sentinel=True)
        assert _data(client.get("/api/opportunities"))["opportunities"] == []

    def test_detail(self, client, feed, make_opportunity):
        opp_id = make_opportunity(notice_id="c0ffee", title="Acetone")
        feed.details["c0ffee"] = {"title": "Acetone, live"}
        data = _data(client.get(f"/api/opportunities/{opp_id}"))
        assert data["opportunity"]["title"] == "Acetone"
        assert data["details"] == {"title": "Acetone, live"}

    def test_detail_feed_down(self, client, feed, make_opportunity):
        opp_id = make_opportunity(notice_id="c0ffee")
        feed.fail_details = True
        resp = client.get(f"/api/opportunities/{opp_id}")
        assert resp.status_code == 200
        assert _data(resp)["details"] is None

    def test_detail_not_found(self, client):
        resp = client.get("/api/opportunities/OPP-missing")
        assert resp.status_code == 404
        assert "OPP-missing" in _data(resp)["error"]


class TestStatusApi:

    def test_patch_status(self, client, make_opportunity):
        opp_id = make_opportunity()
        resp = client.patch("/api/opportunities",
                            json={"id": opp_id, "status": "dismissed",
                                  "dismissedReason": "Out of scope"})
        assert resp.status_code == 200
        assert _data(resp) == {"id": opp_id, "status": "dismissed"}
        detail = _data(client.get(f"/api/opportunities/{opp_id}"))
        assert detail["opportunity"]["dismissedReason"] == "Out of scope"

    def test_patch_invalid_status(self, client, make_opportunity):
        opp_id = make_opportunity()
        resp = client.patch("/api/opportunities", json={"id": opp_id, "status": "bogus"})
        assert resp.status_code == 400
        assert _data(resp)["error"] == (
            "Invalid status 'bogus'. Must be one of: new, reviewed, imported, dismissed")

    @pytest.mark.parametrize("body,message", [
        ({"status": "reviewed"}, "Missing opportunity ID"),
        ({"id": "OPP-1"}, "Missing status"),
    ])
    def test_patch_missing_fields(self, client, tmp_db, body, message):
        resp = client.patch("/api/opportunities", json=body)
        assert resp.status_code == 400
        assert _data(resp)["error"] == message

    def test_patch_no_body(self, client):
        resp = client.patch("/api/opportunities", data="not json",
                            content_type="text/plain")
        assert resp.status_code == 400

    def test_patch_unknown_id(self, client):
        resp = client.patch("/api/opportunities", json={"id": "OPP-nope", "status": "reviewed"})
        assert resp.status_code == 404


# =========================================================================
# SYNC / RESCORE
# =========================================================================
class TestSyncApi:

    def test_sync(self, client, feed, sample_catalog, now):
        feed.by_fsc["6810"] = [notice("SPE603-26-Q-0301", description="6810-00-983-8551",
                                      deadline=now + timedelta(days=5))]
        resp = client.post("/api/opportunities/sync")
        assert resp.status_code == 200
        data = _data(resp)
        assert data["synced"] == 1
        assert data["nsnMatches"] == 1

    def test_sync_unconfigured(self, client, feed):
        feed.configured = False
        resp = client.post("/api/opportunities/sync")
        assert resp.status_code == 503
        assert _data(resp)["error"] == "SAM_GOV_API_KEY not configured"

    def test_sync_feed_down(self, client, feed, sample_catalog):
        feed.fail_search = True
        resp = client.post("/api/opportunities/sync")
        assert resp.status_code == 502
        assert "All feed searches failed" in _data(resp)["error"]

    def test_rescore(self, client, sample_catalog, make_opportunity):
        opp_id = make_opportunity(classification_code="9150")
        data = _data(client.post("/api/opportunities/rescore"))
        assert data == {"rescored": 1, "nsnMatches": 0, "fscMatches": 1, "catalogSize": 3}
        detail = _data(client.get(f"/api/opportunities/{opp_id}"))["opportunity"]
        assert detail["matchedClassCode"] == "9150"
        assert detail["relevanceScore"] == 20


# =========================================================================
# PRICING
# =========================================================================
class TestPricingApi:

    def test_lookup(self, client, make_award, now):
        make_award(now - timedelta(days=90), 42.50, nsn="9150-00-045-4317")
        make_award(now - timedelta(days=200), 99.00, nsn="9150-00-045-4317")
        resp = client.get("/api/pricing?nsn=9150-00-045-4317&lookbackDays=180")
        assert resp.status_code == 200
        data = _data(resp)
        assert data["query"]["lookbackDays"] == 180
        assert len(data["records"]) == 1
        assert data["records"][0]["unitPrice"] == 42.5
        assert data["stats"]["count"] == 1
        assert data["stats"]["mean"] == 42.5

    def test_no_records(self, client, tmp_db):
        data = _data(client.get("/api/pricing?psc=8010"))
        assert data["records"] == []
        assert data["stats"]["count"] == 0

    def test_no_filter(self, client, tmp_db):
        resp = client.get("/api/pricing")
        assert resp.status_code == 400
        assert "At least one of" in _data(resp)["error"]

    def test_bad_lookback(self, client, tmp_db):
        resp = client.get("/api/pricing?psc=6810&lookbackDays=-3")
        assert resp.status_code == 400

    @pytest.mark.parametrize("days", ["1000000", "99999999999999999999"])
    def test_lookback_out_of_range(self, client, tmp_db, days):
        resp = client.get(f"/api/pricing?psc=6810&lookbackDays={days}")
        assert resp.status_code == 400
        assert "lookbackDays out of range" in _data(resp)["error"]


# =========================================================================
# STATS
# =========================================================================
class TestStatsApi:

    def test_stats(self, client, make_opportunity):
        current = datetime.now(timezone.utc)
        make_opportunity(deadline=current + timedelta(hours=1))
        make_opportunity(deadline=current + timedelta(days=20))
        resp = client.get("/api/stats")
        assert resp.status_code == 200
        data = _data(resp)
        assert data["totalOpen"] == 2
        assert data["dueSoon"] >= 1
        assert data["recentWins"] == 0

    def test_stats_database_down(self, tmp_db, tmp_path):
        from oppdesk.dashboard.app import create_app
        from oppdesk.db.sqlite_store import SqliteOpportunityRepository
        repo = SqliteOpportunityRepository(db_path=tmp_path / "missing" / "x.db")
        app = create_app(repository=repo, feed=FakeFeed(), api_key="")
        resp = app.test_client().get("/api/stats")
        assert resp.status_code == 200
        assert _data(resp) == {"totalOpen": 0, "dueToday": 0, "dueSoon": 0, "recentWins": 0}

    def test_stats_hung_database_returns_zeros(self, tmp_db):
        from oppdesk.core.config import load_config
        from oppdesk.dashboard.app import create_app
        config = load_config(overrides={"stats": {"query_timeout_seconds": 0.2}})
        app = create_app(repository=SlowRepository(delay=3.0), feed=FakeFeed(),
                         config=config, api_key="")
        started = time.monotonic()
        resp = app.test_client().get("/api/stats")
        assert time.monotonic() - started < 1.0
        assert resp.status_code == 200
        assert _data(resp) == {"totalOpen": 0, "dueToday": 0, "dueSoon": 0, "recentWins": 0}

    def test_write_with_database_down(self, tmp_db, tmp_path):
        from oppdesk.dashboard.app import create_app
        from oppdesk.db.sqlite_store import SqliteOpportunityRepository
        repo = SqliteOpportunityRepository(db_path=tmp_path / "missing" / "x.db")
        app = create_app(repository=repo, feed=FakeFeed(), api_key="")
        resp = app.test_client().patch("/api/opportunities",
                                       json={"id": "OPP-1", "status": "reviewed"})
        assert resp.status_code == 500
        assert _data(resp)["error"] == "Database temporarily unavailable. Please try again."


# =========================================================================
# CATALOG / HEALTH / AUTH
# =========================================================================
class TestCatalogApi:

    def test_import_and_list(self, client):
        resp = client.post("/api/catalog/import",
                           json={"text": "6810-01-234-5678\n9150000454317\nnope"})
        assert resp.status_code == 200
        assert _data(resp) == {"imported": 2, "updated": 0, "total": 2, "invalid": ["nope"]}
        listing = _data(client.get("/api/catalog?fsc=9150"))
        assert listing["count"] == 1
        assert listing["entries"][0]["nsn"] == "9150-00-045-4317"

    def test_import_structured(self, client):
        resp = client.post("/api/catalog/import", json={"nsns": [
            {"nsn": "6810-00-983-8551", "description": "Acetone", "keywords": ["Acetone"]},
        ]})
        assert _data(resp)["imported"] == 1
        entry = _data(client.get("/api/catalog"))["entries"][0]
        assert entry["keywords"] == ["acetone"]

    def test_import_empty_body(self, client):
        resp = client.post("/api/catalog/import", json={})
        assert resp.status_code == 400
        assert _data(resp)["error"] == "Request must include 'text' or 'nsns' field"

    def test_limit_not_integer(self, client):
        assert client.get("/api/catalog?limit=ten").status_code == 400


class TestHealthAndAuth:

    def test_health(self, client, sample_catalog):
        data = _data(client.get("/api/health"))
        assert data["overall"] == "healthy"
        assert data["checks"]["catalog"]["active_nsns"] == 3
        assert data["checks"]["sam_gov"]["status"] == "unconfigured"

    def test_health_empty_catalog(self, client):
        assert _data(client.get("/api/health"))["overall"] == "degraded"

    def test_unknown_route(self, client):
        resp = client.get("/api/nothing")
        assert resp.status_code == 404
        assert _data(resp) == {"error": "Not found"}

    def test_api_key_required(self, tmp_db):
        from oppdesk.dashboard.app import create_app
        app = create_app(feed=FakeFeed(), api_key="s3cret")
        client = app.test_client()
        resp = client.get("/api/stats")
        assert resp.status_code == 401
        ok = client.get("/api/stats", headers={"X-Api-Key": "s3cret"})
        assert ok.status_code == 200
