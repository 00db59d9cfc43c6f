#!/usr/bin/env python3
# CUI // SP-PROPIN
# Controlled by: OppDesk Portal
# CUI Category: PROPIN
# Distribution: D
# POC: OppDesk System Administrator
"""OppDesk Dashboard API: Flask JSON endpoints for the opportunity worklist.

Endpoints:
    GET   /api/opportunities              Filtered worklist + stats block
                                          (?minScore=&showExpired=&nsnOnly=&fscOnly=)
    GET   /api/opportunities/<id>         Stored opportunity + live SAM.gov detail
    PATCH /api/opportunities              Update review status
                                          ({id, status, dismissedReason?})
    POST  /api/opportunities/sync         Pull new notices from SAM.gov
    POST  /api/opportunities/rescore      Re-match stored notices to the catalog
    GET   /api/pricing                    Historical award pricing
                                          (?nsn=&psc=&naics=&keywords=&lookbackDays=)
    GET   /api/stats                      Dashboard counters (always 200)
    GET   /api/catalog                    NSN catalog listing (?fsc=&limit=)
    POST  /api/catalog/import             Bulk NSN import ({text} or {nsns: [...]})
    GET   /api/health                     Component health

Usage:
    python -m oppdesk.dashboard.app [--port 5001] [--debug]
"""

import logging
import os
import sys

from flask import Flask, jsonify, request

from oppdesk.catalog.nsn_catalog import import_nsns, list_catalog
from oppdesk.competitive.pricing_lookup import build_query, lookup_pricing
from oppdesk.core.config import db_path, load_config
from oppdesk.core.errors import OppDeskError, PersistenceFailure, ValidationError
from oppdesk.db.sqlite_store import (
    SqliteCatalogStore,
    SqliteOpportunityRepository,
    SqlitePricingStore,
)
from oppdesk.monitor.lifecycle_manager import update_status
from oppdesk.monitor.opportunity_service import get_opportunity_detail, list_opportunities
from oppdesk.monitor.opportunity_sync import rescore_opportunities, sync_opportunities
from oppdesk.monitor.sam_client import SamGovClient
from oppdesk.monitor.stats_aggregator import collect_dashboard_stats
from oppdesk.testing.health_check import check_health

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger("oppdesk.dashboard")

_TRUE = {"1", "true", "yes", "on"}


def _flag(name):
    return (request.args.get(name) or "").strip().lower() in _TRUE


def _int_arg(name):
    raw = request.args.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def _feed_or_none(feed):
    if feed is None or not getattr(feed, "configured", True):
        return None
    return feed


def create_app(repository=None, pricing_store=None, catalog_store=None,
               feed=None, config=None, api_key=None):
    """Build the Flask app with its collaborators.

    Any collaborator left as None gets the SQLite / SAM.gov default.
    """
    config = config or load_config()
    timeout = config["database"]["timeout_seconds"]
    repository = repository or SqliteOpportunityRepository(timeout=timeout)
    pricing_store = pricing_store or SqlitePricingStore(timeout=timeout)
    catalog_store = catalog_store or SqliteCatalogStore(timeout=timeout)
    feed = feed if feed is not None else SamGovClient.from_config(config)
    if api_key is None:
        api_key = os.environ.get("OPPDESK_API_KEY", "").strip()

    app = Flask(__name__)
    app.extensions["oppdesk"] = {
        "repository": repository,
        "pricing_store": pricing_store,
        "catalog_store": catalog_store,
        "feed": feed,
        "config": config,
    }

    # =====================================================================
    # AUTH (before_request)
    # =====================================================================
    @app.before_request
    def _before_request():
        if api_key and request.path.startswith("/api/"):
            provided = request.headers.get("X-Api-Key", "")
            if provided != api_key:
                return jsonify({"error": "Unauthorized. Provide X-Api-Key header."}), 401

    # =====================================================================
    # ERROR HANDLERS
    # =====================================================================
    @app.errorhandler(PersistenceFailure)
    def _persistence_failure(e):
        logger.error("Persistence failure on %s %s: %s", request.method, request.path, e.message)
        return jsonify({"error": "Database temporarily unavailable. Please try again."}), 500

    @app.errorhandler(OppDeskError)
    def _oppdesk_error(e):
        if e.http_status >= 500:
            logger.error("%s on %s: %s", type(e).__name__, request.path, e.message)
        return jsonify(e.to_dict()), e.http_status

    @app.errorhandler(404)
    def _not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def _internal_error(e):
        logger.error("500 Internal Server Error: %s", e)
        return jsonify({"error": "Internal server error"}), 500

    # =====================================================================
    # OPPORTUNITIES
    # =====================================================================
    @app.route("/api/opportunities", methods=["GET"])
    def api_opportunities():
        result = list_opportunities(
            repository,
            min_score=_int_arg("minScore"),
            show_expired=_flag("showExpired"),
            nsn_only=_flag("nsnOnly"),
            fsc_only=_flag("fscOnly"),
            config=config,
        )
        return jsonify(result)

    @app.route("/api/opportunities/<opp_id>", methods=["GET"])
    def api_opportunity_detail(opp_id):
        return jsonify(get_opportunity_detail(repository, _feed_or_none(feed), opp_id))

    @app.route("/api/opportunities", methods=["PATCH"])
    def api_opportunity_status():
        data = request.get_json(silent=True) or {}
        result = update_status(
            repository,
            data.get("id"),
            data.get("status"),
            data.get("dismissedReason"),
        )
        return jsonify(result)

    @app.route("/api/opportunities/sync", methods=["POST"])
    def api_opportunity_sync():
        if _feed_or_none(feed) is None:
            return jsonify({"error": "SAM_GOV_API_KEY not configured"}), 503
        return jsonify(sync_opportunities(feed, repository, catalog_store, config=config))

    @app.route("/api/opportunities/rescore", methods=["POST"])
    def api_opportunity_rescore():
        return jsonify(rescore_opportunities(repository, catalog_store, config=config))

    # =====================================================================
    # PRICING
    # =====================================================================
    @app.route("/api/pricing", methods=["GET"])
    def api_pricing():
        query = build_query(
            nsn=request.args.get("nsn"),
            psc=request.args.get("psc"),
            naics_code=request.args.get("naics"),
            keywords=request.args.get("keywords"),
            lookback_days=request.args.get("lookbackDays"),
            config=config,
        )
        return jsonify(lookup_pricing(pricing_store, query, config=config).to_dict())

    # =====================================================================
    # STATS
    # =====================================================================
    @app.route("/api/stats", methods=["GET"])
    def api_stats():
        return jsonify(collect_dashboard_stats(repository, config=config).to_dict())

    # =====================================================================
    # CATALOG
    # =====================================================================
    @app.route("/api/catalog", methods=["GET"])
    def api_catalog():
        return jsonify(list_catalog(catalog_store, fsc=request.args.get("fsc"),
                                    limit=_int_arg("limit")))

    @app.route("/api/catalog/import", methods=["POST"])
    def api_catalog_import():
        data = request.get_json(silent=True) or {}
        return jsonify(import_nsns(catalog_store, text=data.get("text"),
                                   nsns=data.get("nsns")))

    # =====================================================================
    # HEALTH
    # =====================================================================
    @app.route("/api/health", methods=["GET"])
    def api_health():
        return jsonify(check_health())

    return app


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="OppDesk Dashboard API")
    parser.add_argument("--port", type=int, default=int(os.environ.get("FLASK_PORT", 5001)))
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--host", default="127.0.0.1")
    args = parser.parse_args()

    if not db_path().exists():
        print(f"ERROR: database not found at {db_path()}. Run: python -m oppdesk.db.init_db")
        sys.exit(1)

    print(f"OppDesk API starting on http://{args.host}:{args.port}")
    print(f"Database: {db_path()}")
    create_app().run(host=args.host, port=args.port, debug=args.debug)
