#!/usr/bin/env python3
# CUI // SP-PROPIN
# Controlled by: OppDesk Portal
# CUI Category: PROPIN
# Distribution: D
# POC: OppDesk System Administrator
"""Opportunity sync: pull notices from the feed, match, score, and store.

Search strategy (one feed call each, results deduplicated by
solicitation number):
    - every FSC present in the active catalog
    - product keywords whose FSC is in the catalog (sam_gov.product_keywords)
    - configured NAICS codes (sam_gov.naics_codes)

New notices enter as status "new"; existing ones keep their lifecycle
status and only have their feed fields, match, and score refreshed.

Usage:
    python -m oppdesk.monitor.opportunity_sync --sync --json
    python -m oppdesk.monitor.opportunity_sync --rescore --json
"""

import argparse
import json
import logging
from datetime import timedelta

from oppdesk.core.config import DEFAULT_SAM_GOV, load_config
from oppdesk.core.errors import OppDeskError, UpstreamDegraded
from oppdesk.core.models import Opportunity, OpportunityFilter, parse_iso, utcnow
from oppdesk.monitor.catalog_matcher import CatalogIndex
from oppdesk.monitor.relevance_scorer import evaluate_batch

logger = logging.getLogger("oppdesk.monitor.sync")

# Bookkeeping records that share the opportunities table but are not
# solicitations; excluded from every listing and count.
SENTINEL_SOLICITATIONS = frozenset({"email_ingestion_checkpoint"})


def _search_plan(index, sam_cfg):
    plan = [{"classification_code": fsc} for fsc in sorted(index.fscs)]
    for rule in sam_cfg.get("product_keywords") or []:
        if rule.get("fsc") in index.fscs:
            plan.append({"keywords": rule["keyword"]})
    for naics in sam_cfg.get("naics_codes") or []:
        plan.append({"naics_code": str(naics)})
    return plan


def _notice_to_opportunity(notice):
    sol = (notice.get("solicitationNumber") or notice.get("noticeId") or "").strip()
    return Opportunity(
        id="",
        solicitation_number=sol,
        notice_id=notice.get("noticeId") or None,
        title=notice.get("title") or "",
        description=notice.get("description") or "",
        naics_code=notice.get("naicsCode") or None,
        classification_code=notice.get("classificationCode") or None,
        set_aside_type=notice.get("setAsideType"),
        agency=notice.get("agency") or None,
        response_deadline=parse_iso(notice.get("responseDeadline")),
        ui_link=notice.get("uiLink") or None,
        is_sentinel=sol in SENTINEL_SOLICITATIONS,
    )


def sync_opportunities(feed, repository, catalog_store, now=None, config=None):
    """Run one feed sync.

    Args:
        feed: FeedClient.
        repository: OpportunityRepository.
        catalog_store: CatalogStore.
        now: Reference instant for scoring and the posted-date window.
        config: Optional merged config dict.

    Returns:
        dict with synced, saved, updated, nsnMatches, catalogSize,
        fscCodes, errors.

    Raises:
        UpstreamDegraded: every feed search failed.
    """
    config = config or load_config()
    sam_cfg = dict(DEFAULT_SAM_GOV)
    sam_cfg.update(config.get("sam_gov") or {})
    now = now or utcnow()
    started = utcnow()

    index = CatalogIndex.from_store(catalog_store)
    plan = _search_plan(index, sam_cfg)
    posted_from = now - timedelta(days=sam_cfg["sync_days_back"])

    notices, errors = {}, []
    for params in plan:
        try:
            found = feed.search_opportunities(
                posted_from, now, limit=sam_cfg["page_limit"],
                ptype=sam_cfg.get("ptype"), **params)
        except UpstreamDegraded as exc:
            logger.warning("Feed search %s failed: %s", params, exc.message)
            errors.append(exc.message)
            continue
        for notice in found:
            key = (notice.get("solicitationNumber") or notice.get("noticeId") or "").strip()
            if key and key not in notices:
                notices[key] = notice

    if plan and len(errors) == len(plan):
        raise UpstreamDegraded(f"All feed searches failed: {errors[0]}")

    opps = [_notice_to_opportunity(n) for n in notices.values()]
    evaluated = evaluate_batch(opps, index, now=now, policy=config.get("scoring"))

    saved = updated = nsn_matches = 0
    for opp, match, score in evaluated:
        opp.relevance_score = score
        opp.matched_nsns = match.matched_nsns
        opp.matched_fsc = match.matched_fsc
        opp.matched_keyword = match.display_keyword()
        if match.matched_nsns:
            nsn_matches += 1
        if repository.upsert_opportunity(opp) == "saved":
            saved += 1
        else:
            updated += 1

    summary = {
        "synced": len(opps),
        "saved": saved,
        "updated": updated,
        "nsnMatches": nsn_matches,
        "catalogSize": len(index),
        "fscCodes": sorted(index.fscs),
        "errors": errors,
    }
    repository.record_sync_run(summary, started, errors)
    logger.info("Sync complete: %d notices, %d new, %d updated, %d NSN matches",
                len(opps), saved, updated, nsn_matches)
    return summary


def rescore_opportunities(repository, catalog_store, now=None, config=None):
    """Re-evaluate every stored opportunity against the current catalog."""
    config = config or load_config()
    index = CatalogIndex.from_store(catalog_store)
    opps = repository.query_opportunities(OpportunityFilter(include_expired=True))
    evaluated = evaluate_batch(opps, index, now=now, policy=config.get("scoring"))
    nsn_matches = fsc_matches = 0
    for opp, match, score in evaluated:
        repository.save_evaluation(opp.id, match, score)
        if match.matched_nsns:
            nsn_matches += 1
        elif match.matched_fsc:
            fsc_matches += 1
    logger.info("Rescored %d opportunities", len(evaluated))
    return {
        "rescored": len(evaluated),
        "nsnMatches": nsn_matches,
        "fscMatches": fsc_matches,
        "catalogSize": len(index),
    }


def main():
    from oppdesk.db.sqlite_store import SqliteCatalogStore, SqliteOpportunityRepository
    from oppdesk.monitor.sam_client import SamGovClient

    parser = argparse.ArgumentParser(description="OppDesk Opportunity Sync")
    parser.add_argument("--sync", action="store_true", help="Sync from SAM.gov")
    parser.add_argument("--rescore", action="store_true", help="Rescore stored opportunities")
    parser.add_argument("--json", action="store_true", help="JSON output")
    args = parser.parse_args()

    config = load_config()
    repository = SqliteOpportunityRepository(
        timeout=config["database"]["timeout_seconds"])
    catalog = SqliteCatalogStore(timeout=config["database"]["timeout_seconds"])

    try:
        if args.sync:
            result = sync_opportunities(SamGovClient.from_config(config),
                                        repository, catalog, config=config)
        elif args.rescore:
            result = rescore_opportunities(repository, catalog, config=config)
        else:
            parser.print_help()
            return
    except OppDeskError as exc:
        result = {"status": "error", "message": exc.message}

    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
