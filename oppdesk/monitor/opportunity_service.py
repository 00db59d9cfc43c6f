# CUI // SP-PROPIN
# Controlled by: OppDesk Portal
# CUI Category: PROPIN
# Distribution: D
# POC: OppDesk System Administrator
"""Opportunity read service: filtered worklist and detail view."""

import logging
import re

from oppdesk.core.config import DEFAULT_SCORING
from oppdesk.core.errors import UpstreamDegraded
from oppdesk.core.models import OpportunityFilter, utcnow
from oppdesk.monitor.relevance_scorer import relevance_bucket

logger = logging.getLogger("oppdesk.monitor.opportunities")

UI_LINK_NOTICE_RE = re.compile(r"opp/([a-f0-9]+)/")


def worklist_stats(opps, threshold):
    """Stats block over already-filtered active opportunities.

    nsnMatch and fscMatch partition the matched set: an opportunity with
    any NSN match is never counted as FSC-only.
    """
    return {
        "total": len(opps),
        "high": sum(1 for o in opps if relevance_bucket(o.relevance_score, threshold) == "high"),
        "nsnMatch": sum(1 for o in opps if o.matched_nsns),
        "fscMatch": sum(1 for o in opps if o.matched_fsc and not o.matched_nsns),
    }


def list_opportunities(repository, min_score=None, show_expired=False,
                       nsn_only=False, fsc_only=False, now=None, config=None):
    """Filtered opportunity list plus the dashboard stats block.

    The stats block always covers non-expired opportunities, whatever
    filters the listing uses.
    """
    now = now or utcnow()
    scoring = (config or {}).get("scoring", DEFAULT_SCORING)
    threshold = scoring.get("high_relevance_threshold",
                            DEFAULT_SCORING["high_relevance_threshold"])
    listing = repository.query_opportunities(OpportunityFilter(
        min_score=min_score,
        include_expired=show_expired,
        nsn_only=nsn_only,
        fsc_only=fsc_only,
        now=now,
    ))
    active = repository.query_opportunities(OpportunityFilter(now=now))
    return {
        "opportunities": [o.to_dict() for o in listing],
        "stats": worklist_stats(active, threshold),
    }


def resolve_notice_id(opp):
    if opp.notice_id:
        return opp.notice_id
    if opp.ui_link:
        m = UI_LINK_NOTICE_RE.search(opp.ui_link)
        if m:
            return m.group(1)
    return None


def get_opportunity_detail(repository, feed, opp_id):
    """Stored opportunity merged with live feed detail when available.

    Raises:
        NotFound: unknown id.
    """
    opp = repository.get_opportunity(opp_id)
    details = None
    notice_id = resolve_notice_id(opp)
    if feed is not None and notice_id:
        try:
            details = feed.get_opportunity_details(notice_id)
        except UpstreamDegraded as exc:
            logger.warning("Detail fetch for %s failed, serving stored data: %s",
                           opp_id, exc.message)
    return {"opportunity": opp.to_dict(), "details": details}
