# CUI // SP-PROPIN
# Controlled by: OppDesk Portal
# CUI Category: PROPIN
# Distribution: D
# POC: OppDesk System Administrator
"""Relevance Scorer: bounded 0-100 catalog relevance for an opportunity.

Scoring policy (additive, then clamped to [0, 100]; points from the
``scoring`` section of args/oppdesk_config.yaml):
    +50  at least one exact NSN match
    +20  class-code match with no NSN match
    +20  max, proportional to the best catalog keyword overlap ratio
    +10  response deadline inside the near-term window and not yet passed
    +3   real set-aside designation

Scores >= high_relevance_threshold (50) are reported as "high".
The scorer is a pure function of its inputs; ``now`` is passed explicitly
so repeated calls with the same inputs return the same score.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

from oppdesk.core.config import DEFAULT_SCORING
from oppdesk.core.models import utcnow
from oppdesk.monitor.catalog_matcher import match_record

logger = logging.getLogger("oppdesk.monitor.scorer")

_NO_SET_ASIDE = {"", "none", "n/a", "na", "no set aside used", "no set-aside used"}


def _policy(policy):
    merged = dict(DEFAULT_SCORING)
    if policy:
        merged.update({k: v for k, v in policy.items() if v is not None})
    return merged


def has_set_aside(set_aside):
    return (set_aside or "").strip().lower() not in _NO_SET_ASIDE


def score_relevance(match, deadline, set_aside, now=None, policy=None):
    """Score one match result.

    Args:
        match: MatchResult from the Catalog Matcher.
        deadline: Aware response deadline, or None.
        set_aside: Set-aside designation text, or None.
        now: Reference instant (defaults to current UTC time).
        policy: Optional overrides for DEFAULT_SCORING.

    Returns:
        int in [0, 100].
    """
    p = _policy(policy)
    now = now or utcnow()
    score = 0
    if match.matched_nsns:
        score += p["nsn_match_points"]
    elif match.matched_fsc:
        score += p["fsc_match_points"]
    ratio = max(0.0, min(1.0, match.keyword_ratio or 0.0))
    score += round(p["keyword_max_points"] * ratio)
    if deadline is not None and now <= deadline <= now + timedelta(days=p["near_term_days"]):
        score += p["deadline_points"]
    if has_set_aside(set_aside):
        score += p["set_aside_points"]
    return int(max(0, min(100, score)))


def relevance_bucket(score, threshold=None):
    if threshold is None:
        threshold = DEFAULT_SCORING["high_relevance_threshold"]
    return "high" if score >= threshold else "standard"


def evaluate_opportunity(opp, index, now=None, policy=None):
    """Match and score one Opportunity.

    Returns:
        (MatchResult, score)
    """
    match = match_record(opp, index)
    score = score_relevance(match, opp.response_deadline, opp.set_aside_type,
                            now=now, policy=policy)
    return match, score


def evaluate_batch(opps, index, now=None, policy=None, max_workers=4):
    """Evaluate many opportunities in parallel.

    Returns:
        list of (opportunity, MatchResult, score) in input order.
    """
    now = now or utcnow()
    opps = list(opps)
    if not opps:
        return []
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        results = list(pool.map(
            lambda o: evaluate_opportunity(o, index, now=now, policy=policy), opps
        ))
    logger.debug("Evaluated %d opportunities", len(opps))
    return [(o, m, s) for o, (m, s) in zip(opps, results)]
