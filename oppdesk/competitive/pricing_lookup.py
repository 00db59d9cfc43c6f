#!/usr/bin/env python3
# CUI // SP-PROPIN
# Controlled by: OppDesk Portal
# CUI Category: PROPIN
# Distribution: D
# POC: OppDesk System Administrator
"""Pricing Lookup Engine: historical award pricing for quote competitiveness.

Given any of {NSN, PSC, NAICS, keywords} and a lookback window, returns the
matching award lines (newest first) with summary statistics over their
positive unit prices, a price trend, and a confidence level.
Zero or negative unit prices are treated as unpriced.

Trend compares the mean unit price of the older half of the priced awards
with the newer half; a change beyond +/-5% is "up"/"down". Fewer than four
priced awards gives "unknown".

Confidence:
    high    >= 10 awards and at least one in the last 6 months
    medium  >= 5 awards, or any award with a unit price
    low     awards without positive unit prices
    none    no awards

Usage:
    python -m oppdesk.competitive.pricing_lookup --nsn 9150-00-045-4317 --json
    python -m oppdesk.competitive.pricing_lookup --psc 6810 --lookback-days 365
    python -m oppdesk.competitive.pricing_lookup --keywords "grease,lubricant" --json
"""

import argparse
import json
import logging
from datetime import timedelta

from oppdesk.core.config import DEFAULT_PRICING
from oppdesk.core.errors import InvalidQuery, OppDeskError
from oppdesk.core.models import (
    PricingQuery,
    PricingResult,
    PricingStats,
    normalize_nsn,
    utcnow,
)

logger = logging.getLogger("oppdesk.competitive.pricing")

TREND_BAND = 0.05
RECENT_AWARD_DAYS = 183
MAX_LOOKBACK_DAYS = 36500


def _median(values):
    """Calculate median of a non-empty list of numbers."""
    s = sorted(values)
    n = len(s)
    if n % 2 == 1:
        return float(s[n // 2])
    return (s[n // 2 - 1] + s[n // 2]) / 2.0


def _mean(values):
    return sum(values) / len(values)


def _has_price(record):
    return record.unit_price is not None and record.unit_price > 0


def build_query(nsn=None, psc=None, naics_code=None, keywords=None,
                lookback_days=None, config=None):
    """Validate raw lookup options into a PricingQuery.

    Raises:
        InvalidQuery: no filter supplied, or lookback_days is not a
            positive integer.
    """
    pricing_cfg = (config or {}).get("pricing", DEFAULT_PRICING)
    if lookback_days is None or lookback_days == "":
        lookback_days = pricing_cfg.get("default_lookback_days", 730)
    try:
        lookback = int(lookback_days)
    except (TypeError, ValueError, OverflowError):
        raise InvalidQuery("lookbackDays must be a positive integer")
    if isinstance(lookback_days, float) and lookback_days != lookback:
        raise InvalidQuery("lookbackDays must be a positive integer")
    if lookback <= 0:
        raise InvalidQuery("lookbackDays must be a positive integer")
    if lookback > MAX_LOOKBACK_DAYS:
        raise InvalidQuery(f"lookbackDays out of range (max {MAX_LOOKBACK_DAYS})")

    if isinstance(keywords, str):
        keywords = keywords.split(",")
    kw_list = []
    for kw in keywords or []:
        kw = (kw or "").strip().lower()
        if kw and kw not in kw_list:
            kw_list.append(kw)

    nsn = (nsn or "").strip() or None
    if nsn:
        nsn = normalize_nsn(nsn) or nsn

    query = PricingQuery(
        nsn=nsn,
        psc=(psc or "").strip().upper() or None,
        naics_code=(naics_code or "").strip() or None,
        keywords=kw_list,
        lookback_days=lookback,
    )
    if not query.has_filter():
        raise InvalidQuery("At least one of nsn, psc, naics, or keywords is required")
    return query


def compute_stats(records):
    prices = [r.unit_price for r in records if _has_price(r)]
    dates = [r.award_date for r in records if r.award_date is not None]
    most_recent = max(dates) if dates else None
    if not prices:
        return PricingStats(count=0, most_recent_date=most_recent)
    return PricingStats(
        count=len(prices),
        min=round(min(prices), 2),
        max=round(max(prices), 2),
        mean=round(_mean(prices), 2),
        median=round(_median(prices), 2),
        most_recent_date=most_recent,
    )


def price_trend(records):
    """Return up/down/stable/unknown from chronologically ordered prices."""
    priced = sorted(
        (r for r in records if _has_price(r) and r.award_date is not None),
        key=lambda r: r.award_date,
    )
    if len(priced) < 4:
        return "unknown"
    half = len(priced) // 2
    older = _mean([r.unit_price for r in priced[:half]])
    newer = _mean([r.unit_price for r in priced[half:]])
    change = (newer - older) / older
    if change > TREND_BAND:
        return "up"
    if change < -TREND_BAND:
        return "down"
    return "stable"


def confidence_level(records, now):
    if not records:
        return "none"
    recent_cutoff = now - timedelta(days=RECENT_AWARD_DAYS)
    has_recent = any(r.award_date and r.award_date >= recent_cutoff for r in records)
    if len(records) >= 10 and has_recent:
        return "high"
    if len(records) >= 5 or any(_has_price(r) for r in records):
        return "medium"
    return "low"


def _message(records, stats):
    if not records:
        return "No historical pricing data found for this item."
    if stats.count == 0:
        return f"Found {len(records)} similar awards. No unit prices recorded."
    return (f"Found {len(records)} similar awards. "
            f"Price range: ${stats.min:,.2f} - ${stats.max:,.2f}")


def lookup_pricing(store, query, now=None, config=None):
    """Run a pricing lookup.

    Args:
        store: PricingStore.
        query: PricingQuery (see build_query).
        now: Reference instant for the lookback cutoff.
        config: Optional merged config dict.

    Returns:
        PricingResult. Zero matching records is a normal, empty result.
    """
    if not query.has_filter():
        raise InvalidQuery("At least one of nsn, psc, naics, or keywords is required")
    if query.lookback_days <= 0:
        raise InvalidQuery("lookbackDays must be a positive integer")
    if query.lookback_days > MAX_LOOKBACK_DAYS:
        raise InvalidQuery(f"lookbackDays out of range (max {MAX_LOOKBACK_DAYS})")
    pricing_cfg = (config or {}).get("pricing", DEFAULT_PRICING)
    now = now or utcnow()
    cutoff = now - timedelta(days=query.lookback_days)

    records = store.query(query, cutoff)
    records.sort(key=lambda r: r.award_date or cutoff, reverse=True)

    stats = compute_stats(records)
    result = PricingResult(
        query=query,
        records=records[: pricing_cfg.get("max_records", 100)],
        stats=stats,
        trend=price_trend(records),
        confidence=confidence_level(records, now),
        message=_message(records, stats),
    )
    logger.info("Pricing lookup %s: %d records", query.to_dict(), len(records))
    return result


def main():
    from oppdesk.db.sqlite_store import SqlitePricingStore

    parser = argparse.ArgumentParser(description="OppDesk Pricing Lookup")
    parser.add_argument("--nsn", help="National Stock Number")
    parser.add_argument("--psc", help="Product/Service (class) code")
    parser.add_argument("--naics", help="NAICS code")
    parser.add_argument("--keywords", help="Comma-separated keywords")
    parser.add_argument("--lookback-days", type=int, help="Lookback window (default 730)")
    parser.add_argument("--json", action="store_true", help="JSON output")
    args = parser.parse_args()

    try:
        query = build_query(args.nsn, args.psc, args.naics, args.keywords,
                            args.lookback_days)
        result = lookup_pricing(SqlitePricingStore(), query).to_dict()
    except OppDeskError as exc:
        result = {"status": "error", "message": exc.message}

    if args.json:
        print(json.dumps(result, indent=2, default=str))
    elif "message" in result and "stats" not in result:
        print(f"Error: {result['message']}")
    else:
        stats = result["stats"]
        print(result["message"])
        if stats["count"]:
            print(f"  Mean:   ${stats['mean']:,.2f}")
            print(f"  Median: ${stats['median']:,.2f}")
            print(f"  Trend:  {result['trend']}  Confidence: {result['confidence']}")


if __name__ == "__main__":
    main()
