# CUI // SP-PROPIN
# Controlled by: OppDesk Portal
# CUI Category: PROPIN
# Distribution: D
# POC: OppDesk System Administrator
"""Typed model for the OppDesk core.

Persisted rows arrive with JSON-blob columns (matched NSNs, catalog
keywords). They pass through the parse helpers here before reaching the
matcher or scorer; malformed values fail closed to "no match".
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, FrozenSet, List, Optional, Tuple

logger = logging.getLogger("oppdesk.core.models")

VALID_STATUSES = ("new", "reviewed", "imported", "dismissed")

_NSN_DIGITS_RE = re.compile(r"^\d{13}$")


# =========================================================================
# TIME HELPERS
# =========================================================================
def utcnow():
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(value):
    """Serialize a datetime to the fixed-width UTC form stored in SQLite.

    All persisted timestamps share ``YYYY-MM-DDTHH:MM:SS.mmmZ`` so that
    string comparison in SQL orders them chronologically.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_iso(value):
    """Parse a stored or feed timestamp into an aware datetime.

    Accepts ISO 8601 with ``Z`` or an offset, naive timestamps (taken as
    UTC), and bare dates. Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.warning("Unparseable timestamp %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =========================================================================
# NSN HELPERS
# =========================================================================
def normalize_nsn(token):
    """Return the canonical dashed NSN (NNNN-NN-NNN-NNNN) or None."""
    if not isinstance(token, str):
        return None
    digits = re.sub(r"[\s-]", "", token)
    if not _NSN_DIGITS_RE.match(digits):
        return None
    return f"{digits[0:4]}-{digits[4:6]}-{digits[6:9]}-{digits[9:13]}"


def _load_json_list(raw, field_name, owner):
    if raw is None or raw == "":
        return []
    value = raw
    if isinstance(raw, (bytes, str)):
        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Malformed %s on %s, treating as empty", field_name, owner)
            return None
    if value is None:
        return []
    if not isinstance(value, (list, tuple, set, frozenset)):
        logger.warning("Unexpected %s type %s on %s, treating as empty",
                       field_name, type(value).__name__, owner)
        return None
    return list(value)


def parse_matched_nsns(raw, owner="record"):
    """Parse a persisted matched-NSN blob into a frozenset of canonical NSNs.

    Any malformed element invalidates the whole value: the record is
    treated as having no NSN match and a warning is logged.
    """
    items = _load_json_list(raw, "matched_nsns", owner)
    if not items:
        return frozenset()
    nsns = set()
    for item in items:
        nsn = normalize_nsn(item)
        if nsn is None:
            logger.warning("Invalid NSN %r in matched_nsns on %s, treating as empty",
                           item, owner)
            return frozenset()
        nsns.add(nsn)
    return frozenset(nsns)


def parse_keywords(raw, owner="record"):
    """Parse a persisted keyword blob into a tuple of lower-case strings."""
    items = _load_json_list(raw, "keywords", owner)
    if not items:
        return ()
    keywords = []
    for item in items:
        if not isinstance(item, str):
            logger.warning("Non-string keyword %r on %s, treating as empty", item, owner)
            return ()
        word = item.strip().lower()
        if word and word not in keywords:
            keywords.append(word)
    return tuple(keywords)


# =========================================================================
# CATALOG / MATCHING
# =========================================================================
@dataclass(frozen=True)
class CatalogEntry:
    """One NSN the vendor can supply."""
    nsn: str
    fsc: str
    niin: str = ""
    description: str = ""
    keywords: Tuple[str, ...] = ()
    active: bool = True

    def to_dict(self):
        return {
            "nsn": self.nsn,
            "fsc": self.fsc,
            "niin": self.niin,
            "description": self.description,
            "keywords": list(self.keywords),
            "active": self.active,
        }


@dataclass(frozen=True)
class MatchResult:
    matched_nsns: FrozenSet[str] = frozenset()
    matched_fsc: Optional[str] = None
    matched_keywords: Tuple[str, ...] = ()
    keyword_ratio: float = 0.0

    @property
    def is_empty(self):
        return not self.matched_nsns and not self.matched_fsc and not self.matched_keywords

    def display_keyword(self):
        """Short label for the strongest match source (NSN, FSC, or keyword)."""
        if self.matched_nsns:
            return f"NSN:{sorted(self.matched_nsns)[0]}"
        if self.matched_fsc:
            return f"FSC:{self.matched_fsc}"
        if self.matched_keywords:
            return self.matched_keywords[0]
        return None

    def to_dict(self):
        return {
            "matchedStockNumbers": sorted(self.matched_nsns),
            "matchedClassCode": self.matched_fsc,
            "matchedKeywords": list(self.matched_keywords),
            "keywordRatio": round(self.keyword_ratio, 4),
        }


# =========================================================================
# OPPORTUNITY
# =========================================================================
@dataclass
class Opportunity:
    """A published solicitation plus its match/score/lifecycle state."""
    id: str
    solicitation_number: str = ""
    notice_id: Optional[str] = None
    title: str = ""
    description: str = ""
    naics_code: Optional[str] = None
    classification_code: Optional[str] = None
    set_aside_type: Optional[str] = None
    agency: Optional[str] = None
    response_deadline: Optional[datetime] = None
    relevance_score: int = 0
    matched_nsns: FrozenSet[str] = frozenset()
    matched_fsc: Optional[str] = None
    matched_keyword: Optional[str] = None
    status: str = "new"
    dismissed_reason: Optional[str] = None
    ui_link: Optional[str] = None
    is_sentinel: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_expired(self, now=None):
        if self.response_deadline is None:
            return False
        return self.response_deadline < (now or utcnow())

    def to_dict(self):
        return {
            "id": self.id,
            "solicitationNumber": self.solicitation_number,
            "noticeId": self.notice_id,
            "title": self.title,
            "description": self.description,
            "naicsCode": self.naics_code,
            "classificationCode": self.classification_code,
            "setAsideType": self.set_aside_type,
            "agency": self.agency,
            "responseDeadline": to_iso(self.response_deadline),
            "relevanceScore": self.relevance_score,
            "matchedStockNumbers": sorted(self.matched_nsns),
            "matchedClassCode": self.matched_fsc,
            "matchedKeyword": self.matched_keyword,
            "status": self.status,
            "dismissedReason": self.dismissed_reason,
            "uiLink": self.ui_link,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
        }


@dataclass
class OpportunityFilter:
    """Recognized query options for OpportunityRepository lookups.

    Attributes:
        min_score: Keep only relevance_score >= min_score.
        include_expired: When False, drop opportunities whose deadline is
            before ``now``; opportunities without a deadline are kept.
        nsn_only: Keep only opportunities with at least one matched NSN.
        fsc_only: Keep only opportunities with a class-code match and no
            matched NSNs.
        status: Keep only this lifecycle status.
        deadline_from: Keep only deadlines >= this instant (drops null deadlines).
        deadline_to: Keep only deadlines <= this instant (drops null deadlines).
        exclude_completed: Drop opportunities with a completed response.
        include_sentinels: Keep internal bookkeeping records (never in counts).
        now: Reference instant for expiry; defaults to the current time.
        limit: Maximum rows returned by query_opportunities.
    """
    min_score: Optional[int] = None
    include_expired: bool = False
    nsn_only: bool = False
    fsc_only: bool = False
    status: Optional[str] = None
    deadline_from: Optional[datetime] = None
    deadline_to: Optional[datetime] = None
    exclude_completed: bool = False
    include_sentinels: bool = False
    now: Optional[datetime] = None
    limit: Optional[int] = None

    def reference_time(self):
        return self.now or utcnow()


# =========================================================================
# PRICING
# =========================================================================
@dataclass
class PricingRecord:
    """One historical award line."""
    contract_number: str = ""
    nsn: Optional[str] = None
    psc: Optional[str] = None
    naics_code: Optional[str] = None
    keywords: Tuple[str, ...] = ()
    unit_price: Optional[float] = None
    quantity: Optional[int] = None
    total_value: Optional[float] = None
    award_date: Optional[datetime] = None
    vendor: Optional[str] = None
    vendor_cage: Optional[str] = None
    agency: Optional[str] = None
    description: str = ""

    def to_dict(self):
        return {
            "contractNumber": self.contract_number,
            "nsn": self.nsn,
            "psc": self.psc,
            "naicsCode": self.naics_code,
            "keywords": list(self.keywords),
            "unitPrice": self.unit_price,
            "quantity": self.quantity,
            "totalValue": self.total_value,
            "awardDate": to_iso(self.award_date),
            "vendor": self.vendor,
            "vendorCage": self.vendor_cage,
            "agency": self.agency,
            "description": self.description,
        }


@dataclass
class PricingQuery:
    nsn: Optional[str] = None
    psc: Optional[str] = None
    naics_code: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    lookback_days: int = 730

    def has_filter(self):
        return bool(self.nsn or self.psc or self.naics_code or self.keywords)

    def to_dict(self):
        return {
            "nsn": self.nsn,
            "psc": self.psc,
            "naics": self.naics_code,
            "keywords": list(self.keywords),
            "lookbackDays": self.lookback_days,
        }


@dataclass
class PricingStats:
    count: int = 0
    min: Optional[float] = None
    max: Optional[float] = None
    mean: Optional[float] = None
    median: Optional[float] = None
    most_recent_date: Optional[datetime] = None

    def to_dict(self):
        return {
            "count": self.count,
            "min": self.min,
            "max": self.max,
            "mean": self.mean,
            "median": self.median,
            "mostRecentDate": to_iso(self.most_recent_date),
        }


@dataclass
class PricingResult:
    query: PricingQuery
    records: List[PricingRecord] = field(default_factory=list)
    stats: PricingStats = field(default_factory=PricingStats)
    trend: str = "unknown"
    confidence: str = "none"
    message: str = ""

    def to_dict(self):
        return {
            "query": self.query.to_dict(),
            "records": [r.to_dict() for r in self.records],
            "stats": self.stats.to_dict(),
            "trend": self.trend,
            "confidence": self.confidence,
            "message": self.message,
        }


# =========================================================================
# DASHBOARD
# =========================================================================
@dataclass(frozen=True)
class DashboardStats:
    total_open: int = 0
    due_today: int = 0
    due_soon: int = 0
    recent_wins: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalOpen": self.total_open,
            "dueToday": self.due_today,
            "dueSoon": self.due_soon,
            "recentWins": self.recent_wins,
        }
