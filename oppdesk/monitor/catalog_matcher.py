# CUI // SP-PROPIN
# Controlled by: OppDesk Portal
# CUI Category: PROPIN
# Distribution: D
# POC: OppDesk System Administrator
"""Catalog Matcher: tiered matching of solicitations against the NSN catalog.

Tiers, strongest first:
    1. Exact NSN      NSN-shaped tokens in the text that are in the catalog
    2. Class code     declared class code or an FSC marker in the text
                      (only when tier 1 found nothing)
    3. Keyword        catalog keyword overlap; feeds scoring only

An empty result is a valid outcome, never an error. All functions here
are pure and safe to call from multiple threads.
"""

import re
from dataclasses import dataclass
from typing import FrozenSet, Tuple

from oppdesk.core.models import CatalogEntry, MatchResult

# Dashed, plain 13-digit, and space-separated NSNs
NSN_TOKEN_RE = re.compile(r"(?<!\d)(\d{4})[-\s]?(\d{2})[-\s]?(\d{3})[-\s]?(\d{4})(?!\d)")
# "FSC 6810", "FSC: 6810", "FSC-6810"
FSC_MARKER_RE = re.compile(r"\bFSC\s*[:\-]?\s*(\d{4})\b", re.IGNORECASE)


@dataclass(frozen=True)
class CatalogIndex:
    """Lookup structure built once per request or sync from catalog entries."""
    nsns: FrozenSet[str] = frozenset()
    fscs: FrozenSet[str] = frozenset()
    entries: Tuple[CatalogEntry, ...] = ()

    @classmethod
    def from_entries(cls, entries):
        entries = tuple(e for e in entries if e.active)
        return cls(
            nsns=frozenset(e.nsn for e in entries),
            fscs=frozenset(e.fsc for e in entries),
            entries=entries,
        )

    @classmethod
    def from_store(cls, store):
        return cls.from_entries(store.list_entries(active_only=True))

    def __len__(self):
        return len(self.nsns)


def find_nsns(text, index):
    """Return catalog NSNs appearing in ``text`` as canonical dashed strings."""
    if not text:
        return frozenset()
    found = set()
    for m in NSN_TOKEN_RE.finditer(text):
        nsn = "-".join(m.groups())
        if nsn in index.nsns:
            found.add(nsn)
    return frozenset(found)


def find_fsc(text, naics_code, classification_code, index):
    """Return the matched catalog FSC, or None."""
    for code in (classification_code, naics_code):
        if code:
            prefix = str(code).strip().upper()[:4]
            if prefix in index.fscs:
                return prefix
    if not text:
        return None
    for m in FSC_MARKER_RE.finditer(text):
        if m.group(1) in index.fscs:
            return m.group(1)
    # an uncatalogued NSN still names its FSC
    for m in NSN_TOKEN_RE.finditer(text):
        if m.group(1) in index.fscs:
            return m.group(1)
    return None


def keyword_overlap(text, index):
    """Best per-entry keyword hit ratio and the keywords that hit.

    Returns:
        (ratio, matched_keywords) with ratio in [0, 1].
    """
    if not text:
        return 0.0, ()
    text_lower = text.lower()
    best_ratio, best_hits = 0.0, ()
    for entry in index.entries:
        if not entry.keywords:
            continue
        hits = tuple(
            kw for kw in entry.keywords
            if re.search(r"\b" + re.escape(kw) + r"\b", text_lower)
        )
        if not hits:
            continue
        ratio = len(hits) / len(entry.keywords)
        if ratio > best_ratio:
            best_ratio, best_hits = ratio, hits
    return best_ratio, best_hits


def match_opportunity(text, naics_code, classification_code, index):
    """Match one solicitation against the catalog.

    Args:
        text: Title, description, and any extracted identifiers.
        naics_code: Declared industry code (may be None).
        classification_code: Declared class code (may be None).
        index: CatalogIndex.

    Returns:
        MatchResult. ``matched_fsc`` is always None when NSNs matched.
    """
    nsns = find_nsns(text, index)
    fsc = None if nsns else find_fsc(text, naics_code, classification_code, index)
    ratio, keywords = keyword_overlap(text, index)
    return MatchResult(
        matched_nsns=nsns,
        matched_fsc=fsc,
        matched_keywords=keywords,
        keyword_ratio=ratio,
    )


def opportunity_text(opp):
    return " ".join(p for p in (opp.solicitation_number, opp.title, opp.description) if p)


def match_record(opp, index):
    """Match a stored Opportunity using its title, description, and codes."""
    return match_opportunity(opportunity_text(opp), opp.naics_code,
                             opp.classification_code, index)
