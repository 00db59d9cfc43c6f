#!/usr/bin/env python3
# CUI // SP-PROPIN
# Controlled by: OppDesk Portal
# CUI Category: PROPIN
# Distribution: D
# POC: OppDesk System Administrator
"""NSN Catalog: bulk import and listing of the vendor's stock numbers.

The catalog is the reference data the Catalog Matcher consumes. Entries
are keyed by canonical NSN (NNNN-NN-NNN-NNNN); the FSC is the first four
digits and the NIIN the remaining nine.

Usage:
    python -m oppdesk.catalog.nsn_catalog --import-file nsns.txt --json
    python -m oppdesk.catalog.nsn_catalog --list --fsc 6810 --json
    python -m oppdesk.catalog.nsn_catalog --stats
"""

import argparse
import json
import logging
import re

from oppdesk.core.errors import ValidationError
from oppdesk.core.models import CatalogEntry, normalize_nsn

logger = logging.getLogger("oppdesk.catalog")

FSC_NAMES = {
    "6810": "Chemicals",
    "6850": "Chemical Specialties",
    "8010": "Paints, Dopes, Varnishes",
    "9150": "Oils and Greases",
    "9160": "Miscellaneous Waxes, Oils and Fats",
}

_SPLIT_RE = re.compile(r"[\n,\t]+")


def parse_nsn(raw):
    """Parse one NSN in dashed, 13-digit, or space-separated form.

    Returns:
        dict with nsn, fsc, niin; or None when the value is not an NSN.
    """
    nsn = normalize_nsn(raw.strip()) if isinstance(raw, str) else None
    if nsn is None:
        return None
    digits = nsn.replace("-", "")
    return {"nsn": nsn, "fsc": digits[:4], "niin": digits[4:]}


def _entry_from_item(item):
    if isinstance(item, dict):
        parsed = parse_nsn(item.get("nsn"))
        if not parsed:
            return None
        keywords = tuple(
            k.strip().lower() for k in item.get("keywords") or [] if isinstance(k, str) and k.strip()
        )
        return CatalogEntry(description=item.get("description") or "",
                            keywords=keywords, **parsed)
    parsed = parse_nsn(item)
    return CatalogEntry(**parsed) if parsed else None


def import_nsns(store, text=None, nsns=None):
    """Import NSNs into the catalog, reactivating ones already present.

    Args:
        store: CatalogStore with upsert_entries().
        text: Free text with NSNs separated by newlines, commas, or tabs.
        nsns: List of NSN strings or {nsn, description, keywords} dicts.

    Returns:
        dict with imported, updated, total, invalid.

    Raises:
        ValidationError: no input, empty input, or no parseable NSNs.
    """
    if text is None and nsns is None:
        raise ValidationError("Request must include 'text' or 'nsns' field")
    if text is not None:
        items = [t.strip() for t in _SPLIT_RE.split(str(text)) if t.strip()]
    else:
        if not isinstance(nsns, list):
            raise ValidationError("'nsns' must be a list")
        items = [n for n in nsns if n]
    if not items:
        raise ValidationError("No NSNs provided")

    entries, invalid, seen = [], [], set()
    for item in items:
        entry = _entry_from_item(item)
        if entry is None:
            invalid.append(item if isinstance(item, str) else str(item))
            continue
        if entry.nsn in seen:
            continue
        seen.add(entry.nsn)
        entries.append(entry)

    if not entries:
        raise ValidationError("No valid NSNs found")

    imported, updated = store.upsert_entries(entries)
    if invalid:
        logger.warning("Skipped %d unparseable NSN values", len(invalid))
    logger.info("Catalog import: %d new, %d updated", imported, updated)
    return {
        "imported": imported,
        "updated": updated,
        "total": len(entries),
        "invalid": invalid,
    }


def list_catalog(store, fsc=None, limit=None):
    """List active catalog entries with per-FSC counts."""
    entries = store.list_entries(active_only=True, fsc=fsc, limit=limit)
    return {
        "entries": [e.to_dict() for e in entries],
        "count": len(entries),
        "fscCounts": store.fsc_counts(active_only=True),
    }


def catalog_stats(store):
    counts = store.fsc_counts(active_only=True)
    return {
        "total": sum(counts.values()),
        "byFsc": [
            {"fsc": fsc, "name": FSC_NAMES.get(fsc, "Other"), "count": cnt}
            for fsc, cnt in sorted(counts.items(), key=lambda kv: -kv[1])
        ],
    }


def main():
    from oppdesk.db.sqlite_store import SqliteCatalogStore

    parser = argparse.ArgumentParser(description="OppDesk NSN Catalog")
    parser.add_argument("--import-file", help="File of NSNs (newline/comma/tab separated)")
    parser.add_argument("--list", action="store_true", help="List catalog entries")
    parser.add_argument("--fsc", help="Filter listing by FSC")
    parser.add_argument("--limit", type=int, help="Maximum entries to list")
    parser.add_argument("--stats", action="store_true", help="Per-FSC counts")
    parser.add_argument("--json", action="store_true", help="JSON output")
    args = parser.parse_args()

    store = SqliteCatalogStore()
    if args.import_file:
        with open(args.import_file, "r", encoding="utf-8") as fh:
            try:
                result = import_nsns(store, text=fh.read())
            except ValidationError as exc:
                result = {"status": "error", "message": exc.message}
    elif args.list:
        result = list_catalog(store, fsc=args.fsc, limit=args.limit)
    elif args.stats:
        result = catalog_stats(store)
    else:
        parser.print_help()
        return

    if args.json:
        print(json.dumps(result, indent=2, default=str))
    elif args.stats:
        print(f"Catalog: {result['total']} active NSNs")
        for row in result["byFsc"]:
            print(f"  {row['fsc']} {row['name']:<40} {row['count']:>6}")
    else:
        print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
