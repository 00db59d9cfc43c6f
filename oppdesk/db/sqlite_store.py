# CUI // SP-PROPIN
# Controlled by: OppDesk Portal
# CUI Category: PROPIN
# Distribution: D
# POC: OppDesk System Administrator
"""SQLite implementations of the OppDesk collaborator interfaces.

Each public call opens its own connection, so the stores are safe to share
across the stats fan-out threads. sqlite3 errors (including lock
timeouts) surface as PersistenceFailure.
"""

import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import replace

from oppdesk.audit import audit_logger
from oppdesk.core import config
from oppdesk.core.errors import NotFound, PersistenceFailure
from oppdesk.core.interfaces import CatalogStore, OpportunityRepository, PricingStore
from oppdesk.core.models import (
    CatalogEntry,
    Opportunity,
    PricingRecord,
    parse_iso,
    parse_keywords,
    parse_matched_nsns,
    to_iso,
    utcnow,
)

logger = logging.getLogger("oppdesk.db.sqlite_store")

_OPP_COLUMNS = (
    "id, solicitation_number, notice_id, title, description, agency, "
    "naics_code, classification_code, set_aside_type, response_deadline, "
    "relevance_score, matched_nsns, matched_fsc, matched_keyword, status, "
    "dismissed_reason, ui_link, is_sentinel, created_at, updated_at"
)


def new_opportunity_id():
    return f"OPP-{uuid.uuid4().hex[:12]}"


class _SqliteStore:
    def __init__(self, db_path=None, timeout=None):
        self.db_path = str(db_path or config.db_path())
        if timeout is None:
            timeout = config.DEFAULT_DATABASE["timeout_seconds"]
        self.timeout = timeout

    def _connect(self):
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
            conn.execute("PRAGMA foreign_keys=ON")
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Database unavailable: {exc}") from exc
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _session(self):
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            logger.warning("SQLite error on %s: %s", self.db_path, exc)
            raise PersistenceFailure(f"Database error: {exc}") from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()


# =========================================================================
# OPPORTUNITIES
# =========================================================================
def _row_to_opportunity(row):
    owner = row["id"]
    nsns = parse_matched_nsns(row["matched_nsns"], owner=owner)
    return Opportunity(
        id=row["id"],
        solicitation_number=row["solicitation_number"],
        notice_id=row["notice_id"],
        title=row["title"] or "",
        description=row["description"] or "",
        agency=row["agency"],
        naics_code=row["naics_code"],
        classification_code=row["classification_code"],
        set_aside_type=row["set_aside_type"],
        response_deadline=parse_iso(row["response_deadline"]),
        relevance_score=max(0, min(100, int(row["relevance_score"] or 0))),
        matched_nsns=nsns,
        # an NSN match always wins over the class-code bucket
        matched_fsc=None if nsns else row["matched_fsc"],
        matched_keyword=row["matched_keyword"],
        status=row["status"],
        dismissed_reason=row["dismissed_reason"] if row["status"] == "dismissed" else None,
        ui_link=row["ui_link"],
        is_sentinel=bool(row["is_sentinel"]),
        created_at=parse_iso(row["created_at"]),
        updated_at=parse_iso(row["updated_at"]),
    )


def _filter_clauses(flt):
    """Translate the SQL-expressible part of an OpportunityFilter."""
    clauses, params = [], []
    if not flt.include_sentinels:
        clauses.append("o.is_sentinel = 0")
    if not flt.include_expired:
        clauses.append("(o.response_deadline IS NULL OR o.response_deadline >= ?)")
        params.append(to_iso(flt.reference_time()))
    if flt.min_score is not None:
        clauses.append("o.relevance_score >= ?")
        params.append(int(flt.min_score))
    if flt.status:
        clauses.append("o.status = ?")
        params.append(flt.status)
    if flt.deadline_from is not None:
        clauses.append("o.response_deadline IS NOT NULL AND o.response_deadline >= ?")
        params.append(to_iso(flt.deadline_from))
    if flt.deadline_to is not None:
        clauses.append("o.response_deadline IS NOT NULL AND o.response_deadline <= ?")
        params.append(to_iso(flt.deadline_to))
    if flt.exclude_completed:
        clauses.append(
            "NOT EXISTS (SELECT 1 FROM opportunity_responses r "
            "WHERE r.opportunity_id = o.id AND r.status = 'completed')"
        )
    where = (" WHERE " + " AND ".join(clauses)) if clauses else ""
    return where, params


def _match_filter(opp, flt):
    if flt.nsn_only and not opp.matched_nsns:
        return False
    if flt.fsc_only and (opp.matched_nsns or not opp.matched_fsc):
        return False
    return True


class SqliteOpportunityRepository(_SqliteStore, OpportunityRepository):

    def query_opportunities(self, filter):
        where, params = _filter_clauses(filter)
        sql = (f"SELECT {_OPP_COLUMNS} FROM opportunities o{where} "
               "ORDER BY o.relevance_score DESC, o.response_deadline DESC")
        with self._session() as conn:
            rows = conn.execute(sql, params).fetchall()
        # matched_nsns is a JSON blob; NSN/FSC filters run after the parse step
        opps = [o for o in (_row_to_opportunity(r) for r in rows) if _match_filter(o, filter)]
        if filter.limit is not None:
            opps = opps[: filter.limit]
        return opps

    def get_opportunity(self, opp_id):
        with self._session() as conn:
            row = conn.execute(
                f"SELECT {_OPP_COLUMNS} FROM opportunities WHERE id = ?", (opp_id,)
            ).fetchone()
        if row is None:
            raise NotFound(f"Opportunity not found: {opp_id}")
        return _row_to_opportunity(row)

    def update_status(self, opp_id, status, reason):
        now = to_iso(utcnow())
        with self._session() as conn:
            row = conn.execute(
                "SELECT status FROM opportunities WHERE id = ?", (opp_id,)
            ).fetchone()
            if row is None:
                raise NotFound(f"Opportunity not found: {opp_id}")
            conn.execute(
                "UPDATE opportunities SET status = ?, dismissed_reason = ?, "
                "updated_at = ? WHERE id = ?",
                (status, reason, now, opp_id),
            )
            audit_logger.record(
                conn, "opportunity.status_changed",
                f"Status {row['status']} -> {status}",
                entity_type="opportunity", entity_id=opp_id,
                details={"from": row["status"], "to": status, "reason": reason},
                actor="lifecycle_manager",
            )
            updated = conn.execute(
                f"SELECT {_OPP_COLUMNS} FROM opportunities WHERE id = ?", (opp_id,)
            ).fetchone()
        return _row_to_opportunity(updated)

    def count_opportunities(self, filter):
        if filter.nsn_only or filter.fsc_only:
            return len(self.query_opportunities(replace(filter, limit=None)))
        where, params = _filter_clauses(filter)
        with self._session() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) AS cnt FROM opportunities o{where}", params
            ).fetchone()
        return row["cnt"]

    def count_recent_wins(self, since):
        with self._session() as conn:
            row = conn.execute(
                "SELECT COUNT(DISTINCT l.opportunity_id) AS cnt "
                "FROM order_opportunity_links l "
                "JOIN government_orders g ON g.id = l.order_id "
                "JOIN opportunities o ON o.id = l.opportunity_id "
                "WHERE g.created_at >= ? AND o.is_sentinel = 0",
                (to_iso(since),),
            ).fetchone()
        return row["cnt"]

    def upsert_opportunity(self, opportunity):
        now = to_iso(utcnow())
        nsns = sorted(opportunity.matched_nsns)
        values = (
            opportunity.notice_id, opportunity.title, opportunity.description,
            opportunity.agency, opportunity.naics_code,
            opportunity.classification_code, opportunity.set_aside_type,
            to_iso(opportunity.response_deadline), opportunity.relevance_score,
            json.dumps(nsns) if nsns else None,
            None if nsns else opportunity.matched_fsc,
            opportunity.matched_keyword, opportunity.ui_link,
            1 if opportunity.is_sentinel else 0,
        )
        with self._session() as conn:
            existing = conn.execute(
                "SELECT id FROM opportunities WHERE solicitation_number = ?",
                (opportunity.solicitation_number,),
            ).fetchone()
            if existing:
                conn.execute(
                    "UPDATE opportunities SET notice_id = ?, title = ?, "
                    "description = ?, agency = ?, naics_code = ?, "
                    "classification_code = ?, set_aside_type = ?, "
                    "response_deadline = ?, relevance_score = ?, matched_nsns = ?, "
                    "matched_fsc = ?, matched_keyword = ?, ui_link = ?, "
                    "is_sentinel = ?, updated_at = ? WHERE id = ?",
                    values + (now, existing["id"]),
                )
                opportunity.id = existing["id"]
                return "updated"
            if not opportunity.id:
                opportunity.id = new_opportunity_id()
            conn.execute(
                "INSERT INTO opportunities (id, solicitation_number, notice_id, "
                "title, description, agency, naics_code, classification_code, "
                "set_aside_type, response_deadline, relevance_score, matched_nsns, "
                "matched_fsc, matched_keyword, ui_link, is_sentinel, status, "
                "created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'new', ?, ?)",
                (opportunity.id, opportunity.solicitation_number) + values + (now, now),
            )
            return "saved"

    def save_evaluation(self, opp_id, match, score):
        nsns = sorted(match.matched_nsns)
        with self._session() as conn:
            cur = conn.execute(
                "UPDATE opportunities SET relevance_score = ?, matched_nsns = ?, "
                "matched_fsc = ?, matched_keyword = ?, updated_at = ? WHERE id = ?",
                (score, json.dumps(nsns) if nsns else None,
                 None if nsns else match.matched_fsc,
                 match.display_keyword(), to_iso(utcnow()), opp_id),
            )
            if cur.rowcount == 0:
                raise NotFound(f"Opportunity not found: {opp_id}")

    def record_sync_run(self, summary, started_at, errors=None):
        with self._session() as conn:
            conn.execute(
                "INSERT INTO sync_runs (id, started_at, completed_at, synced, "
                "saved, updated, nsn_matches, errors) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (f"SYNC-{uuid.uuid4().hex[:12]}", to_iso(started_at),
                 to_iso(utcnow()), summary.get("synced", 0),
                 summary.get("saved", 0), summary.get("updated", 0),
                 summary.get("nsnMatches", 0),
                 json.dumps(errors) if errors else None),
            )
            audit_logger.record(
                conn, "opportunity.sync", "Feed sync completed",
                details=summary, actor="opportunity_sync",
            )


# =========================================================================
# PRICING
# =========================================================================
def _row_to_pricing(row):
    return PricingRecord(
        contract_number=row["contract_number"] or "",
        nsn=row["nsn"],
        psc=row["psc"],
        naics_code=row["naics_code"],
        keywords=parse_keywords(row["keywords"], owner=row["id"]),
        unit_price=row["unit_price"],
        quantity=row["quantity"],
        total_value=row["total_value"],
        award_date=parse_iso(row["award_date"]),
        vendor=row["vendor"],
        vendor_cage=row["vendor_cage"],
        agency=row["agency"],
        description=row["description"] or "",
    )


def _keywords_overlap(record, keywords):
    text = record.description.lower()
    for kw in keywords:
        kw = kw.lower()
        if kw in text:
            return True
        for rk in record.keywords:
            if kw in rk or rk in kw:
                return True
    return False


class SqlitePricingStore(_SqliteStore, PricingStore):

    def query(self, query, cutoff):
        clauses = ["award_date >= ?"]
        params = [to_iso(cutoff)]
        if query.nsn:
            clauses.append("nsn = ?")
            params.append(query.nsn)
        if query.psc:
            clauses.append("psc = ?")
            params.append(query.psc)
        if query.naics_code:
            clauses.append("naics_code = ?")
            params.append(query.naics_code)
        sql = ("SELECT * FROM award_records WHERE " + " AND ".join(clauses)
               + " ORDER BY award_date DESC")
        with self._session() as conn:
            rows = conn.execute(sql, params).fetchall()
        records = [_row_to_pricing(r) for r in rows]
        if query.keywords:
            records = [r for r in records if _keywords_overlap(r, query.keywords)]
        return records


# =========================================================================
# CATALOG
# =========================================================================
def _row_to_entry(row):
    return CatalogEntry(
        nsn=row["nsn"],
        fsc=row["fsc"],
        niin=row["niin"],
        description=row["description"] or "",
        keywords=parse_keywords(row["keywords"], owner=row["nsn"]),
        active=bool(row["active"]),
    )


class SqliteCatalogStore(_SqliteStore, CatalogStore):

    def list_entries(self, active_only=True, fsc=None, limit=None):
        clauses, params = [], []
        if active_only:
            clauses.append("active = 1")
        if fsc:
            clauses.append("fsc = ?")
            params.append(fsc)
        sql = "SELECT * FROM nsn_catalog"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY nsn"
        if limit:
            sql += " LIMIT ?"
            params.append(int(limit))
        with self._session() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_entry(r) for r in rows]

    def upsert_entries(self, entries):
        """Insert or reactivate catalog entries; returns (imported, updated)."""
        now = to_iso(utcnow())
        imported = updated = 0
        with self._session() as conn:
            for entry in entries:
                existing = conn.execute(
                    "SELECT nsn FROM nsn_catalog WHERE nsn = ?", (entry.nsn,)
                ).fetchone()
                keywords = json.dumps(list(entry.keywords)) if entry.keywords else None
                if existing:
                    conn.execute(
                        "UPDATE nsn_catalog SET active = 1, "
                        "description = COALESCE(NULLIF(?, ''), description), "
                        "keywords = COALESCE(?, keywords), updated_at = ? WHERE nsn = ?",
                        (entry.description, keywords, now, entry.nsn),
                    )
                    updated += 1
                else:
                    conn.execute(
                        "INSERT INTO nsn_catalog (nsn, fsc, niin, description, "
                        "keywords, active, created_at, updated_at) "
                        "VALUES (?, ?, ?, ?, ?, 1, ?, ?)",
                        (entry.nsn, entry.fsc, entry.niin, entry.description,
                         keywords, now, now),
                    )
                    imported += 1
            audit_logger.record(
                conn, "catalog.import", f"Imported {imported} NSNs, updated {updated}",
                entity_type="nsn_catalog",
                details={"imported": imported, "updated": updated},
                actor="nsn_catalog",
            )
        return imported, updated

    def fsc_counts(self, active_only=True):
        sql = "SELECT fsc, COUNT(*) AS cnt FROM nsn_catalog"
        if active_only:
            sql += " WHERE active = 1"
        sql += " GROUP BY fsc ORDER BY fsc"
        with self._session() as conn:
            rows = conn.execute(sql).fetchall()
        return {r["fsc"]: r["cnt"] for r in rows}
