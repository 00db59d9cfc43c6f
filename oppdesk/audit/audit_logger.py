#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Audit Logger: append-only audit trail writer for OppDesk.

Writes to the audit_trail table. ``record`` joins the caller's open
transaction (status changes, catalog imports, sync runs); ``log_event``
opens its own connection for standalone use. No UPDATE/DELETE operations.

Usage:
    python -m oppdesk.audit.audit_logger \
        --event-type "opportunity.status_changed" \
        --actor "operator" \
        --action "Dismissed duplicate notice" \
        --entity-id "OPP-0123456789ab" \
        --json
    python -m oppdesk.audit.audit_logger --recent 20 --json
"""

import argparse
import json
import sqlite3

from oppdesk.core.config import db_path
from oppdesk.core.errors import PersistenceFailure
from oppdesk.core.models import to_iso, utcnow


def record(conn, event_type, action, entity_type=None, entity_id=None,
           details=None, actor="oppdesk"):
    """Write an append-only audit trail entry on an open connection."""
    conn.execute(
        "INSERT INTO audit_trail (event_type, actor, action, entity_type, "
        "entity_id, details, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
        (event_type, actor, action, entity_type, entity_id,
         json.dumps(details) if isinstance(details, dict) else details,
         to_iso(utcnow())),
    )


def log_event(event_type: str, actor: str, action: str, entity_type: str = None,
              entity_id: str = None, details: dict = None, path=None) -> dict:
    """Append an event to the audit trail. Returns the entry."""
    entry = {
        "event_type": event_type,
        "actor": actor,
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "details": details or {},
    }
    conn = sqlite3.connect(str(path or db_path()))
    try:
        record(conn, event_type, action, entity_type, entity_id,
               details or {}, actor=actor)
        conn.commit()
    except sqlite3.Error as exc:
        raise PersistenceFailure(f"Audit write failed: {exc}") from exc
    finally:
        conn.close()
    return entry


def recent_events(limit=50, entity_id=None, path=None):
    """Return the newest audit entries, optionally for one entity."""
    conn = sqlite3.connect(str(path or db_path()))
    conn.row_factory = sqlite3.Row
    try:
        if entity_id:
            rows = conn.execute(
                "SELECT * FROM audit_trail WHERE entity_id = ? "
                "ORDER BY id DESC LIMIT ?", (entity_id, limit),
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM audit_trail ORDER BY id DESC LIMIT ?", (limit,),
            ).fetchall()
    except sqlite3.Error as exc:
        raise PersistenceFailure(f"Audit read failed: {exc}") from exc
    finally:
        conn.close()
    events = []
    for row in rows:
        event = dict(row)
        if event.get("details"):
            try:
                event["details"] = json.loads(event["details"])
            except ValueError:
                pass
        events.append(event)
    return events


def main():
    parser = argparse.ArgumentParser(description="OppDesk Audit Logger")
    parser.add_argument("--event-type")
    parser.add_argument("--actor", default="cli")
    parser.add_argument("--action")
    parser.add_argument("--entity-type")
    parser.add_argument("--entity-id")
    parser.add_argument("--recent", type=int, help="Show the N newest entries")
    parser.add_argument("--json", action="store_true")
    args = parser.parse_args()

    if args.recent:
        result = recent_events(limit=args.recent, entity_id=args.entity_id)
        if args.json:
            print(json.dumps(result, indent=2))
        else:
            for ev in result:
                print(f"{ev['created_at']} [{ev['event_type']}] {ev['action']}")
        return

    if not args.event_type or not args.action:
        parser.error("--event-type and --action are required unless --recent is given")

    result = log_event(args.event_type, args.actor, args.action,
                       args.entity_type, args.entity_id)
    if args.json:
        print(json.dumps(result, indent=2))
    else:
        print(f"Logged: [{result['event_type']}] {result['action']}")


if __name__ == "__main__":
    main()
