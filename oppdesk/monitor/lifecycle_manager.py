#!/usr/bin/env python3
# CUI // SP-PROPIN
# Controlled by: OppDesk Portal
# CUI Category: PROPIN
# Distribution: D
# POC: OppDesk System Administrator
"""Lifecycle Manager: review status for ingested opportunities.

Statuses: new -> reviewed -> imported, and any -> dismissed (with reason).
Any recognized status is accepted from any prior status, so operators can
reopen a dismissed opportunity. Only the value is validated.

Usage:
    python -m oppdesk.monitor.lifecycle_manager --id OPP-0123456789ab --status reviewed
    python -m oppdesk.monitor.lifecycle_manager --id OPP-0123456789ab \
        --status dismissed --reason "Outside catalog" --json
"""

import argparse
import json
import logging

from oppdesk.core.errors import InvalidStatus, OppDeskError, ValidationError
from oppdesk.core.models import VALID_STATUSES

logger = logging.getLogger("oppdesk.monitor.lifecycle")


def validate_status(status):
    if status not in VALID_STATUSES:
        raise InvalidStatus(status, VALID_STATUSES)
    return status


def update_status(repository, opp_id, status, dismissed_reason=None):
    """Set an opportunity's review status.

    Args:
        repository: OpportunityRepository.
        opp_id: Opportunity identifier.
        status: One of VALID_STATUSES.
        dismissed_reason: Stored only when status is "dismissed".

    Returns:
        dict with id and status.

    Raises:
        ValidationError: id or status missing.
        InvalidStatus: status outside VALID_STATUSES.
        NotFound: unknown id.
    """
    if not opp_id:
        raise ValidationError("Missing opportunity ID")
    if not status:
        raise ValidationError("Missing status")
    validate_status(status)
    reason = (dismissed_reason or None) if status == "dismissed" else None
    opp = repository.update_status(opp_id, status, reason)
    logger.info("Opportunity %s -> %s", opp_id, status)
    return {"id": opp.id, "status": opp.status}


def main():
    from oppdesk.db.sqlite_store import SqliteOpportunityRepository

    parser = argparse.ArgumentParser(description="OppDesk Lifecycle Manager")
    parser.add_argument("--id", required=True, help="Opportunity ID")
    parser.add_argument("--status", required=True, help=f"One of: {', '.join(VALID_STATUSES)}")
    parser.add_argument("--reason", help="Dismissal reason")
    parser.add_argument("--json", action="store_true", help="JSON output")
    args = parser.parse_args()

    try:
        result = update_status(SqliteOpportunityRepository(), args.id,
                               args.status, args.reason)
    except OppDeskError as exc:
        result = {"status": "error", "message": exc.message}

    if args.json:
        print(json.dumps(result, indent=2))
    elif "message" in result:
        print(f"Error: {result['message']}")
    else:
        print(f"{result['id']}: {result['status']}")


if __name__ == "__main__":
    main()
