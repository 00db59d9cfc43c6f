# CUI // SP-PROPIN
"""OppDesk: opportunity matching, scoring, and pricing intelligence.

Packages:
    core        : typed model, collaborator interfaces, errors, config
    db          : SQLite schema and store implementations
    catalog     : NSN catalog reference data (import, listing, stats)
    monitor     : catalog matcher, relevance scorer, lifecycle, sync, stats
    competitive : historical award pricing lookup
    audit       : append-only audit trail
    testing     : health check
    dashboard   : Flask JSON API
"""
