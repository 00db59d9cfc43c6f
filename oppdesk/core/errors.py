# CUI // SP-PROPIN
# Controlled by: OppDesk Portal
# CUI Category: PROPIN
# Distribution: D
# POC: OppDesk System Administrator
"""Error taxonomy shared by the OppDesk core and the JSON API.

    OppDeskError
    ├── ValidationError      bad or missing input (HTTP 400)
    │   ├── InvalidStatus    lifecycle status outside the allow-list
    │   └── InvalidQuery     pricing query with no usable filter
    ├── NotFound             unknown identifier (HTTP 404)
    ├── UpstreamDegraded     optional enrichment collaborator failed
    └── PersistenceFailure   storage unavailable (HTTP 500 on writes)
"""


class OppDeskError(Exception):
    """Base class; every error carries a human-readable message."""

    http_status = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"error": self.message}


class ValidationError(OppDeskError, ValueError):
    http_status = 400


class InvalidStatus(ValidationError):
    def __init__(self, status, allowed):
        self.status = status
        self.allowed = tuple(allowed)
        super().__init__(
            f"Invalid status '{status}'. Must be one of: {', '.join(self.allowed)}"
        )


class InvalidQuery(ValidationError):
    pass


class NotFound(OppDeskError, LookupError):
    http_status = 404


class UpstreamDegraded(OppDeskError):
    http_status = 502


class PersistenceFailure(OppDeskError):
    http_status = 500
