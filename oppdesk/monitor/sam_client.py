# CUI // SP-PROPIN
# Controlled by: OppDesk Portal
# CUI Category: PROPIN
# Distribution: D
# POC: OppDesk System Administrator
"""SAM.gov Opportunities API v2 client (FeedClient implementation).

Every request carries an explicit timeout. Any requests failure, HTTP
error, rate limiting, or a body that is not a JSON object surfaces as
UpstreamDegraded; nothing is retried here.

API Reference:
    SAM.gov Opportunities API v2
    https://api.sam.gov/opportunities/v2/search
    API key required via SAM_GOV_API_KEY environment variable.
"""

import logging

import requests

from oppdesk.core.config import DEFAULT_SAM_GOV, sam_api_key
from oppdesk.core.errors import UpstreamDegraded
from oppdesk.core.interfaces import FeedClient

logger = logging.getLogger("oppdesk.monitor.sam_client")

SEARCH_PATH = "/opportunities/v2/search"


def _sam_date(value):
    """SAM.gov expects MM/dd/yyyy for postedFrom/postedTo."""
    return value.strftime("%m/%d/%Y")


def parse_notice(item):
    """Normalize one ``opportunitiesData`` item into a flat dict."""
    return {
        "noticeId": item.get("noticeId") or "",
        "solicitationNumber": item.get("solicitationNumber") or "",
        "title": item.get("title") or "",
        "postedDate": item.get("postedDate") or "",
        "responseDeadline": item.get("responseDeadLine") or item.get("archiveDate") or "",
        "naicsCode": item.get("naicsCode") or "",
        "classificationCode": item.get("classificationCode") or "",
        "setAsideType": item.get("typeOfSetAside") or None,
        "agency": item.get("department") or item.get("fullParentPathName") or "",
        "office": item.get("subtier") or item.get("office") or "",
        "description": item.get("description") or "",
        "uiLink": item.get("uiLink") or "",
    }


def parse_details(item):
    """Detail view: the notice plus contacts, attachments, and award."""
    detail = parse_notice(item)
    award = item.get("award") or None
    awardee = (award or {}).get("awardee")
    detail.update({
        "fullDescription": item.get("fullDescription"),
        "pointOfContact": [
            {
                "name": poc.get("fullName") or "",
                "email": poc.get("email") or "",
                "phone": poc.get("phone") or "",
                "type": poc.get("type") or "primary",
            }
            for poc in item.get("pointOfContact") or []
        ],
        "attachments": [
            link if isinstance(link, str) else link.get("href") or link.get("url") or ""
            for link in item.get("resourceLinks") or []
        ],
        "placeOfPerformance": item.get("placeOfPerformance") or None,
        "award": {
            "amount": award.get("amount"),
            "awardee": awardee.get("name") if isinstance(awardee, dict) else awardee,
            "awardDate": award.get("date"),
        } if award else None,
    })
    return detail


class SamGovClient(FeedClient):
    """Thin requests-based client; one GET per call."""

    def __init__(self, api_key=None, api_base=None, timeout=None):
        self.api_key = api_key if api_key is not None else sam_api_key()
        self.api_base = (api_base or DEFAULT_SAM_GOV["api_base"]).rstrip("/")
        self.timeout = timeout or DEFAULT_SAM_GOV["timeout_seconds"]

    @classmethod
    def from_config(cls, config):
        sam_cfg = (config or {}).get("sam_gov", {})
        return cls(api_base=sam_cfg.get("api_base"),
                   timeout=sam_cfg.get("timeout_seconds"))

    @property
    def configured(self):
        return bool(self.api_key)

    def _get(self, params):
        if not self.api_key:
            raise UpstreamDegraded("SAM_GOV_API_KEY not configured")
        params = dict(params, api_key=self.api_key)
        try:
            resp = requests.get(
                f"{self.api_base}{SEARCH_PATH}",
                params=params,
                timeout=self.timeout,
                headers={"Accept": "application/json"},
            )
            if resp.status_code == 429:
                raise UpstreamDegraded("SAM.gov rate limit reached (HTTP 429)")
            resp.raise_for_status()
            data = resp.json()
        except requests.exceptions.ConnectionError as exc:
            raise UpstreamDegraded(f"Connection error: {exc}") from exc
        except requests.exceptions.Timeout as exc:
            raise UpstreamDegraded(
                f"SAM.gov request timed out after {self.timeout}s") from exc
        except requests.exceptions.HTTPError as exc:
            raise UpstreamDegraded(f"HTTP error {resp.status_code}: {exc}") from exc
        except ValueError as exc:
            raise UpstreamDegraded(f"Invalid JSON response: {exc}") from exc
        except requests.exceptions.RequestException as exc:
            raise UpstreamDegraded(f"SAM.gov request failed: {exc}") from exc
        if not isinstance(data, dict):
            raise UpstreamDegraded(
                f"Unexpected SAM.gov response: expected an object, got {type(data).__name__}")
        return data

    @staticmethod
    def _items(data):
        items = data.get("opportunitiesData") or []
        if not isinstance(items, list):
            raise UpstreamDegraded("Unexpected SAM.gov response: opportunitiesData is not a list")
        return [item for item in items if isinstance(item, dict)]

    def search_opportunities(self, posted_from, posted_to, naics_code=None,
                             classification_code=None, keywords=None, limit=50,
                             ptype=None):
        params = {
            "postedFrom": _sam_date(posted_from),
            "postedTo": _sam_date(posted_to),
            "limit": limit,
            "offset": 0,
        }
        if naics_code:
            params["ncode"] = naics_code
        if classification_code:
            params["ccode"] = classification_code
        if keywords:
            params["title"] = keywords
        if ptype:
            params["ptype"] = ptype
        items = self._items(self._get(params))
        logger.info("SAM.gov search %s returned %d notices",
                    {k: v for k, v in params.items() if k not in ("postedFrom", "postedTo")},
                    len(items))
        return [parse_notice(item) for item in items]

    def get_opportunity_details(self, notice_id):
        items = self._items(self._get({"noticeid": notice_id, "limit": 1}))
        if not items:
            return None
        return parse_details(items[0])
