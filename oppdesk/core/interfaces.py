# CUI // SP-PROPIN
# Controlled by: OppDesk Portal
# CUI Category: PROPIN
# Distribution: D
# POC: OppDesk System Administrator
"""Collaborator interfaces consumed by the OppDesk core.

Concrete implementations live in oppdesk.db.sqlite_store (persistence)
and oppdesk.monitor.sam_client (procurement feed). Handlers receive them
as parameters so tests can pass fakes.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from oppdesk.core.models import (
    CatalogEntry,
    MatchResult,
    Opportunity,
    OpportunityFilter,
    PricingQuery,
    PricingRecord,
)


class FeedClient(ABC):
    """Procurement feed (SAM.gov opportunities API)."""

    @abstractmethod
    def get_opportunity_details(self, notice_id: str) -> Optional[Dict]:
        """Fetch live notice detail; raises UpstreamDegraded on failure."""

    @abstractmethod
    def search_opportunities(self, posted_from: datetime, posted_to: datetime,
                             naics_code: str = None, classification_code: str = None,
                             keywords: str = None, limit: int = 50,
                             ptype: str = None) -> List[Dict]:
        """Search posted notices; raises UpstreamDegraded on failure."""


class OpportunityRepository(ABC):
    """System of record for opportunities."""

    @abstractmethod
    def query_opportunities(self, filter: OpportunityFilter) -> List[Opportunity]:
        """Return opportunities matching every set field of ``filter``."""

    @abstractmethod
    def get_opportunity(self, opp_id: str) -> Opportunity:
        """Return one opportunity; raises NotFound."""

    @abstractmethod
    def update_status(self, opp_id: str, status: str,
                      reason: Optional[str]) -> Opportunity:
        """Persist a lifecycle status; raises NotFound."""

    @abstractmethod
    def count_opportunities(self, filter: OpportunityFilter) -> int:
        """Count opportunities matching ``filter`` (sentinels never counted)."""

    @abstractmethod
    def count_recent_wins(self, since: datetime) -> int:
        """Count distinct opportunities linked to an order created >= since."""

    @abstractmethod
    def upsert_opportunity(self, opportunity: Opportunity) -> str:
        """Insert or update by solicitation number; returns 'saved' or 'updated'."""

    @abstractmethod
    def save_evaluation(self, opp_id: str, match: MatchResult, score: int) -> None:
        """Persist a re-evaluated match and score."""

    def record_sync_run(self, summary: Dict, started_at: datetime,
                        errors: List[str] = None) -> None:
        """Record a completed feed sync. Default: keep no history."""


class PricingStore(ABC):
    """Historical award records."""

    @abstractmethod
    def query(self, query: PricingQuery, cutoff: datetime) -> List[PricingRecord]:
        """Return records awarded on/after ``cutoff`` matching all filters."""


class CatalogStore(ABC):
    """Vendor NSN catalog reference data."""

    @abstractmethod
    def list_entries(self, active_only: bool = True, fsc: str = None,
                     limit: int = None) -> List[CatalogEntry]:
        """Return catalog entries ordered by NSN, optionally for one FSC."""

    @abstractmethod
    def fsc_counts(self, active_only: bool = True) -> Dict[str, int]:
        """Entry count per FSC."""

    @abstractmethod
    def upsert_entries(self, entries: List[CatalogEntry]) -> Tuple[int, int]:
        """Insert new entries and reactivate existing ones; returns (imported, updated)."""
