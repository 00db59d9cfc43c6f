# CUI // SP-PROPIN
# Controlled by: OppDesk Portal
# CUI Category: PROPIN
# Distribution: D
# POC: OppDesk System Administrator
"""Stats Aggregator: dashboard counters over opportunities and orders.

    totalOpen   not expired, no completed response
    dueToday    not expired, deadline before local end of today
    dueSoon     not expired, deadline before local start of today + 7 days
    recentWins  distinct opportunities linked to an order created since
                local start of today - 30 days

Day boundaries use the server's local time zone. The four counts run
concurrently and are independent, sharing one query_timeout_seconds
budget; if any of them fails or is still running at the deadline, all
four are reported as zero.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import timedelta

from oppdesk.core.config import DEFAULT_STATS
from oppdesk.core.models import DashboardStats, OpportunityFilter, utcnow

logger = logging.getLogger("oppdesk.monitor.stats")


def day_window(now):
    """Local start and end (23:59:59.999) of the day containing ``now``."""
    local = now.astimezone()
    start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    end = local.replace(hour=23, minute=59, second=59, microsecond=999000)
    return start, end


def stat_filters(now, stats_cfg=None):
    """Build the three opportunity filters behind the dashboard counters."""
    cfg = dict(DEFAULT_STATS)
    cfg.update(stats_cfg or {})
    start_of_day, end_of_day = day_window(now)
    total_open = OpportunityFilter(now=now, exclude_completed=True)
    due_today = OpportunityFilter(now=now, deadline_from=start_of_day,
                                  deadline_to=end_of_day)
    due_soon = OpportunityFilter(
        now=now, deadline_from=start_of_day,
        deadline_to=start_of_day + timedelta(days=cfg["due_soon_days"]),
    )
    wins_since = start_of_day - timedelta(days=cfg["recent_wins_days"])
    return total_open, due_today, due_soon, wins_since


def collect_dashboard_stats(repository, now=None, config=None):
    """Compute the four dashboard counters.

    Args:
        repository: OpportunityRepository.
        now: Reference instant (aware); defaults to the current time.
        config: Optional merged config dict (uses the ``stats`` section).

    Returns:
        DashboardStats. Never raises; on any failure all counters are 0.
    """
    now = now or utcnow()
    stats_cfg = (config or {}).get("stats", {})
    timeout = stats_cfg.get("query_timeout_seconds", DEFAULT_STATS["query_timeout_seconds"])
    try:
        total_open, due_today, due_soon, wins_since = stat_filters(now, stats_cfg)
        pool = ThreadPoolExecutor(max_workers=4)
        try:
            futures = (
                pool.submit(repository.count_opportunities, total_open),
                pool.submit(repository.count_opportunities, due_today),
                pool.submit(repository.count_opportunities, due_soon),
                pool.submit(repository.count_recent_wins, wins_since),
            )
            _, pending = wait(futures, timeout=timeout)
            if pending:
                raise TimeoutError(
                    f"{len(pending)} of 4 stats queries exceeded {timeout}s")
            counts = [f.result() for f in futures]
        finally:
            # a hung query is abandoned, not joined
            pool.shutdown(wait=False, cancel_futures=True)
    except Exception:
        logger.exception("Dashboard stats query failed; reporting zeros")
        return DashboardStats()
    return DashboardStats(
        total_open=counts[0],
        due_today=counts[1],
        due_soon=counts[2],
        recent_wins=counts[3],
    )
