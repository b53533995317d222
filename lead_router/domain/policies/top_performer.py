"""TopPerformerPolicy — rank candidates by recent closed-won results."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from lead_router.domain.entities.sales_user import SalesUser


@dataclass(frozen=True)
class PerformanceStats:
    user_id: str
    closed_won: int = 0
    open_leads: int = 0


def _ranking_key(user: SalesUser, stats: PerformanceStats) -> tuple:
    created = user.created_at.timestamp() if user.created_at else float("inf")
    # Most closed-won, then fewest open leads, then oldest account, then id
    return (-stats.closed_won, stats.open_leads, created, user.id)


def pick_top_performer(
    candidates: list[SalesUser],
    stats: dict[str, PerformanceStats],
) -> SalesUser | None:
    """Return the best-ranked candidate; users without stats count as zero."""
    if not candidates:
        return None
    return min(
        candidates,
        key=lambda u: _ranking_key(u, stats.get(u.id, PerformanceStats(user_id=u.id))),
    )


def rank_window_start(now: datetime, window_days: int) -> datetime:
    return now - timedelta(days=window_days)
