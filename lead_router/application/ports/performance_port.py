"""Port interface for the performance aggregate."""

from abc import ABC, abstractmethod
from datetime import datetime

from lead_router.domain.policies.top_performer import PerformanceStats


class PerformanceAggregate(ABC):
    @abstractmethod
    async def get_stats(self, user_ids: list[str], since: datetime) -> dict[str, PerformanceStats]:
        """Closed-won since ``since`` and currently open leads per user."""
        ...
