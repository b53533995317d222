"""Port interface for the lead store (read projection + activity history)."""

from abc import ABC, abstractmethod
from datetime import datetime

from lead_router.domain.entities.lead import Lead


class LeadStore(ABC):
    @abstractmethod
    async def get_by_id(self, lead_id: str) -> Lead | None:
        ...

    @abstractmethod
    async def existing_ids(self, lead_ids: list[str]) -> set[str]:
        ...

    @abstractmethod
    async def record_activity(self, lead_id: str, occurred_at: datetime) -> None:
        ...

    @abstractmethod
    async def last_activity_at(self, lead_id: str) -> datetime | None:
        ...
