"""Port interface for the audit / notification sink."""

from abc import ABC, abstractmethod

from lead_router.domain.entities.events import DomainEvent


class EventSink(ABC):
    @abstractmethod
    async def publish(self, event: DomainEvent) -> None:
        """Deliver an event. Implementations must not raise on delivery failure."""
        ...
