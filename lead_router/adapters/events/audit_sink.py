"""Audit sink — persists every engine event as an audit entry."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lead_router.adapters.persistence.models import AuditEntryModel
from lead_router.application.ports.event_sink import EventSink
from lead_router.domain.entities.events import DomainEvent

logger = logging.getLogger(__name__)


class SqlAuditSink(EventSink):
    """Writes events in their own session so a failed audit write never
    touches the caller's transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def publish(self, event: DomainEvent) -> None:
        try:
            async with self._session_factory() as session:
                session.add(
                    AuditEntryModel(
                        event_type=event.name,
                        lead_id=event.lead_id,
                        payload=event.to_payload(),
                        degraded=event.degraded,
                    )
                )
                await session.commit()
        except Exception:
            logger.exception("Failed to write audit entry %s for lead %s", event.name, event.lead_id)


class LoggingEventSink(EventSink):
    async def publish(self, event: DomainEvent) -> None:
        level = logging.WARNING if event.degraded else logging.INFO
        logger.log(level, "Event %s: %s", event.name, event.to_payload())


class CompositeEventSink(EventSink):
    """Fan out to several sinks; one failing sink does not stop the others."""

    def __init__(self, *sinks: EventSink):
        self._sinks = list(sinks)

    async def publish(self, event: DomainEvent) -> None:
        for sink in self._sinks:
            try:
                await sink.publish(event)
            except Exception:
                logger.exception("Event sink %s failed for %s", type(sink).__name__, event.name)
