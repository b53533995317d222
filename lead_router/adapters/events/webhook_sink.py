"""Webhook notification sink — posts events as JSON to an HTTP endpoint."""

from __future__ import annotations

import logging

import httpx

from lead_router.application.ports.event_sink import EventSink
from lead_router.config import settings
from lead_router.domain.entities.events import DomainEvent

logger = logging.getLogger(__name__)

# Events that drive UI notification badges
NOTIFIED_EVENTS = frozenset({"AssignmentDecided", "LeadRotated", "RotationExhausted"})


class WebhookEventSink(EventSink):
    def __init__(
        self,
        url: str | None = None,
        timeout_seconds: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._url = url if url is not None else settings.notification_webhook_url
        self._timeout = timeout_seconds or settings.notification_timeout_seconds
        self._client = client

    async def publish(self, event: DomainEvent) -> None:
        if not self._url:
            return
        if event.name not in NOTIFIED_EVENTS:
            return
        # Unassigned decisions do not notify anyone
        if event.name == "AssignmentDecided" and not getattr(event, "assignee_id", None):
            return

        try:
            if self._client is not None:
                response = await self._client.post(self._url, json=event.to_payload(), timeout=self._timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(self._url, json=event.to_payload(), timeout=self._timeout)
            response.raise_for_status()
            logger.debug("Notified %s for lead %s", event.name, event.lead_id)
        except httpx.HTTPError:
            logger.exception("Notification webhook failed for %s (lead %s)", event.name, event.lead_id)
