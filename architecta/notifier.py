"""Webhook notifications."""

from __future__ import annotations

import logging

import httpx

from .events import Event

logger = logging.getLogger("architecta.notifier")


class Notifier:
    """Forward selected workflow events to a webhook.

    Subscribe ``notify`` to an EventBus. Delivery failures are logged and
    never reach the workflow.
    """

    def __init__(self, webhook_url: str = "", events: list[str] | None = None):
        self.webhook_url = webhook_url
        self.events = events or []
        self.client = httpx.AsyncClient()

    async def notify(self, event: Event) -> None:
        if not self.webhook_url or event.type.value not in self.events:
            return

        payload = {
            "event": event.type.value,
            "workflow_id": event.workflow_id,
            "data": event.data,
            "created_at": event.created_at,
        }

        try:
            resp = await self.client.post(self.webhook_url, json=payload, timeout=10)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Webhook delivery of %s for %s failed: %s",
                           event.type.value, event.workflow_id, exc)

    async def close(self) -> None:
        await self.client.aclose()
