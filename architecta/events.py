"""Typed progress events and an in-process event bus."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from .models import utcnow

logger = logging.getLogger("architecta.events")


class EventType(str, Enum):
    REASONING_UPDATE = "reasoning_update"
    RAW_OUTPUT_CHUNK = "raw_output_chunk"
    QUESTIONS_POSTED = "questions_posted"
    TEMPLATE_PROPOSED = "template_proposed"
    PLAN_READY = "plan_ready"
    REVIEW_READY = "review_ready"
    PHASE_CHANGED = "phase_changed"
    ERROR = "error"
    OPERATION_COMPLETE = "operation_complete"


@dataclass
class Event:
    type: EventType
    workflow_id: str
    data: dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utcnow)


Subscriber = Callable[[Event], Awaitable[None]]
Emit = Callable[[EventType, dict[str, Any]], Awaitable[None]]


class EventBus:
    """Fan events out to subscribers, one at a time and in emission order.

    A subscriber registered with a ``workflow_id`` only sees events for that
    workflow. Subscriber errors propagate to the emitter.
    """

    def __init__(self) -> None:
        self._subscribers: list[tuple[Subscriber, str | None]] = []

    def subscribe(
        self,
        callback: Subscriber,
        workflow_id: str | None = None,
    ) -> Callable[[], None]:
        entry = (callback, workflow_id)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    async def publish(self, event: Event) -> None:
        logger.debug("%s %s", event.workflow_id, event.type.value)
        for callback, workflow_id in list(self._subscribers):
            if workflow_id is None or workflow_id == event.workflow_id:
                await callback(event)

    def emitter(self, workflow_id: str) -> Emit:
        """Bind ``publish`` to one workflow, for components that emit by type."""

        async def emit(event_type: EventType, data: dict[str, Any]) -> None:
            await self.publish(Event(type=event_type, workflow_id=workflow_id, data=data))

        return emit
