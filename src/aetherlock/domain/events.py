"""Typed domain events and the in-process bus that carries them.

The lifecycle manager publishes one event per accepted transition after the
transition has been persisted. Subscribers (the realtime hub) react to
events; they never feed back into the manager.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from aetherlock.domain.enums import DomainEventType
from aetherlock.domain.models import utcnow
from aetherlock.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class DomainEvent:
    """Something that happened to an escrow.

    Party addresses travel with the event so subscribers can route personal
    notifications without reading the escrow store.
    """

    type: DomainEventType
    escrow_id: str
    payload: dict[str, Any]
    client_address: str
    freelancer_address: str | None = None
    occurred_at: datetime = field(default_factory=utcnow)


EventHandler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    """Sequential async publish/subscribe.

    Handlers run in subscription order. A failing handler is logged and does
    not stop the remaining handlers; the transition that produced the event
    is already committed.
    """

    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    async def publish(self, event: DomainEvent) -> None:
        logger.debug("events.published", type=event.type.value, escrow_id=event.escrow_id)
        for handler in list(self._handlers):
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    "events.handler_failed",
                    type=event.type.value,
                    escrow_id=event.escrow_id,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                )
