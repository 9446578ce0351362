"""In-process publish/subscribe for attestation events delivered by the outbox worker."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List

from attestkit.core.events.event_models import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]


class EventBus:
    def __init__(self) -> None:
        self._handlers: Dict[str, List[EventHandler]] = {}

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Attach ``handler``; subscribing the same handler twice is a no-op."""
        handlers = self._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def handlers_for(self, event_type: str) -> List[EventHandler]:
        return list(self._handlers.get(event_type, []))

    def publish(self, event: DomainEvent) -> int:
        """Call every handler for the event type in subscription order.

        A failing handler stops delivery and the error propagates, so the
        outbox keeps the message for another attempt. Returns the number of
        handlers called.
        """
        handlers = self.handlers_for(event.event_type)
        if not handlers:
            logger.debug("No subscribers for %s (event %s)", event.event_type, event.id)
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Subscriber %r failed on %s (event %s)", handler, event.event_type, event.id)
                raise
        return len(handlers)


event_bus = EventBus()
