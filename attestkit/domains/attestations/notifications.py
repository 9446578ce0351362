"""Bus subscribers for attestation notifications."""

from __future__ import annotations

import logging
from collections import OrderedDict

from attestkit.core.events.event_bus import EventBus, event_bus
from attestkit.core.events.event_models import DomainEvent
from attestkit.domains.attestations.events import ADDRESS_BOUND, ORDER_ATTESTED

logger = logging.getLogger(__name__)

DEFAULT_DEDUPE_LIMIT = 10_000


class AttestationNotifier:
    """Logs bound/attested notifications once per outbox message.

    Redeliveries are recognised by ``external_id``. Only the most recent
    ``dedupe_limit`` ids are remembered.
    """

    def __init__(self, dedupe_limit: int = DEFAULT_DEDUPE_LIMIT) -> None:
        self.dedupe_limit = dedupe_limit
        self._seen: "OrderedDict[str, None]" = OrderedDict()

    def register_subscriptions(self, bus: EventBus = event_bus) -> None:
        bus.subscribe(ADDRESS_BOUND, self.on_address_bound)
        bus.subscribe(ORDER_ATTESTED, self.on_attested)

    def _first_delivery(self, event: DomainEvent) -> bool:
        external_id = event.payload.get("external_id") or f"{event.event_type}:{event.id}"
        if external_id in self._seen:
            self._seen.move_to_end(external_id)
            return False
        self._seen[external_id] = None
        while len(self._seen) > self.dedupe_limit:
            self._seen.popitem(last=False)
        return True

    def on_address_bound(self, event: DomainEvent) -> None:
        if not self._first_delivery(event):
            return
        payload = event.payload
        logger.info("Address %s bound for device %s", payload.get("address"), payload.get("device_address"))

    def on_attested(self, event: DomainEvent) -> None:
        if not self._first_delivery(event):
            return
        payload = event.payload
        logger.info(
            "Attested %s for provider %s with unit %s (device %s)",
            payload.get("address"),
            payload.get("provider"),
            payload.get("unit"),
            payload.get("device_address"),
        )


attestation_notifier = AttestationNotifier()
