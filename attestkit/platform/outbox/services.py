"""Outbox staging helpers and bus adapter."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from attestkit.core.events.event_bus import event_bus
from attestkit.core.events.event_models import DomainEvent
from attestkit.extensions import db
from attestkit.platform.outbox.models import OutboxMessage

STATUS_PENDING = "pending"
STATUS_SENDING = "sending"
STATUS_SENT = "sent"
STATUS_RETRY = "retry"
STATUS_FAILED = "failed"


class EventBusAdapter:
    """Publishes outbox rows to an `EventBus` as `DomainEvent`s.

    Each payload gains an ``external_id`` (``<event_type>:<message id>``) that stays
    stable across redeliveries, and the ``order_id`` of the aggregate when the
    staging code left it out. Repeat deliveries are left to subscribers, which
    dedupe on ``external_id``.
    """

    def __init__(self, bus=None) -> None:
        self.bus = bus or event_bus

    def dispatch(self, message: OutboxMessage) -> None:
        payload = dict(message.payload or {})
        payload.setdefault("external_id", f"{message.event_type}:{message.id}")
        payload.setdefault("event_id", message.id)
        if message.aggregate_id is not None:
            payload.setdefault("order_id", message.aggregate_id)

        event = DomainEvent(
            event_type=message.event_type,
            payload=payload,
            id=message.id,
            created_at=message.created_at or datetime.utcnow(),
        )
        self.bus.publish(event)


def enqueue(
    event_name: str,
    payload: dict,
    aggregate_id: Optional[int] = None,
    available_at: Optional[datetime] = None,
) -> OutboxMessage:
    """Stage an event in the current session; it is sent only if the caller commits."""
    message = OutboxMessage(
        event_type=event_name,
        payload=payload or {},
        aggregate_id=aggregate_id,
        available_at=available_at or datetime.utcnow(),
        status=STATUS_PENDING,
        attempts=0,
    )
    db.session.add(message)
    return message
