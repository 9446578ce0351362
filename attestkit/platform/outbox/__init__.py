"""Transactional outbox for attestation events."""

from attestkit.platform.outbox.models import OutboxMessage
from attestkit.platform.outbox.services import (
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_SENT,
    EventBusAdapter,
    enqueue,
)

__all__ = [
    "OutboxMessage",
    "EventBusAdapter",
    "enqueue",
    "STATUS_PENDING",
    "STATUS_SENT",
    "STATUS_FAILED",
]
