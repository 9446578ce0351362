"""Outbox dispatcher for attestation events.

Delivery is at-least-once: a message is marked ``sent`` only after ``send_fn``
returns, so a crash between delivery and commit re-delivers it. Subscribers
dedupe on the ``external_id`` carried in every payload.

Events for one order are delivered in the order they were staged. A message is
held back while an older message for the same ``aggregate_id`` is still
waiting or in flight; a message that has exhausted its attempts no longer
holds anything back.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import and_, exists
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import aliased

from attestkit.extensions import db
from attestkit.platform.outbox.models import OutboxMessage
from attestkit.platform.outbox.services import (
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_RETRY,
    STATUS_SENDING,
    STATUS_SENT,
    EventBusAdapter,
)
from attestkit.platform.worker.config import DispatchConfig

logger = logging.getLogger(__name__)

SendFn = Callable[[OutboxMessage], None]

_UNDELIVERED = (STATUS_PENDING, STATUS_RETRY, STATUS_SENDING)


def _older_undelivered_for_same_order():
    earlier = aliased(OutboxMessage)
    return exists().where(
        and_(
            OutboxMessage.aggregate_id.is_not(None),
            earlier.aggregate_id == OutboxMessage.aggregate_id,
            earlier.id < OutboxMessage.id,
            earlier.status.in_(_UNDELIVERED),
        )
    )


def claim_ready_messages(
    session,
    batch_size: int,
    now: Optional[datetime] = None,
) -> List[OutboxMessage]:
    """Reserve up to ``batch_size`` deliverable messages for this worker.

    Rows are locked with SKIP LOCKED so concurrent workers never claim the same
    message. Claimed rows move to ``sending`` with their attempt count bumped;
    the caller commits.
    """
    now = now or datetime.utcnow()
    messages = (
        session.query(OutboxMessage)
        .filter(
            OutboxMessage.status.in_((STATUS_PENDING, STATUS_RETRY)),
            OutboxMessage.available_at <= now,
            ~_older_undelivered_for_same_order(),
        )
        .order_by(OutboxMessage.available_at, OutboxMessage.id)
        .with_for_update(skip_locked=True)
        .limit(batch_size)
        .all()
    )
    for message in messages:
        message.status = STATUS_SENDING
        message.attempts = (message.attempts or 0) + 1
    return messages


def _record_failure(message: OutboxMessage, exc: Exception, config: DispatchConfig) -> None:
    attempts = message.attempts or 1
    retry_at = datetime.utcnow() + timedelta(seconds=config.backoff_for(attempts))
    message.last_error = str(exc)
    message.available_at = max(message.available_at or retry_at, retry_at)

    if attempts >= config.max_attempts:
        message.status = STATUS_FAILED
        logger.error(
            "Giving up on %s for order %s (message %s) after %s attempts: %s",
            message.event_type,
            message.aggregate_id,
            message.id,
            attempts,
            exc,
        )
    else:
        message.status = STATUS_RETRY
        logger.warning(
            "Delivery of %s for order %s (message %s) failed, retrying at %s: %s",
            message.event_type,
            message.aggregate_id,
            message.id,
            message.available_at.isoformat(),
            exc,
        )


def process_ready_batch(send_fn: SendFn, config: DispatchConfig, session=None) -> int:
    """Claim one batch, deliver it, and record the outcome of each message.

    Returns the number of messages handled, delivered or not. Database errors
    roll the batch back and report zero; anything else propagates.
    """
    session = session or db.session
    try:
        messages = claim_ready_messages(session, batch_size=config.batch_size)
        if not messages:
            session.commit()
            return 0

        handled = 0
        for message in messages:
            if message.status == STATUS_SENT:
                continue
            try:
                send_fn(message)
            except Exception as exc:
                _record_failure(message, exc, config)
            else:
                message.status = STATUS_SENT
                message.last_error = None
                logger.debug("Delivered %s for order %s", message.event_type, message.aggregate_id)
            handled += 1

        session.commit()
        return handled
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Database error while dispatching attestation events")
        return 0


def run_dispatcher(
    config: Optional[DispatchConfig] = None,
    send_fn: Optional[SendFn] = None,
    once: bool = False,
) -> int:
    """Deliver staged events until interrupted, or for one batch with ``once``.

    Without ``send_fn`` messages are published to the in-process event bus.
    Returns the total number of messages handled.
    """
    cfg = config or DispatchConfig.from_env()
    deliver = send_fn or EventBusAdapter().dispatch

    logger.info(
        "Outbox dispatcher started (batch_size=%s, poll=%ss, max_attempts=%s, backoff=%ss x%s up to %ss)",
        cfg.batch_size,
        cfg.poll_interval,
        cfg.max_attempts,
        cfg.backoff_seconds,
        cfg.backoff_multiplier,
        cfg.max_backoff_seconds,
    )

    total = 0
    try:
        while True:
            handled = process_ready_batch(deliver, cfg)
            total += handled
            if once:
                break
            # A full batch usually means more is waiting.
            time.sleep(0 if handled >= cfg.batch_size else cfg.poll_interval)
    except KeyboardInterrupt:
        logger.info("Outbox dispatcher stopped")
    logger.info("Outbox dispatcher handled %s message(s)", total)
    return total
