from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import Query

pytestmark = pytest.mark.integration

from attestkit.core.events.event_bus import EventBus
from attestkit.core.events.event_models import DomainEvent
from attestkit.domains.attestations.events import ORDER_ATTESTED
from attestkit.domains.attestations.services.lifecycle_service import LifecycleService
from attestkit.domains.attestations.services.order_store import OrderFilter
from attestkit.extensions import db
from attestkit.platform.outbox import EventBusAdapter, OutboxMessage, enqueue
from attestkit.platform.worker import dispatcher
from attestkit.platform.worker.config import DispatchConfig


def _config(**overrides) -> DispatchConfig:
    defaults = {
        "batch_size": 5,
        "poll_interval": 0,
        "max_attempts": 2,
        "backoff_seconds": 3,
        "backoff_multiplier": 2,
    }
    defaults.update(overrides)
    return DispatchConfig(**defaults)


def _enqueue(event_type: str = "test.event", available_at: datetime | None = None) -> OutboxMessage:
    msg = enqueue(
        event_type,
        {"hello": "world"},
        available_at=available_at or datetime.utcnow() - timedelta(seconds=1),
    )
    db.session.commit()
    return msg


def test_successful_dispatch_marks_sent_and_increments_attempts(app):
    msg = _enqueue()
    sent_ids: list[int] = []

    processed = dispatcher.process_ready_batch(lambda m: sent_ids.append(m.id), _config())

    db.session.refresh(msg)
    assert processed == 1
    assert sent_ids == [msg.id]
    assert msg.status == "sent"
    assert msg.attempts == 1
    assert msg.last_error is None


def test_future_messages_are_not_claimed(app):
    _enqueue(available_at=datetime.utcnow() + timedelta(hours=1))
    assert dispatcher.process_ready_batch(lambda m: None, _config()) == 0


def test_claim_ready_messages_uses_skip_locked_and_reserves_once(app, monkeypatch):
    first = _enqueue()
    second = _enqueue(event_type="another.event")

    skip_locked_flags: list[bool | None] = []
    original_with_for_update = Query.with_for_update

    def _wrapped_with_for_update(self, *args, **kwargs):
        skip_locked_flags.append(kwargs.get("skip_locked"))
        return original_with_for_update(self, *args, **kwargs)

    monkeypatch.setattr(Query, "with_for_update", _wrapped_with_for_update)

    claimed = dispatcher.claim_ready_messages(db.session, batch_size=1)
    db.session.commit()
    assert {m.id for m in claimed} == {first.id}
    assert claimed[0].status == "sending"

    claimed_second = dispatcher.claim_ready_messages(db.session, batch_size=2)
    db.session.commit()
    claimed_ids = {m.id for m in claimed_second}
    assert first.id not in claimed_ids
    assert second.id in claimed_ids
    assert True in skip_locked_flags


def test_failed_dispatch_applies_backoff_and_honors_max_attempts(app):
    msg = _enqueue()
    cfg = _config(max_attempts=2, backoff_seconds=4, backoff_multiplier=2)

    def _send_fail(_):
        raise RuntimeError("boom")

    start = datetime.utcnow()
    dispatcher.process_ready_batch(_send_fail, cfg)
    db.session.refresh(msg)
    assert msg.attempts == 1
    assert msg.status == "retry"
    assert msg.available_at >= start + timedelta(seconds=cfg.backoff_seconds)
    first_available = msg.available_at
    assert msg.last_error == "boom"

    msg.available_at = datetime.utcnow() - timedelta(seconds=1)
    db.session.commit()

    dispatcher.process_ready_batch(_send_fail, cfg)
    db.session.refresh(msg)
    assert msg.attempts == 2
    assert msg.status == "failed"
    assert msg.available_at >= first_available


def test_already_sent_message_is_not_dispatched_twice(app):
    msg = _enqueue()
    sent_ids: list[int] = []

    dispatcher.process_ready_batch(lambda m: sent_ids.append(m.id), _config())

    def _should_not_run(_):
        raise AssertionError("duplicate dispatch attempted")

    dispatcher.process_ready_batch(_should_not_run, _config())
    db.session.refresh(msg)
    assert sent_ids == [msg.id]
    assert msg.status == "sent"


def test_attested_event_reaches_bus_subscribers(app):
    """finalize stages the event; one dispatcher pass delivers it with an external id."""
    lifecycle = LifecycleService()
    order_id = lifecycle.store.create_order("default", {"username": "alice", "userId": "42"})
    lifecycle.finalize(OrderFilter(order_id=order_id), "A" * 32, "unit0001", device_address="device-1")

    bus = EventBus()
    received = []
    bus.subscribe(ORDER_ATTESTED, received.append)

    processed = dispatcher.run_dispatcher(_config(), send_fn=EventBusAdapter(bus).dispatch, once=True)

    assert processed == 1
    assert len(received) == 1
    payload = received[0].payload
    assert payload["unit"] == "unit0001"
    assert payload["device_address"] == "device-1"
    assert payload["data"] == {"userId": "42", "username": "alice"}
    assert payload["external_id"] == f"{ORDER_ATTESTED}:{received[0].id}"


def test_later_event_for_same_order_waits_for_earlier_one(app):
    earlier = enqueue("order.address_bound", {"n": 1}, aggregate_id=7,
                      available_at=datetime.utcnow() + timedelta(minutes=5))
    later = enqueue("order.attested", {"n": 2}, aggregate_id=7,
                    available_at=datetime.utcnow() - timedelta(seconds=1))
    unrelated = enqueue("order.attested", {"n": 3}, aggregate_id=8,
                        available_at=datetime.utcnow() - timedelta(seconds=1))
    db.session.commit()

    claimed = dispatcher.claim_ready_messages(db.session, batch_size=10)
    db.session.commit()

    assert [m.id for m in claimed] == [unrelated.id]
    db.session.refresh(later)
    assert later.status == "pending"
    assert earlier.status == "pending"


def test_failed_earlier_event_stops_holding_back_later_ones(app):
    earlier = enqueue("order.address_bound", {}, aggregate_id=9,
                      available_at=datetime.utcnow() - timedelta(seconds=2))
    later = enqueue("order.attested", {}, aggregate_id=9,
                    available_at=datetime.utcnow() - timedelta(seconds=1))
    db.session.commit()

    def _fail_first(message):
        if message.id == earlier.id:
            raise RuntimeError("subscriber down")

    dispatcher.process_ready_batch(_fail_first, _config(max_attempts=1))
    db.session.refresh(earlier)
    db.session.refresh(later)
    assert earlier.status == "failed"
    assert later.status == "pending"

    dispatcher.process_ready_batch(_fail_first, _config(max_attempts=1))
    db.session.refresh(later)
    assert later.status == "sent"


def test_adapter_adds_order_id_and_failing_subscriber_is_retried(app):
    msg = enqueue("order.attested", {"unit": "u1"}, aggregate_id=42,
                  available_at=datetime.utcnow() - timedelta(seconds=1))
    db.session.commit()

    bus = EventBus()
    seen = []

    def _broken(event):
        seen.append(event.payload)
        raise RuntimeError("notifier down")

    bus.subscribe("order.attested", _broken)
    dispatcher.process_ready_batch(EventBusAdapter(bus).dispatch, _config())

    db.session.refresh(msg)
    assert msg.status == "retry"
    assert msg.last_error == "notifier down"
    assert seen[0]["order_id"] == 42
    assert seen[0]["external_id"] == f"order.attested:{msg.id}"


def test_backoff_is_capped():
    cfg = _config(backoff_seconds=10, backoff_multiplier=10, max_backoff_seconds=60)
    assert cfg.backoff_for(1) == 10
    assert cfg.backoff_for(2) == 60
    assert cfg.backoff_for(5) == 60


def test_config_from_mapping_and_validation(monkeypatch):
    monkeypatch.setenv("OUTBOX_POLL_INTERVAL", "1.5")
    cfg = DispatchConfig.from_mapping({"OUTBOX_BATCH_SIZE": 7, "OUTBOX_MAX_ATTEMPTS": "3"})
    assert cfg.batch_size == 7
    assert cfg.max_attempts == 3
    assert cfg.poll_interval == 1.5
    with pytest.raises(ValueError):
        _config(batch_size=0)


def test_bus_subscribe_is_idempotent():
    bus = EventBus()
    calls = []
    bus.subscribe("order.attested", calls.append)
    bus.subscribe("order.attested", calls.append)
    assert bus.publish(DomainEvent("order.attested", {"a": 1})) == 1
    assert len(calls) == 1
    assert bus.publish(DomainEvent("order.unknown")) == 0


def test_adapter_keeps_no_delivery_state_and_reuses_external_id(app):
    msg = _enqueue(event_type=ORDER_ATTESTED)
    bus = EventBus()
    received = []
    bus.subscribe(ORDER_ATTESTED, received.append)
    adapter = EventBusAdapter(bus)

    adapter.dispatch(msg)
    adapter.dispatch(msg)

    assert [event.payload["external_id"] for event in received] == [f"{ORDER_ATTESTED}:{msg.id}"] * 2
    assert not hasattr(adapter, "_delivered")
