"""Tests for the in-memory pairing session store."""

import threading
from datetime import datetime, timedelta

import pytest

pytestmark = pytest.mark.unit

from attestkit.core.pairing.session_store import SESSION_ID_LENGTH, PairingSessionStore

ADDR = "A" * 32


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return PairingSessionStore(ttl_seconds=60, clock=clock)


def test_get_or_create_reuses_live_session(store):
    first = store.get_or_create("device-1")
    second = store.get_or_create("device-1")
    assert first is second
    assert len(first.id) == SESSION_ID_LENGTH
    assert first.id.isalnum()


def test_replace_starts_a_fresh_session(store):
    first = store.get_or_create("device-1")
    store.set_address("device-1", ADDR)
    fresh = store.get_or_create("device-1", replace=True)
    assert fresh is not first
    assert fresh.address is None


def test_set_and_clear_address(store):
    store.get_or_create("device-1")
    store.set_address("device-1", ADDR)
    assert store.get_address("device-1") == ADDR
    store.clear_address("device-1")
    assert store.get_address("device-1") is None


def test_set_address_creates_missing_session(store):
    session = store.set_address("device-2", ADDR)
    assert session.address == ADDR
    assert store.get("device-2") is session


def test_clear_address_on_missing_session_is_noop(store):
    store.clear_address("nobody")
    assert len(store) == 0


def test_idle_session_expires_on_read(store, clock):
    store.set_address("device-1", ADDR)
    clock.advance(61)
    assert store.get("device-1") is None
    assert store.get_address("device-1") is None
    assert len(store) == 0


def test_activity_extends_session(store, clock):
    store.get_or_create("device-1")
    clock.advance(50)
    store.get_or_create("device-1")
    clock.advance(50)
    assert store.get("device-1") is not None


def test_sweep_removes_only_expired(store, clock):
    store.get_or_create("old")
    clock.advance(45)
    store.get_or_create("new")
    clock.advance(30)
    assert store.sweep() == 1
    assert store.get("old") is None
    assert store.get("new") is not None


def test_delete(store):
    store.get_or_create("device-1")
    store.delete("device-1")
    assert store.get("device-1") is None


def test_concurrent_first_contact_shares_one_session():
    store = PairingSessionStore()
    barrier = threading.Barrier(8)
    seen = []

    def _first_message():
        barrier.wait()
        seen.append(store.get_or_create("device-1").id)

    threads = [threading.Thread(target=_first_message) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(set(seen)) == 1
