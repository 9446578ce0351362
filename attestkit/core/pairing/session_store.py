"""Per-endpoint pairing sessions held in process memory."""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

SESSION_ID_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase
SESSION_ID_LENGTH = 5
DEFAULT_TTL_SECONDS = 3600


@dataclass
class PairingSession:
    id: str
    device_address: str
    created_at: datetime
    last_seen_at: datetime
    address: Optional[str] = None


class PairingSessionStore:
    """Sessions keyed by device address, evicted after ``ttl`` of inactivity.

    Expiry is lazy on every read; ``sweep`` purges in bulk.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._lock = Lock()
        self._sessions: Dict[str, PairingSession] = {}

    def _new_id(self) -> str:
        return "".join(secrets.choice(SESSION_ID_ALPHABET) for _ in range(SESSION_ID_LENGTH))

    def _is_expired(self, session: PairingSession, now: datetime) -> bool:
        return now - session.last_seen_at > self.ttl

    def _live(self, device_address: str, now: datetime) -> Optional[PairingSession]:
        session = self._sessions.get(device_address)
        if session is not None and self._is_expired(session, now):
            del self._sessions[device_address]
            logger.debug("Pairing session for %s expired", device_address)
            return None
        return session

    def _create(self, device_address: str, now: datetime) -> PairingSession:
        session = PairingSession(
            id=self._new_id(),
            device_address=device_address,
            created_at=now,
            last_seen_at=now,
        )
        self._sessions[device_address] = session
        return session

    def get_or_create(self, device_address: str, replace: bool = False) -> PairingSession:
        """Return the live session for an endpoint, creating it atomically."""
        now = self._clock()
        with self._lock:
            session = self._live(device_address, now)
            if session is None or replace:
                return self._create(device_address, now)
            session.last_seen_at = now
            return session

    def get(self, device_address: str) -> Optional[PairingSession]:
        with self._lock:
            return self._live(device_address, self._clock())

    def set_address(self, device_address: str, address: str) -> PairingSession:
        now = self._clock()
        with self._lock:
            session = self._live(device_address, now) or self._create(device_address, now)
            session.address = address
            session.last_seen_at = now
            return session

    def clear_address(self, device_address: str) -> None:
        with self._lock:
            session = self._live(device_address, self._clock())
            if session is None:
                logger.warning("Session not found for device address: %s", device_address)
                return
            session.address = None

    def get_address(self, device_address: str) -> Optional[str]:
        session = self.get(device_address)
        return session.address if session else None

    def delete(self, device_address: str) -> None:
        with self._lock:
            self._sessions.pop(device_address, None)

    def sweep(self) -> int:
        """Drop every expired session; returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, s in self._sessions.items() if self._is_expired(s, now)]
            for key in expired:
                del self._sessions[key]
        if expired:
            logger.info("Swept %s expired pairing sessions", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
