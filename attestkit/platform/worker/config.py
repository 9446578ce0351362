"""Dispatcher settings, read from the Flask config with environment fallbacks."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

_DEFAULTS = {
    "OUTBOX_BATCH_SIZE": 50,
    "OUTBOX_POLL_INTERVAL": 5.0,
    "OUTBOX_MAX_ATTEMPTS": 5,
    "OUTBOX_BACKOFF_SECONDS": 5.0,
    "OUTBOX_BACKOFF_MULTIPLIER": 2.0,
    "OUTBOX_MAX_BACKOFF_SECONDS": 900.0,
}


@dataclass(frozen=True)
class DispatchConfig:
    batch_size: int
    poll_interval: float
    max_attempts: int
    backoff_seconds: float
    backoff_multiplier: float
    max_backoff_seconds: float = 900.0

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.poll_interval < 0 or self.backoff_seconds < 0:
            raise ValueError("intervals must not be negative")

    def backoff_for(self, attempts: int) -> float:
        """Delay before attempt ``attempts + 1``, capped at ``max_backoff_seconds``."""
        delay = self.backoff_seconds * self.backoff_multiplier ** max(attempts - 1, 0)
        return min(delay, self.max_backoff_seconds)

    @classmethod
    def from_mapping(cls, values: Optional[Mapping[str, Any]] = None) -> "DispatchConfig":
        values = values or {}

        def _get(key: str, cast):
            raw = values.get(key)
            if raw is None or raw == "":
                raw = os.environ.get(key, _DEFAULTS[key])
            return cast(raw)

        return cls(
            batch_size=_get("OUTBOX_BATCH_SIZE", int),
            poll_interval=_get("OUTBOX_POLL_INTERVAL", float),
            max_attempts=_get("OUTBOX_MAX_ATTEMPTS", int),
            backoff_seconds=_get("OUTBOX_BACKOFF_SECONDS", float),
            backoff_multiplier=_get("OUTBOX_BACKOFF_MULTIPLIER", float),
            max_backoff_seconds=_get("OUTBOX_MAX_BACKOFF_SECONDS", float),
        )

    @classmethod
    def from_env(cls) -> "DispatchConfig":
        return cls.from_mapping(os.environ)
