"""Outbox worker: delivers staged attestation events to subscribers."""

from attestkit.platform.worker.config import DispatchConfig
from attestkit.platform.worker.dispatcher import run_dispatcher

__all__ = ["DispatchConfig", "run_dispatcher"]
