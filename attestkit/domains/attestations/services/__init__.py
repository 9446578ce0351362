from flask import current_app

from attestkit.domains.attestations.services.issuance_client import (
    HttpIssuanceClient,
    IssuanceError,
    Issuer,
    issuer_from_config,
)
from attestkit.domains.attestations.services.lifecycle_service import LifecycleService
from attestkit.domains.attestations.services.message_router import MessageRouter
from attestkit.domains.attestations.services.order_store import (
    OrderFilter,
    OrderStore,
    canonicalize_data,
)
from attestkit.domains.attestations.services.verification_service import VerificationService


def order_store() -> OrderStore:
    return OrderStore(max_data_pairs=current_app.config.get("MAX_DATA_PAIRS"))


def lifecycle_service() -> LifecycleService:
    return LifecycleService(order_store())


def verification_service() -> VerificationService:
    config = current_app.config
    return VerificationService(
        lifecycle_service(),
        current_app.extensions["issuer"],
        verifier=current_app.extensions["signature_verifier"],
        provider=config.get("SERVICE_PROVIDER"),
        lease_seconds=int(config.get("ISSUANCE_LEASE_SECONDS", 120)),
    )


def message_router() -> MessageRouter:
    return MessageRouter(current_app.extensions["pairing_sessions"], verification_service())


__all__ = [
    "HttpIssuanceClient",
    "IssuanceError",
    "Issuer",
    "issuer_from_config",
    "LifecycleService",
    "MessageRouter",
    "OrderFilter",
    "OrderStore",
    "VerificationService",
    "canonicalize_data",
    "order_store",
    "lifecycle_service",
    "verification_service",
    "message_router",
]
