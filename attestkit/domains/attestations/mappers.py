"""DTO mappers for attestation orders."""

from __future__ import annotations

from attestkit.domains.attestations.models.attestation_models import AttestationOrder


def map_order(order: AttestationOrder) -> dict:
    return {
        "id": order.id,
        "provider": order.provider,
        "data": order.data,
        "status": order.status,
        "wallet_address": order.wallet_address,
        "device_address": order.device_address,
        "unit": order.unit,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
        "attested_at": order.attested_at.isoformat() if order.attested_at else None,
    }
