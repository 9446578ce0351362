"""Attestation domain models."""

from attestkit.domains.attestations.models.attestation_models import (
    ORDER_STATUSES,
    STATUS_ADDRESSED,
    STATUS_ATTESTED,
    STATUS_PENDING,
    AttestationOrder,
    AttestationOrderAttribute,
)

__all__ = [
    "AttestationOrder",
    "AttestationOrderAttribute",
    "ORDER_STATUSES",
    "STATUS_PENDING",
    "STATUS_ADDRESSED",
    "STATUS_ATTESTED",
]
