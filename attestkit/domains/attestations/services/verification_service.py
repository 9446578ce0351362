"""Signed-message verification protocol.

One pass per inbound message. Steps 1-7 only read; the issuance lease,
issuance call and ``finalize`` in step 8 are the only writes, and a failure at
any earlier step returns a reply without touching the order.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from attestkit.core.crypto.signed_message import (
    Ed25519SignedMessageVerifier,
    SignatureError,
    SignedMessageFormatError,
    decode_signed_message,
    extract_signed_message,
)
from attestkit.core.utils.validation import is_valid_address
from attestkit.domains.attestations import replies
from attestkit.domains.attestations.errors import (
    AlreadyAttestedError,
    AttestationError,
    InvalidDataError,
    InvalidFormatError,
    MismatchAddressError,
    MismatchDataError,
    OrderNotFoundError,
    ValidationFailedError,
)
from attestkit.domains.attestations.models.attestation_models import STATUS_ATTESTED, AttestationOrder
from attestkit.domains.attestations.services.issuance_client import Issuer
from attestkit.domains.attestations.services.lifecycle_service import DEFAULT_LEASE_SECONDS, LifecycleService
from attestkit.domains.attestations.services.order_store import (
    OrderFilter,
    canonicalize_data,
    normalize_provider,
)

logger = logging.getLogger(__name__)

OWNERSHIP_PHRASE = "I own the address:"
RESERVED_KEYS = ("message", "provider", "address")

_REPLY_BY_CODE = {
    InvalidFormatError.code: replies.invalid_format,
    InvalidDataError.code: replies.invalid_format,
    ValidationFailedError.code: replies.validation_failed,
    MismatchAddressError.code: replies.mismatch_address,
    MismatchDataError.code: replies.mismatch_data,
    OrderNotFoundError.code: replies.order_not_found,
}


@dataclass
class Claim:
    signer: str
    address: str
    provider: Optional[str]
    data: Dict[str, str]


class VerificationService:
    def __init__(
        self,
        lifecycle: LifecycleService,
        issuer: Issuer,
        verifier=None,
        provider: Optional[str] = None,
        lease_seconds: int = DEFAULT_LEASE_SECONDS,
    ) -> None:
        self.lifecycle = lifecycle
        self.store = lifecycle.store
        self.issuer = issuer
        self.verifier = verifier or Ed25519SignedMessageVerifier()
        self.provider = normalize_provider(provider)
        self.lease_seconds = lease_seconds

    def verify(self, device_address: str, text: str) -> replies.Reply:
        try:
            claim = self.authenticate(text)
            order = self.resolve_order(claim)
        except AlreadyAttestedError as exc:
            return replies.already_attested(self.provider, exc.context.get("wallet_address"), exc.context.get("unit"))
        except AttestationError as exc:
            logger.info("Rejected signed message from %s: %s (%s)", device_address, exc.code, exc.message)
            return _REPLY_BY_CODE.get(exc.code, replies.generic_error)()
        return self.attest(order, claim, device_address)

    def authenticate(self, text: str) -> Claim:
        """Steps 1-5: extract, decode, verify the signature, parse and match the claim."""
        encoded = extract_signed_message(text)
        if not encoded:
            raise InvalidFormatError("No signed message in text")
        try:
            envelope = decode_signed_message(encoded)
        except SignedMessageFormatError as exc:
            raise InvalidFormatError(str(exc)) from exc

        try:
            self.verifier.verify(envelope)
        except SignatureError as exc:
            raise ValidationFailedError(str(exc)) from exc
        authors = envelope.get("authors") or []
        if not authors or not authors[0].get("address"):
            raise ValidationFailedError("Signed message has no author")
        signer = authors[0]["address"]

        claimed, provider, data = self._parse_payload(envelope["signed_message"])
        if claimed != signer:
            raise MismatchAddressError("Claimed address is not the signer", claimed=claimed, signer=signer)
        return Claim(signer=signer, address=claimed, provider=provider, data=data)

    def _parse_payload(self, signed_message: str):
        try:
            payload = json.loads(signed_message.strip())
        except ValueError as exc:
            raise InvalidFormatError("Signed payload is not JSON") from exc
        if not isinstance(payload, dict):
            raise InvalidFormatError("Signed payload must be an object")

        message = payload.get("message")
        claimed: Any = payload.get("address")
        if isinstance(message, str) and OWNERSHIP_PHRASE in message:
            claimed = message.split(OWNERSHIP_PHRASE, 1)[1].strip()
        if not is_valid_address(claimed):
            raise InvalidFormatError("Claimed address is missing or invalid")

        declared = payload.get("provider", self.provider)
        try:
            provider = normalize_provider(declared)
        except InvalidDataError as exc:
            raise InvalidFormatError("Invalid provider in payload") from exc
        data = canonicalize_data({k: v for k, v in payload.items() if k not in RESERVED_KEYS})
        return claimed, provider, data

    def resolve_order(self, claim: Claim) -> AttestationOrder:
        """Steps 6-7: find the order and check it against the claim."""
        lookup = OrderFilter(provider=self.provider, data=claim.data, strict_provider=True)
        order = self.store.find_order(replace(lookup, exclude_attested=True))
        if order is None:
            attested = self.store.find_order(replace(lookup, status=STATUS_ATTESTED))
            if attested is not None:
                raise AlreadyAttestedError(
                    order_id=attested.id, unit=attested.unit, wallet_address=attested.wallet_address
                )
            # Fall back to the open order already bound to the signer.
            order = self.store.find_order(
                replace(lookup, data=None, address=claim.address, exclude_attested=True)
            )
            if order is None:
                raise OrderNotFoundError("Cannot find order")

        if order.data != claim.data or claim.provider != order.provider:
            raise MismatchDataError("Signed data does not match order", order_id=order.id)
        if order.wallet_address and order.wallet_address != claim.address:
            raise MismatchAddressError("Order is bound to another address", order_id=order.id)
        return order

    def attest(self, order: AttestationOrder, claim: Claim, device_address: str) -> replies.Reply:
        """Step 8: issue under a lease, then finalize."""
        lease_id = self.lifecycle.claim_issuance(order.id, self.lease_seconds)
        if lease_id is None:
            current = self.lifecycle.reload(order.id)
            if current is not None and current.status == STATUS_ATTESTED:
                return replies.already_attested(current.provider, current.wallet_address, current.unit)
            logger.info("Issuance for order %s already in progress", order.id)
            return replies.generic_error()

        try:
            unit = self.issuer.issue(order.provider, claim.address, claim.data)
        except Exception:
            logger.exception("Issuance failed for order %s", order.id)
            self.lifecycle.release_issuance(order.id, lease_id)
            return replies.generic_error()

        try:
            finalized = self.lifecycle.finalize(
                OrderFilter(order_id=order.id), claim.address, unit, device_address=device_address
            )
        except AlreadyAttestedError as exc:
            return replies.already_attested(order.provider, claim.address, exc.context.get("unit"))
        except AttestationError:
            logger.exception("Could not finalize order %s after issuing unit %s", order.id, unit)
            self.lifecycle.release_issuance(order.id, lease_id)
            return replies.generic_error()
        return replies.attested(finalized.unit)
