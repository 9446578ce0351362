"""Lifecycle transitions for attestation orders.

Every transition is a single conditional UPDATE guarded by the current status
(and address or lease where relevant). The affected row count decides who won;
the caller never writes on the strength of an earlier read.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_, update

from attestkit.core.utils.validation import is_valid_address, is_valid_unit
from attestkit.domains.attestations.errors import (
    AddressNotFoundError,
    AlreadyAttestedError,
    InvalidDataError,
    IssuanceInProgressError,
    OrderNotFoundError,
)
from attestkit.domains.attestations.events import ADDRESS_BOUND, ORDER_ATTESTED
from attestkit.domains.attestations.models.attestation_models import (
    STATUS_ADDRESSED,
    STATUS_ATTESTED,
    STATUS_PENDING,
    AttestationOrder,
)
from attestkit.domains.attestations.services.order_store import OrderFilter, OrderStore
from attestkit.platform.outbox import enqueue as enqueue_outbox

logger = logging.getLogger(__name__)

DEFAULT_LEASE_SECONDS = 120


def _lease_free(now: datetime):
    return or_(
        AttestationOrder.issuance_lease_id.is_(None),
        AttestationOrder.issuance_lease_expires_at < now,
    )


class LifecycleService:
    """Create/bind/unbind/finalize transitions on top of the order store."""

    def __init__(self, store: Optional[OrderStore] = None):
        self.store = store or OrderStore()

    @property
    def session(self):
        return self.store.session

    def _conditional_update(self, order_id: int, *conditions, **values) -> int:
        values.setdefault("updated_at", datetime.utcnow())
        stmt = (
            update(AttestationOrder)
            .where(AttestationOrder.id == order_id, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount

    def reload(self, order_id: int) -> Optional[AttestationOrder]:
        order = self.store.get(order_id)
        if order is not None:
            self.session.refresh(order)
        return order

    def _raise_blocked(self, order_id: int, otherwise: Optional[Exception] = None) -> None:
        """Explain a conditional update that matched no row, after the rollback."""
        current = self.reload(order_id)
        if current is not None and current.is_attested:
            raise AlreadyAttestedError(
                "Order already attested",
                order_id=order_id,
                unit=current.unit,
                wallet_address=current.wallet_address,
            )
        if otherwise is None or (current is not None and current.issuance_lease_id is not None):
            raise IssuanceInProgressError("Issuance is in progress for this order", order_id=order_id)
        raise otherwise

    def _open_or_raise(self, selector: OrderFilter, not_found_exc) -> AttestationOrder:
        """Resolve the open order for a selector or raise the right failure."""
        order = self.store.find_order(replace(selector, exclude_attested=True))
        if order is not None:
            return order
        attested = self.store.find_order(replace(selector, exclude_attested=False, status=STATUS_ATTESTED))
        if attested is not None:
            raise AlreadyAttestedError(
                "Address is already attested",
                order_id=attested.id,
                unit=attested.unit,
                wallet_address=attested.wallet_address,
            )
        raise not_found_exc

    def bind_address(
        self,
        selector: OrderFilter,
        address: str,
        device_address: Optional[str] = None,
    ) -> AttestationOrder:
        if not is_valid_address(address):
            raise InvalidDataError("Invalid wallet address")
        order = self._open_or_raise(
            replace(selector, address=None),
            AddressNotFoundError("Order not found or already attested"),
        )
        now = datetime.utcnow()
        updated = self._conditional_update(
            order.id,
            AttestationOrder.status != STATUS_ATTESTED,
            _lease_free(now),
            wallet_address=address,
            status=STATUS_ADDRESSED,
        )
        if not updated:
            self.session.rollback()
            self._raise_blocked(order.id)
        enqueue_outbox(
            ADDRESS_BOUND,
            {
                "order_id": order.id,
                "address": address,
                "device_address": device_address or order.device_address,
            },
            aggregate_id=order.id,
        )
        self.session.commit()
        logger.info("Bound address %s to order %s", address, order.id)
        return self.reload(order.id)

    def unbind_address(self, selector: OrderFilter) -> AttestationOrder:
        order = self._open_or_raise(selector, AddressNotFoundError("Order not found or already attested"))
        if order.status != STATUS_ADDRESSED or not order.wallet_address:
            raise AddressNotFoundError("User address is not found", order_id=order.id)
        now = datetime.utcnow()
        updated = self._conditional_update(
            order.id,
            AttestationOrder.status == STATUS_ADDRESSED,
            AttestationOrder.wallet_address == order.wallet_address,
            _lease_free(now),
            wallet_address=None,
            status=STATUS_PENDING,
        )
        if not updated:
            self.session.rollback()
            self._raise_blocked(order.id, AddressNotFoundError("Address changed", order_id=order.id))
        self.session.commit()
        logger.info("Unbound address from order %s", order.id)
        return self.reload(order.id)

    def finalize(
        self,
        selector: OrderFilter,
        address: str,
        unit: str,
        device_address: Optional[str] = None,
    ) -> AttestationOrder:
        """Record the issued unit and mark the order attested; first writer wins."""
        if not is_valid_address(address):
            raise InvalidDataError("Invalid wallet address")
        if not is_valid_unit(unit):
            raise InvalidDataError("Invalid unit")
        order = self._open_or_raise(replace(selector, address=None), OrderNotFoundError("Order not found"))
        if order.wallet_address not in (None, address):
            raise OrderNotFoundError("Order not found for address", order_id=order.id)

        updated = self._conditional_update(
            order.id,
            AttestationOrder.status != STATUS_ATTESTED,
            or_(AttestationOrder.wallet_address.is_(None), AttestationOrder.wallet_address == address),
            unit=unit,
            wallet_address=address,
            status=STATUS_ATTESTED,
            identity_key=None,
            issuance_lease_id=None,
            issuance_lease_expires_at=None,
            attested_at=datetime.utcnow(),
        )
        if not updated:
            self.session.rollback()
            current = self.reload(order.id)
            if current is not None and current.is_attested:
                raise AlreadyAttestedError("Order already attested", order_id=order.id, unit=current.unit)
            raise OrderNotFoundError("Order address changed", order_id=order.id)

        enqueue_outbox(
            ORDER_ATTESTED,
            {
                "order_id": order.id,
                "provider": order.provider,
                "address": address,
                "unit": unit,
                "data": order.data,
                "device_address": device_address or order.device_address,
            },
            aggregate_id=order.id,
        )
        self.session.commit()
        logger.info("Order %s attested with unit %s", order.id, unit)
        return self.reload(order.id)

    def rebind_device_address(self, order_id: int, device_address: Optional[str]) -> AttestationOrder:
        updated = self._conditional_update(
            order_id,
            AttestationOrder.status != STATUS_ATTESTED,
            device_address=device_address,
        )
        if not updated:
            self.session.rollback()
            order = self.store.get(order_id)
            if order is None:
                raise OrderNotFoundError("Order not found", order_id=order_id)
            raise AlreadyAttestedError("Order already attested", order_id=order_id, unit=order.unit)
        self.session.commit()
        return self.reload(order_id)

    def claim_issuance(self, order_id: int, lease_seconds: int = DEFAULT_LEASE_SECONDS) -> Optional[str]:
        """Take the issuance lease for an open order; None if someone holds it."""
        now = datetime.utcnow()
        lease_id = secrets.token_hex(8)
        updated = self._conditional_update(
            order_id,
            AttestationOrder.status != STATUS_ATTESTED,
            _lease_free(now),
            issuance_lease_id=lease_id,
            issuance_lease_expires_at=now + timedelta(seconds=lease_seconds),
            updated_at=AttestationOrder.updated_at,
        )
        if not updated:
            self.session.rollback()
            return None
        self.session.commit()
        return lease_id

    def release_issuance(self, order_id: int, lease_id: str) -> bool:
        updated = self._conditional_update(
            order_id,
            AttestationOrder.issuance_lease_id == lease_id,
            issuance_lease_id=None,
            issuance_lease_expires_at=None,
            updated_at=AttestationOrder.updated_at,
        )
        self.session.commit()
        return bool(updated)
